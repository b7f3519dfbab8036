"""
Mapper policy loader (``struct_mapper.config.loader``).

Responsibility
--------------
Loads a YAML policy file and parses it into a frozen ``Mapper``. Custom
mappers are referenced by import path (``"package.module:callable"``) and
resolved at load time.

Example policy::

    fail_on_missing_source_field: false
    fuzzy_match: true
    dest_tag_key: json
    field_renames:
      customer_ref: customer_id
    ignored_dest_fields: [audit]
    custom_mappers:
      - myapp.mapping:money_to_decimal

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, wrong value type, unresolvable import path
  -> ``MapperConfigError``.
"""

from __future__ import annotations

import hashlib
import importlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from struct_mapper.domain.types import CustomMapper
from struct_mapper.exceptions import MapperConfigError
from struct_mapper.logging_config import get_logger
from struct_mapper.mapping.engine import Mapper

logger = get_logger("config.loader")

_BOOL_KEYS = (
    "fail_on_missing_source_field",
    "fail_on_incompatible_types",
    "ignore_case",
    "fuzzy_match",
)
_TAG_KEYS = ("source_tag_key", "dest_tag_key")
_KNOWN_KEYS = frozenset(
    _BOOL_KEYS + _TAG_KEYS + ("field_renames", "ignored_dest_fields", "custom_mappers")
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        MapperConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise MapperConfigError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def resolve_custom_mapper(import_path: str) -> CustomMapper:
    """Import ``"package.module:callable"`` and return the callable."""
    module_name, sep, attr = import_path.partition(":")
    if not sep or not module_name or not attr:
        raise MapperConfigError(
            f"Custom mapper path must look like 'package.module:callable', got {import_path!r}",
            "custom_mappers",
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise MapperConfigError(
            f"Cannot import module {module_name!r} for custom mapper: {exc}",
            "custom_mappers",
        ) from exc
    func = getattr(module, attr, None)
    if not callable(func):
        raise MapperConfigError(
            f"{import_path!r} does not name a callable", "custom_mappers"
        )
    return func


def _parse_bool(data: Mapping[str, Any], key: str) -> bool | None:
    if key not in data:
        return None
    value = data[key]
    if not isinstance(value, bool):
        raise MapperConfigError(f"{key} must be true or false, got {value!r}", key)
    return value


def _parse_str_list(data: Mapping[str, Any], key: str) -> tuple[str, ...]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MapperConfigError(f"{key} must be a list of strings", key)
    return tuple(value)


def parse_mapper_config(data: Mapping[str, Any]) -> Mapper:
    """
    Parse a ``Mapper`` from a dict.

    Keys left out keep the ``Mapper`` defaults (fail fast on both switches).
    """
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise MapperConfigError(f"Unknown mapper config keys: {', '.join(unknown)}", unknown[0])

    kwargs: dict[str, Any] = {}
    for key in _BOOL_KEYS:
        value = _parse_bool(data, key)
        if value is not None:
            kwargs[key] = value

    for key in _TAG_KEYS:
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise MapperConfigError(f"{key} must be a string, got {value!r}", key)
        kwargs[key] = value or None

    renames = data.get("field_renames") or {}
    if not isinstance(renames, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in renames.items()
    ):
        raise MapperConfigError(
            "field_renames must map source field names to destination field names",
            "field_renames",
        )
    kwargs["field_renames"] = renames
    kwargs["ignored_dest_fields"] = frozenset(_parse_str_list(data, "ignored_dest_fields"))
    kwargs["custom_mappers"] = tuple(
        resolve_custom_mapper(p) for p in _parse_str_list(data, "custom_mappers")
    )
    return Mapper(**kwargs)


def load_mapper_config(path: Path) -> Mapper:
    """Load and parse a YAML policy file."""
    data = load_yaml_file(path)
    mapper = parse_mapper_config(data)
    logger.info(
        "mapper_config_loaded",
        extra={
            "path": str(path),
            "checksum": compute_checksum(data),
            "custom_mapper_count": len(mapper.custom_mappers),
        },
    )
    return mapper


def compute_checksum(data: Mapping[str, Any]) -> str:
    """Deterministic SHA-256 of a policy dict, independent of key order."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

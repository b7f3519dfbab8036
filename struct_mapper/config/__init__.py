"""YAML policy files for the mapper."""

from struct_mapper.config.loader import (
    compute_checksum,
    load_mapper_config,
    load_yaml_file,
    parse_mapper_config,
    resolve_custom_mapper,
)

__all__ = [
    "compute_checksum",
    "load_mapper_config",
    "load_yaml_file",
    "parse_mapper_config",
    "resolve_custom_mapper",
]

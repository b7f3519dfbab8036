"""Mapping engine: recursive field resolution and type coercion."""

from struct_mapper.mapping.engine import DEFAULT_MAPPER, Mapper, map_struct
from struct_mapper.mapping.harness import (
    CompatibilityReport,
    CompatibilityRunReport,
    assert_compatible,
    check_compatibility,
    run_compatibility_checks,
)

__all__ = [
    "DEFAULT_MAPPER",
    "Mapper",
    "map_struct",
    "CompatibilityReport",
    "CompatibilityRunReport",
    "assert_compatible",
    "check_compatibility",
    "run_compatibility_checks",
]

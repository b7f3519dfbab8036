"""
struct_mapper -- Copy matching fields between records of different types.

Given a source value and a destination record, fields are matched by name
(optionally case/underscore-insensitive, tag-aliased or renamed), scalars are
coerced between numeric kinds, and nested records, optionals and sequences
are walked recursively. Mismatches either abort the call or are collected in
the returned MappingResult, per policy.

    from struct_mapper import Mapper, map_struct

    map_struct(order_row, order_dto)                       # fail fast
    result = Mapper(fail_on_missing_source_field=False).map(row, dto)
"""

from struct_mapper.domain.shapes import embedded
from struct_mapper.domain.types import (
    AttributeSlot,
    BoxSlot,
    CustomMapper,
    MappingResult,
    Slot,
)
from struct_mapper.exceptions import (
    FieldMappingError,
    IncompatibleTypesError,
    MapperConfigError,
    MapperUsageError,
    MappingError,
    MappingFailedError,
    MissingSourceFieldError,
    StructMapperError,
    UnresolvedAnnotationError,
)
from struct_mapper.mapping.engine import DEFAULT_MAPPER, Mapper, map_struct

__all__ = [
    "AttributeSlot",
    "BoxSlot",
    "CustomMapper",
    "DEFAULT_MAPPER",
    "FieldMappingError",
    "IncompatibleTypesError",
    "Mapper",
    "MapperConfigError",
    "MapperUsageError",
    "MappingError",
    "MappingFailedError",
    "MappingResult",
    "MissingSourceFieldError",
    "Slot",
    "StructMapperError",
    "UnresolvedAnnotationError",
    "embedded",
    "map_struct",
]

"""
Typed Exception Hierarchy for the struct mapper.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from StructMapperError:

    StructMapperError (base)
    |
    +-- MapperUsageError
    |   +-- UnresolvedAnnotationError
    +-- MapperConfigError
    |
    +-- MappingError
        +-- MissingSourceFieldError
        +-- IncompatibleTypesError
        |   +-- FieldMappingError
        +-- MappingFailedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                         | When Raised
----------------|------------------------------|-----------------------------------------
Usage           | MAPPER_USAGE                 | Destination is not a mutable record
                | RECORD_ANNOTATION_UNRESOLVED | A field annotation names an unknown type
Config          | MAPPER_CONFIG_INVALID        | Policy file has bad keys or values
----------------|------------------------------|-----------------------------------------
Mapping         | MISSING_SOURCE_FIELD         | No source field for a destination field
                | INCOMPATIBLE_TYPES           | No rule converts source shape to dest
                | FIELD_MAPPING_FAILED         | Incompatibility below a record field
                | MAPPING_FAILED               | raise_for_errors() on a failed result

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Fail fast (default policy):

    try:
        map_struct(row, dto)
    except MissingSourceFieldError as e:
        log.error(f"Source has no field for {e.path}")

2. Collect and decide later:

    result = Mapper(fail_on_missing_source_field=False,
                    fail_on_incompatible_types=False).map(row, dto)
    if not result.success:
        result.raise_for_errors()

MapperUsageError is a caller contract violation and is raised regardless of the
failure policy switches.
"""


class StructMapperError(Exception):
    """
    Base exception for all struct mapper errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STRUCT_MAPPER_ERROR"


class MapperUsageError(StructMapperError):
    """The mapper was called with arguments it cannot work with."""

    code: str = "MAPPER_USAGE"

    def __init__(self, message: str, argument: str):
        self.argument = argument
        super().__init__(message)


class UnresolvedAnnotationError(MapperUsageError):
    """
    A record field's string annotation names a type that cannot be found.

    Typical for records defined inside a function under
    ``from __future__ import annotations`` that refer to other local records
    without a default factory. Raised regardless of policy.
    """

    code: str = "RECORD_ANNOTATION_UNRESOLVED"

    def __init__(self, record: str, field_name: str, annotation: str, reason: str):
        self.record = record
        self.field_name = field_name
        self.annotation = annotation
        super().__init__(
            f"Cannot resolve annotation {annotation!r} of {record}.{field_name}: {reason}",
            f"{record}.{field_name}",
        )


class MapperConfigError(StructMapperError):
    """A mapper policy definition could not be parsed."""

    code: str = "MAPPER_CONFIG_INVALID"

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message)


# Mapping failures


class MappingError(StructMapperError):
    """Base exception for failures raised while walking a value."""

    code: str = "MAPPING_ERROR"


class MissingSourceFieldError(MappingError):
    """A destination field has no counterpart anywhere in the source."""

    code: str = "MISSING_SOURCE_FIELD"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Missing fields from source struct: {path}")


class IncompatibleTypesError(MappingError):
    """
    No built-in rule converts the source shape into the destination shape.

    Custom mappers may raise this to report a failure at their node; it is
    then subject to the same policy as built-in incompatibilities.
    """

    code: str = "INCOMPATIBLE_TYPES"

    def __init__(self, source_type: str, dest_type: str, message: str | None = None):
        self.source_type = source_type
        self.dest_type = dest_type
        super().__init__(
            message
            or (
                f"Currently not supported (source {source_type} -> dest {dest_type}), "
                "write a custom mapper for this."
            )
        )


class FieldMappingError(IncompatibleTypesError):
    """
    An incompatibility raised below a record field, re-reported with the
    field name and both record types.

    Nested records produce a chain: the outer field's error wraps the
    inner field's message.
    """

    code: str = "FIELD_MAPPING_FAILED"

    def __init__(
        self,
        field_name: str,
        dest_record: str,
        source_record: str,
        cause: str,
    ):
        self.field_name = field_name
        self.dest_record = dest_record
        self.source_record = source_record
        super().__init__(
            source_record,
            dest_record,
            f"Error mapping field: {field_name}. DestType: {dest_record}. "
            f"SourceType: {source_record}. Error: {cause}",
        )


class MappingFailedError(MappingError):
    """Raised by MappingResult.raise_for_errors() when errors were recorded."""

    code: str = "MAPPING_FAILED"

    def __init__(self, message: str, errors: tuple[str, ...]):
        self.errors = errors
        super().__init__(message)

"""
Mapping engine: copy matching fields from a source value into a destination
record, recursing through nested records, optionals and sequences.

Contract:
    Mapper.map(source, dest) walks ``dest``'s declared shape and fills it from
    ``source``. Every node is dispatched by destination shape, first match wins:

        1. record dest + optional source   deref (empty -> zero instance)
        2. custom mappers                  first one returning True ends the node
        3. optional dest                   None stays None, else map into fresh value
        4. identical shapes                shallow copy
        5. datetime -> datetime            direct copy
        6. record dest                     field by field, declaration order
        7. numeric coercion                see domain.coercion
        8. sequence dest                   element-wise, index i -> i
        9. anything else                   IncompatibleTypesError

Guarantees:
    - The Mapper is frozen; all per-call state lives in a MapContext passed
      through the recursion, so one Mapper may serve concurrent calls.
    - Fatal failures raise at first occurrence and no MappingResult is produced.
    - Non-fatal failures are collected depth-first in field declaration order;
      a failed sequence element keeps its zero value and the rest still map.
    - A source graph that loops back to a record still being filled reuses
      that destination, so cyclic object graphs (ORM back-references)
      terminate. Frozen destinations cannot close a cycle and report an
      incompatibility instead.

Non-goals:
    - No cached mapping plans across calls (record field lists are cached per
      class, nothing else).
    - Rule 5 is the only hard-coded conversion. Anything else belongs in a
      custom mapper.
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from struct_mapper.domain.coercion import coerce_scalar
from struct_mapper.domain.names import contains_name, normalize_name, tag_name
from struct_mapper.domain.shapes import (
    RecordField,
    SequenceShape,
    is_frozen_record,
    is_mutable_record,
    is_record,
    is_timestamp,
    optional_inner,
    record_fields,
    runtime_shape,
    sequence_shape,
    shape_name,
    zero_value,
)
from struct_mapper.domain.types import (
    AttributeSlot,
    BoxSlot,
    CustomMapper,
    FieldMatch,
    MapContext,
    MappingResult,
    Slot,
)
from struct_mapper.exceptions import (
    FieldMappingError,
    IncompatibleTypesError,
    MapperUsageError,
    MappingError,
    MissingSourceFieldError,
)
from struct_mapper.logging_config import LogContext, get_logger

logger = get_logger("mapping.engine")


@dataclass(frozen=True)
class Mapper:
    """
    Matching and coercion policy. Build once, reuse for any number of calls.

    ``field_renames`` is keyed by source field name; the value is the
    destination field name it feeds. Both sides are normalized before
    comparison. A mapping or an iterable of pairs is accepted; it is stored as
    a tuple of ``(source, dest)`` pairs so the Mapper stays hashable.
    """

    fail_on_missing_source_field: bool = True
    fail_on_incompatible_types: bool = True
    field_renames: tuple[tuple[str, str], ...] = ()
    ignore_case: bool = False
    fuzzy_match: bool = False
    source_tag_key: str | None = None
    dest_tag_key: str | None = None
    custom_mappers: tuple[CustomMapper, ...] = ()
    ignored_dest_fields: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        renames = self.field_renames
        if isinstance(renames, Mapping):
            renames = renames.items()
        object.__setattr__(self, "field_renames", tuple((s, d) for s, d in renames))
        object.__setattr__(self, "custom_mappers", tuple(self.custom_mappers))
        object.__setattr__(self, "ignored_dest_fields", frozenset(self.ignored_dest_fields))

    # -------------------------------------------------------------------------
    # Public entry points
    # -------------------------------------------------------------------------

    def map(self, source: Any, dest: Any) -> MappingResult:
        """
        Fill the record instance ``dest`` from ``source`` in place.

        Raises:
            MapperUsageError: ``dest`` is not a mutable record instance, or
                ``source`` is None. Raised regardless of policy.
            MissingSourceFieldError: fail_on_missing_source_field is set and a
                destination field has no source counterpart.
            IncompatibleTypesError: fail_on_incompatible_types is set and a
                value cannot be converted (usually a FieldMappingError chain).
        """
        if not is_mutable_record(dest):
            raise MapperUsageError(
                f"Destination must be a mutable record instance, got {type(dest).__qualname__}",
                "dest",
            )
        if source is None:
            raise MapperUsageError("Source must not be None", "source")
        slot = BoxSlot(dest)
        return self._run(source, type(source), slot, type(dest))

    def map_to_new(self, source: Any, dest_type: type) -> tuple[Any, MappingResult]:
        """
        Build a fresh ``dest_type`` instance from ``source``.

        Unlike map(), frozen dataclasses are accepted as the destination type.
        """
        if not is_record(dest_type):
            raise MapperUsageError(
                f"Destination type must be a record type, got {shape_name(dest_type)}",
                "dest_type",
            )
        if source is None:
            raise MapperUsageError("Source must not be None", "source")
        slot = BoxSlot(zero_value(dest_type))
        result = self._run(source, type(source), slot, dest_type)
        return slot.value, result

    # -------------------------------------------------------------------------
    # Call lifecycle
    # -------------------------------------------------------------------------

    def _run(self, source: Any, source_shape: Any, dest: Slot, dest_shape: Any) -> MappingResult:
        ctx = MapContext()
        with LogContext.bind(
            map_id=str(uuid4()),
            source_type=shape_name(source_shape),
            dest_type=shape_name(dest_shape),
        ):
            logger.debug("map_started")
            try:
                try:
                    self._map_values(ctx, source, source_shape, dest, dest_shape)
                except IncompatibleTypesError as exc:
                    # Fatal field failures arrive already enriched; a custom
                    # mapper refusing the root node raises a bare error.
                    self._incompatible(ctx, exc)
            except MappingError as exc:
                logger.warning("map_aborted", extra={"error_code": exc.code, "error": str(exc)})
                raise

            if ctx.missing_source_fields:
                ctx.add_error(
                    "Missing fields from source struct: " + ", ".join(ctx.missing_source_fields)
                )
            result = ctx.freeze()
            if result.errors:
                logger.warning(
                    "map_completed_with_errors",
                    extra={
                        "error_count": len(result.errors),
                        "missing_count": len(result.missing_source_fields),
                    },
                )
            else:
                logger.debug("map_completed")
        return result

    def _incompatible(self, ctx: MapContext, error: IncompatibleTypesError) -> None:
        if self.fail_on_incompatible_types:
            raise error
        ctx.add_error(str(error))

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def _map_values(
        self,
        ctx: MapContext,
        source: Any,
        source_shape: Any,
        dest: Slot,
        dest_shape: Any,
    ) -> None:
        source_shape = runtime_shape(source, source_shape)

        if is_record(dest_shape):
            inner = optional_inner(source_shape)
            if inner is not None:
                # Empty source still yields a zero instance so custom mappers
                # run and nested defaults are produced.
                if source is None:
                    source = zero_value(inner)
                source_shape = inner

        for custom in self.custom_mappers:
            if custom(source, source_shape, dest, dest_shape):
                logger.debug(
                    "custom_mapper_handled",
                    extra={
                        "scope": ctx.scope_path(),
                        "custom_mapper": getattr(custom, "__qualname__", repr(custom)),
                    },
                )
                return

        dest_inner = optional_inner(dest_shape)
        if dest_inner is not None:
            if source is None:
                return
            target = BoxSlot(zero_value(dest_inner))
            self._map_values(
                ctx, source, optional_inner(source_shape) or source_shape, target, dest_inner
            )
            dest.value = target.value
            return

        if dest_shape is Any or source_shape == dest_shape:
            self._copy(dest, source, dest_shape)
            return

        # Only datetime -> datetime is special-cased here.
        # Other conversions belong in custom mappers.
        if is_timestamp(dest_shape) and is_timestamp(source_shape):
            dest.value = source
            return

        if is_record(dest_shape):
            self._map_record(ctx, source, source_shape, dest, dest_shape)
            return

        coerced = coerce_scalar(source, source_shape, dest_shape)
        if coerced.success:
            dest.value = coerced.value
            return

        dest_seq = sequence_shape(dest_shape)
        if dest_seq is not None:
            self._map_sequence(ctx, source, source_shape, dest, dest_shape, dest_seq)
            return

        raise IncompatibleTypesError(shape_name(source_shape), shape_name(dest_shape))

    def _copy(self, dest: Slot, value: Any, shape: Any) -> None:
        current = dest.value
        if is_record(shape) and is_mutable_record(current) and current is not value:
            for rf in record_fields(shape):
                setattr(current, rf.name, getattr(value, rf.name))
            return
        dest.value = copy.copy(value)

    def _map_record(
        self,
        ctx: MapContext,
        source: Any,
        source_shape: Any,
        dest: Slot,
        dest_shape: type,
    ) -> None:
        looped = ctx.in_progress(source, dest_shape) if is_record(source_shape) else None
        if looped is not None:
            self._close_cycle(ctx, source_shape, dest, dest_shape, looped)
            return

        instance = dest.value
        if not isinstance(instance, dest_shape):
            instance = zero_value(dest_shape)

        frozen = is_frozen_record(dest_shape)
        updates: dict[str, Any] = {}
        with ctx.building_record(source, dest_shape, instance):
            for dest_field in record_fields(dest_shape):
                with ctx.scoped(dest_field.name):
                    if frozen:
                        slot: Slot = BoxSlot(getattr(instance, dest_field.name, None))
                    else:
                        slot = AttributeSlot(instance, dest_field.name)
                    self._map_field(ctx, source, source_shape, slot, dest_field, dest_shape)
                    if frozen and dest_field.init:
                        updates[dest_field.name] = slot.value

        if frozen:
            instance = dataclasses.replace(instance, **updates)
        if dest.value is not instance:
            dest.value = instance

    def _close_cycle(
        self,
        ctx: MapContext,
        source_shape: Any,
        dest: Slot,
        dest_shape: type,
        instance: Any,
    ) -> None:
        """
        The source graph led back to a record whose destination is still being
        filled: point at that destination so the result mirrors the cycle.
        A frozen destination only exists once all its fields are known, so it
        cannot take part in a cycle.
        """
        if is_frozen_record(dest_shape):
            raise IncompatibleTypesError(
                shape_name(source_shape),
                shape_name(dest_shape),
                f"Cyclic reference at {ctx.scope_path()}: frozen {shape_name(dest_shape)} "
                "cannot refer back to itself",
            )
        logger.debug(
            "cyclic_reference_reused",
            extra={"scope": ctx.scope_path(), "dest_type": shape_name(dest_shape)},
        )
        dest.value = instance

    def _map_field(
        self,
        ctx: MapContext,
        source: Any,
        source_shape: Any,
        slot: Slot,
        dest_field: RecordField,
        dest_record: type,
    ) -> None:
        boundary = (dest_field.name, shape_name(dest_record), shape_name(source_shape))
        try:
            with ctx.within_field(boundary):
                match = self.find_source_field(ctx, source, source_shape, dest_field)
                if match is None:
                    return
                self._map_values(ctx, match.value, match.shape, slot, dest_field.shape)
        except IncompatibleTypesError as exc:
            error = FieldMappingError(*boundary, str(exc))
            if self.fail_on_incompatible_types:
                raise error from exc
            ctx.add_error(str(error))

    def _map_sequence(
        self,
        ctx: MapContext,
        source: Any,
        source_shape: Any,
        dest: Slot,
        dest_shape: Any,
        dest_seq: SequenceShape,
    ) -> None:
        source_seq = sequence_shape(source_shape)
        if source_seq is None:
            raise IncompatibleTypesError(
                shape_name(source_shape),
                shape_name(dest_shape),
            )

        items = list(source)
        targets = [BoxSlot(zero_value(dest_seq.element)) for _ in items]
        for item, target in zip(items, targets):
            try:
                self._map_values(ctx, item, source_seq.element, target, dest_seq.element)
            except IncompatibleTypesError as exc:
                if self.fail_on_incompatible_types:
                    raise
                # The element keeps its zero value; later elements still map.
                boundary = ctx.current_field()
                ctx.add_error(str(FieldMappingError(*boundary, str(exc)) if boundary else exc))
        if not items:
            self._check_element_compatibility(ctx, source_seq, dest_seq)
        dest.value = dest_seq.container(target.value for target in targets)

    def _check_element_compatibility(
        self,
        ctx: MapContext,
        source_seq: SequenceShape,
        dest_seq: SequenceShape,
    ) -> None:
        """
        Map one synthetic zero element so an empty sequence cannot hide an
        incompatible element type until the first non-empty run. The probe
        objects are discarded; errors and missing fields are kept.
        """
        if source_seq.element is Any:
            return
        key = (source_seq.element, dest_seq.element)
        # Self-referential element types would otherwise probe forever
        if key in ctx.validating:
            return
        ctx.validating.add(key)
        try:
            probe = BoxSlot(zero_value(dest_seq.element))
            self._map_values(
                ctx, zero_value(source_seq.element), source_seq.element, probe, dest_seq.element
            )
        finally:
            ctx.validating.discard(key)

    # -------------------------------------------------------------------------
    # Field resolution
    # -------------------------------------------------------------------------

    def _normalize(self, name: str) -> str:
        return normalize_name(name, fuzzy_match=self.fuzzy_match, ignore_case=self.ignore_case)

    def dest_field_name(self, dest_field: RecordField) -> str:
        """Canonical matching name of a destination field, renames applied."""
        name = self._normalize(tag_name(dest_field.metadata, self.dest_tag_key) or dest_field.name)
        for source_name, dest_name in self.field_renames:
            if self._normalize(dest_name) == name:
                return self._normalize(source_name)
        return name

    def source_field_name(self, source_field: RecordField) -> str:
        """Canonical matching name of a source field. Renames do not apply."""
        return self._normalize(
            tag_name(source_field.metadata, self.source_tag_key) or source_field.name
        )

    def find_source_field(
        self,
        ctx: MapContext,
        source: Any,
        source_shape: Any,
        dest_field: RecordField,
    ) -> FieldMatch | None:
        """
        Resolve the source field feeding ``dest_field``.

        Direct fields are scanned first, in declaration order; embedded
        records are probed only afterwards. Ignored destination fields return
        None silently. An unresolved field is reported once, at the current
        scope path, however many embedded records were probed.
        """
        name = self.dest_field_name(dest_field)
        if contains_name(
            self.ignored_dest_fields,
            name,
            fuzzy_match=self.fuzzy_match,
            ignore_case=self.ignore_case,
        ):
            return None
        if not is_record(source_shape):
            raise IncompatibleTypesError(
                shape_name(source_shape),
                shape_name(dest_field.shape),
                f"Source {shape_name(source_shape)} is not a record, "
                f"cannot resolve field {dest_field.name}",
            )

        match = self._lookup(source, source_shape, name)
        if match is not None:
            return match

        path = ctx.scope_path()
        if self.fail_on_missing_source_field:
            raise MissingSourceFieldError(path)
        ctx.add_missing(path)
        return None

    def _lookup(self, source: Any, source_shape: type, name: str) -> FieldMatch | None:
        fields = record_fields(source_shape)
        for source_field in fields:
            if self.source_field_name(source_field) == name:
                return FieldMatch(
                    source_field.name,
                    getattr(source, source_field.name),
                    source_field.shape,
                )
        for source_field in fields:
            if not source_field.embedded:
                continue
            nested = getattr(source, source_field.name)
            if nested is None:
                nested = zero_value(source_field.shape)
            match = self._lookup(nested, source_field.shape, name)
            if match is not None:
                return match
        return None


DEFAULT_MAPPER = Mapper()


def map_struct(source: Any, dest: Any) -> MappingResult:
    """Map with the default, fail-fast policy."""
    return DEFAULT_MAPPER.map(source, dest)

"""
struct_mapper.domain.types -- Per-call state and result types for the mapper.

ZERO I/O. Nothing here outlives a single Mapper.map() call except the
frozen MappingResult handed back to the caller.

Contract:
    MapContext is created by every map() call and threaded explicitly through
    the recursion. It is never stored on the Mapper, so one Mapper can serve
    concurrent calls.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from struct_mapper.exceptions import MappingFailedError


# =============================================================================
# Destination slots
# =============================================================================


class Slot:
    """Settable reference to one destination location."""

    @property
    def value(self) -> Any:
        raise NotImplementedError

    @value.setter
    def value(self, new_value: Any) -> None:
        raise NotImplementedError


class BoxSlot(Slot):
    """Free-standing location: sequence elements, optional targets, probes."""

    def __init__(self, initial: Any = None):
        self._value = initial

    @property
    def value(self) -> Any:
        return self._value

    @value.setter
    def value(self, new_value: Any) -> None:
        self._value = new_value

    def __repr__(self) -> str:
        return f"BoxSlot({self._value!r})"


class AttributeSlot(Slot):
    """One attribute of a mutable record instance."""

    def __init__(self, owner: Any, name: str):
        self.owner = owner
        self.name = name

    @property
    def value(self) -> Any:
        return getattr(self.owner, self.name, None)

    @value.setter
    def value(self, new_value: Any) -> None:
        setattr(self.owner, self.name, new_value)

    def __repr__(self) -> str:
        return f"AttributeSlot({type(self.owner).__name__}.{self.name})"


# Custom mapper hook: (source_value, source_shape, dest_slot, dest_shape) -> handled.
# Returning True means the hook wrote the destination itself and default
# handling is skipped for this node. False declines.
CustomMapper = Callable[[Any, Any, Slot, Any], bool]


@dataclass(frozen=True)
class FieldMatch:
    """A source field resolved for one destination field."""

    name: str
    value: Any
    shape: Any


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class MappingResult:
    """Outcome of one map() call. Owned by the caller."""

    missing_source_fields: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def error_message(self) -> str:
        """All errors folded into one sentence: "a", "a and b", "a, b, and c"."""
        if not self.errors:
            return ""
        if len(self.errors) == 1:
            return self.errors[0]
        if len(self.errors) == 2:
            return f"{self.errors[0]} and {self.errors[1]}"
        return ", ".join(self.errors[:-1]) + f", and {self.errors[-1]}"

    def raise_for_errors(self) -> None:
        """Raise MappingFailedError if any error was recorded."""
        if self.errors:
            raise MappingFailedError(self.error_message, self.errors)


# =============================================================================
# Per-call accumulator
# =============================================================================


@dataclass
class MapContext:
    """Mutable state for one in-flight map() call."""

    scope: list[str] = field(default_factory=list)
    missing_source_fields: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    # (source element shape, dest element shape) pairs under synthetic validation
    validating: set[tuple[Any, Any]] = field(default_factory=set)
    # (id(source record), dest shape) -> destination instance still being filled
    building: dict[tuple[int, Any], Any] = field(default_factory=dict)
    # (field name, dest record, source record) of each record field being mapped
    fields: list[tuple[str, str, str]] = field(default_factory=list)

    @contextmanager
    def scoped(self, name: str) -> Iterator[None]:
        self.scope.append(name)
        try:
            yield
        finally:
            self.scope.pop()

    @contextmanager
    def within_field(self, boundary: tuple[str, str, str]) -> Iterator[None]:
        self.fields.append(boundary)
        try:
            yield
        finally:
            self.fields.pop()

    @contextmanager
    def building_record(self, source: Any, dest_shape: Any, instance: Any) -> Iterator[None]:
        key = (id(source), dest_shape)
        self.building[key] = instance
        try:
            yield
        finally:
            del self.building[key]

    def in_progress(self, source: Any, dest_shape: Any) -> Any | None:
        """Destination already being built for ``source``, when the walk has looped back."""
        return self.building.get((id(source), dest_shape))

    def current_field(self) -> tuple[str, str, str] | None:
        return self.fields[-1] if self.fields else None

    def scope_path(self) -> str:
        """Dotted path to the field being mapped, e.g. ``student.contact.phone``."""
        return ".".join(self.scope)

    def add_missing(self, path: str) -> None:
        self.missing_source_fields.append(path)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def freeze(self) -> MappingResult:
        return MappingResult(
            missing_source_fields=tuple(self.missing_source_fields),
            errors=tuple(self.errors),
        )

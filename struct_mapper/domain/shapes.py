"""
Shape introspection: what kind of value a declared Python type describes.

A "shape" is the declared type of a value at one node of the traversal: a
resolved annotation such as ``int``, ``numpy.int32``, ``Optional[Address]``
or ``list[LineItem]``. Record shapes are dataclasses and SQLAlchemy mapped
classes; their fields are read once per class and cached.

ZERO I/O. SQLAlchemy is only used for mapper introspection; no engine or
session is ever touched.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import re
import types
import typing
from dataclasses import MISSING, dataclass
from datetime import date, datetime
from functools import lru_cache
from typing import Any, NamedTuple, Optional, Union, get_args, get_origin

import numpy as np
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import ColumnProperty, Mapper, RelationshipProperty

from struct_mapper.exceptions import UnresolvedAnnotationError
from struct_mapper.logging_config import get_logger

logger = get_logger("domain.shapes")

NoneType = type(None)

# Field metadata key flagging an embedded (promoted) record field.
EMBEDDED = "embedded"


@dataclass(frozen=True)
class RecordField:
    """One declared field of a record shape."""

    name: str
    shape: Any
    metadata: collections.abc.Mapping[str, Any]
    embedded: bool = False
    init: bool = True


class SequenceShape(NamedTuple):
    container: type
    element: Any


# -----------------------------------------------------------------------------
# Shape predicates
# -----------------------------------------------------------------------------


def is_class(shape: Any) -> bool:
    """True for a plain class; parameterized generics such as ``list[int]`` are not."""
    return isinstance(shape, type) and not isinstance(shape, types.GenericAlias)


def optional_inner(shape: Any) -> Any | None:
    """``X`` for ``Optional[X]`` / ``X | None``; None for anything else."""
    origin = get_origin(shape)
    if origin is Union or origin is types.UnionType:
        args = get_args(shape)
        rest = [a for a in args if a is not NoneType]
        if len(args) == 2 and len(rest) == 1:
            return rest[0]
    return None


def sequence_shape(shape: Any) -> SequenceShape | None:
    """Container and element shape for list / Sequence / homogeneous tuple shapes."""
    if shape is list:
        return SequenceShape(list, Any)
    if shape is tuple:
        return SequenceShape(tuple, Any)
    origin = get_origin(shape)
    args = get_args(shape)
    if origin is list or origin in (
        collections.abc.Sequence,
        collections.abc.MutableSequence,
    ):
        return SequenceShape(list, args[0] if args else Any)
    if origin is tuple and len(args) == 2 and args[1] is Ellipsis:
        return SequenceShape(tuple, args[0])
    return None


def _orm_mapper(shape: Any) -> Mapper | None:
    if not is_class(shape):
        return None
    insp = sa_inspect(shape, raiseerr=False)
    return insp if isinstance(insp, Mapper) else None


def is_record(shape: Any) -> bool:
    if not is_class(shape):
        return False
    return dataclasses.is_dataclass(shape) or _orm_mapper(shape) is not None


def is_frozen_record(shape: Any) -> bool:
    return dataclasses.is_dataclass(shape) and shape.__dataclass_params__.frozen


def is_mutable_record(value: Any) -> bool:
    """True when ``value`` is a record instance whose fields can be written in place."""
    shape = type(value)
    return is_record(shape) and not is_frozen_record(shape)


def is_timestamp(shape: Any) -> bool:
    return is_class(shape) and issubclass(shape, datetime)


def runtime_shape(value: Any, shape: Any) -> Any:
    """
    Effective shape of ``value`` at a node.

    ``Any`` falls back to the runtime type. A ``None`` held by a field declared
    non-optional is treated as an empty ``Optional`` of the declared shape.
    """
    if shape is Any or shape is object:
        return NoneType if value is None else type(value)
    if value is None and shape is not NoneType and optional_inner(shape) is None:
        return Optional[shape]
    return shape


def shape_name(shape: Any) -> str:
    if is_class(shape):
        return shape.__name__
    return repr(shape).replace("typing.", "")


# -----------------------------------------------------------------------------
# Record fields
# -----------------------------------------------------------------------------


def _local_namespace(cls: type) -> dict[str, Any]:
    """
    Names a record's string annotations may use beyond its module globals.

    A record defined inside a function cannot see that function's locals once
    it has returned. The record itself and the classes used as field defaults
    or default factories are the only local names still reachable.
    """
    namespace: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        for candidate in (f.default, f.default_factory):
            if is_class(candidate):
                namespace.setdefault(candidate.__name__, candidate)
    namespace[cls.__name__] = cls
    return namespace


def _unresolved_field(cls: type, exc: Exception) -> UnresolvedAnnotationError:
    fields = dataclasses.fields(cls)
    candidates = [f for f in fields if isinstance(f.type, str)] or list(fields)
    missing = getattr(exc, "name", None)
    if missing:
        pattern = re.compile(rf"\b{re.escape(missing)}\b")
        candidates = [f for f in candidates if pattern.search(str(f.type))] or candidates
    if not candidates:
        return UnresolvedAnnotationError(cls.__name__, "<annotations>", "", str(exc))
    f = candidates[0]
    annotation = f.type if isinstance(f.type, str) else shape_name(f.type)
    return UnresolvedAnnotationError(cls.__name__, f.name, annotation, str(exc))


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError):
        pass
    localns = _local_namespace(cls)
    logger.debug(
        "record_annotations_local_lookup",
        extra={"record": cls.__name__, "names": sorted(localns)},
    )
    try:
        return typing.get_type_hints(cls, localns=localns)
    except (NameError, TypeError) as exc:
        raise _unresolved_field(cls, exc) from exc


def _dataclass_fields(cls: type) -> tuple[RecordField, ...]:
    hints = _type_hints(cls)
    fields = []
    for f in dataclasses.fields(cls):
        shape = hints.get(f.name, f.type)
        if isinstance(shape, str):
            raise UnresolvedAnnotationError(cls.__name__, f.name, shape, "not evaluated")
        fields.append(
            RecordField(
                name=f.name,
                shape=shape,
                metadata=f.metadata,
                embedded=bool(f.metadata.get(EMBEDDED)) and is_record(shape),
                init=f.init,
            )
        )
    return tuple(fields)


def _column_shape(column: Any) -> Any:
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return Any
    return Optional[python_type] if getattr(column, "nullable", True) else python_type


def _orm_fields(mapper: Mapper) -> tuple[RecordField, ...]:
    # Shapes come from the mapped columns, not from Mapped[...] annotations
    fields = []
    for prop in mapper.attrs:
        if isinstance(prop, ColumnProperty):
            column = prop.columns[0]
            shape = _column_shape(column)
            metadata = {**getattr(column, "info", {}), **prop.info}
        elif isinstance(prop, RelationshipProperty):
            target = prop.mapper.class_
            shape = list[target] if prop.uselist else Optional[target]
            metadata = dict(prop.info)
        else:
            continue
        fields.append(RecordField(name=prop.key, shape=shape, metadata=metadata))
    return tuple(fields)


@lru_cache(maxsize=None)
def record_fields(shape: type) -> tuple[RecordField, ...]:
    """Declared fields of a record shape, in declaration order."""
    # Mapped dataclasses (MappedAsDataclass) are introspected through the ORM
    mapper = _orm_mapper(shape)
    if mapper is not None:
        return _orm_fields(mapper)
    if dataclasses.is_dataclass(shape):
        return _dataclass_fields(shape)
    raise TypeError(f"{shape_name(shape)} is not a record type")


def embedded(
    *,
    default_factory: Any = MISSING,
    metadata: dict[str, Any] | None = None,
    **kwargs: Any,
) -> Any:
    """
    Dataclass field whose own fields are promoted into the enclosing record
    when resolving source names::

        @dataclass
        class Customer:
            audit: AuditStamp = embedded(default_factory=AuditStamp)
            name: str = ""
    """
    merged = {**(metadata or {}), EMBEDDED: True}
    return dataclasses.field(default_factory=default_factory, metadata=merged, **kwargs)


# -----------------------------------------------------------------------------
# Zero values
# -----------------------------------------------------------------------------


def _zero_record(shape: type) -> Any:
    if dataclasses.is_dataclass(shape):
        shapes = {rf.name: rf.shape for rf in record_fields(shape)}
        kwargs = {
            f.name: zero_value(shapes.get(f.name, Any))
            for f in dataclasses.fields(shape)
            if f.init and f.default is MISSING and f.default_factory is MISSING
        }
        return shape(**kwargs)

    instance = shape()
    for rf in record_fields(shape):
        if optional_inner(rf.shape) is None and getattr(instance, rf.name) is None:
            setattr(instance, rf.name, zero_value(rf.shape))
    return instance


def zero_value(shape: Any) -> Any:
    """
    The zero state of a shape: 0, 0.0, "", False, empty containers, None for
    optionals, datetime.min for timestamps. Records are built from their
    declared defaults, with zero values for fields that have none.
    """
    if shape is Any or shape is object or shape is NoneType:
        return None
    if optional_inner(shape) is not None:
        return None
    seq = sequence_shape(shape)
    if seq is not None:
        return seq.container()
    if not is_class(shape):
        return None
    if shape is bool:
        return False
    if issubclass(shape, np.generic):
        return shape(0)
    if is_record(shape):
        return _zero_record(shape)
    if issubclass(shape, date):
        return shape.min
    try:
        return shape()
    except TypeError:
        return None

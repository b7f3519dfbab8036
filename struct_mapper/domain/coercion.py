"""
Scalar coercion table: pure conversion between numeric kinds.

Rules, checked in order:
    signed   -> signed     value kept, wrapped to the destination width
    unsigned -> unsigned   value kept, wrapped to the destination width
    unsigned -> signed     bits reinterpreted as signed
    float    -> float      standard float conversion, precision loss is silent

No overflow checking anywhere: narrowing wraps in two's complement, the same
way a native cast does. Python ``int`` is unbounded and never wraps, except
when it receives an unsigned value, which is reinterpreted as int64. ``bool``
is never treated as a number.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

from struct_mapper.domain.shapes import is_class


class NumericKind(str, Enum):
    """Numeric family a scalar shape belongs to."""

    SIGNED = "signed"
    UNSIGNED = "unsigned"
    FLOAT = "float"


@dataclass(frozen=True)
class NumericSpec:
    kind: NumericKind
    bits: int | None  # None for unbounded Python int / float


@dataclass(frozen=True)
class CoercionResult:
    """Result of coercing a scalar to a destination shape."""

    success: bool
    value: Any = None


NOT_APPLICABLE = CoercionResult(success=False)

# Python int has no width; unsigned sources are reinterpreted at this width.
_REINTERPRET_BITS = 64


def numeric_spec(shape: Any) -> NumericSpec | None:
    """Kind and width of a numeric shape, or None for anything else."""
    if not is_class(shape):
        return None
    if issubclass(shape, np.generic):
        bits = np.dtype(shape).itemsize * 8
        if issubclass(shape, np.signedinteger):
            return NumericSpec(NumericKind.SIGNED, bits)
        if issubclass(shape, np.unsignedinteger):
            return NumericSpec(NumericKind.UNSIGNED, bits)
        if issubclass(shape, np.floating):
            return NumericSpec(NumericKind.FLOAT, bits)
        return None
    if shape is int:
        return NumericSpec(NumericKind.SIGNED, None)
    if shape is float:
        return NumericSpec(NumericKind.FLOAT, None)
    return None


def numeric_kind(shape: Any) -> NumericKind | None:
    spec = numeric_spec(shape)
    return spec.kind if spec is not None else None


def wrap_signed(value: int, bits: int) -> int:
    """Two's-complement truncation of ``value`` to ``bits``."""
    modulus = 1 << bits
    value &= modulus - 1
    return value - modulus if value >= modulus >> 1 else value


def wrap_unsigned(value: int, bits: int) -> int:
    return value & ((1 << bits) - 1)


def _build(dest_shape: type, value: Any) -> Any:
    return value if dest_shape in (int, float) else dest_shape(value)


def coerce_scalar(value: Any, source_shape: Any, dest_shape: Any) -> CoercionResult:
    """Convert ``value`` between numeric kinds. Pure function."""
    src = numeric_spec(source_shape)
    dst = numeric_spec(dest_shape)
    if src is None or dst is None or value is None:
        return NOT_APPLICABLE

    if src.kind is NumericKind.SIGNED and dst.kind is NumericKind.SIGNED:
        n = int(value)
        if dst.bits is not None:
            n = wrap_signed(n, dst.bits)
        return CoercionResult(success=True, value=_build(dest_shape, n))

    if src.kind is NumericKind.UNSIGNED and dst.kind is NumericKind.UNSIGNED:
        return CoercionResult(
            success=True, value=_build(dest_shape, wrap_unsigned(int(value), dst.bits))
        )

    if src.kind is NumericKind.UNSIGNED and dst.kind is NumericKind.SIGNED:
        n = wrap_signed(int(value), dst.bits or _REINTERPRET_BITS)
        return CoercionResult(success=True, value=_build(dest_shape, n))

    if src.kind is NumericKind.FLOAT and dst.kind is NumericKind.FLOAT:
        return CoercionResult(success=True, value=_build(dest_shape, float(value)))

    return NOT_APPLICABLE

"""
Compatibility harness: dry-run a (source type, destination type) pair.

Pure function of types. Builds zero instances of both sides, maps them under
a non-fatal copy of the mapper's policy and reports every missing field and
incompatibility. No caller object is created or mutated.

Useful at start-up or in a test suite to catch shape drift between DTOs and
models before the first real record goes through.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass

from struct_mapper.domain.shapes import is_record, shape_name, zero_value
from struct_mapper.exceptions import MapperUsageError
from struct_mapper.mapping.engine import Mapper


@dataclass(frozen=True)
class CompatibilityReport:
    """Outcome of checking one type pair."""

    source_type: str
    dest_type: str
    compatible: bool
    missing_source_fields: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class CompatibilityRunReport:
    """Outcome of checking several type pairs."""

    pair_count: int
    compatible_count: int
    incompatible_count: int
    reports: tuple[CompatibilityReport, ...] = ()
    summary_errors: tuple[str, ...] = ()


def check_compatibility(mapper: Mapper, source_type: type, dest_type: type) -> CompatibilityReport:
    """
    Check that ``source_type`` can be mapped into ``dest_type`` under
    ``mapper``'s matching rules.

    Raises:
        MapperUsageError: either type is not a record type.
    """
    for argument, shape in (("source_type", source_type), ("dest_type", dest_type)):
        if not is_record(shape):
            raise MapperUsageError(
                f"{argument} must be a record type, got {shape_name(shape)}", argument
            )

    probe = dataclasses.replace(
        mapper,
        fail_on_missing_source_field=False,
        fail_on_incompatible_types=False,
    )
    _, result = probe.map_to_new(zero_value(source_type), dest_type)
    return CompatibilityReport(
        source_type=shape_name(source_type),
        dest_type=shape_name(dest_type),
        compatible=result.success,
        missing_source_fields=result.missing_source_fields,
        errors=result.errors,
    )


def run_compatibility_checks(
    mapper: Mapper,
    pairs: Sequence[tuple[type, type]],
) -> CompatibilityRunReport:
    """Check every pair and summarise distinct error messages."""
    reports = tuple(check_compatibility(mapper, src, dst) for src, dst in pairs)
    all_errors: set[str] = set()
    for report in reports:
        for message in report.errors:
            all_errors.add(f"{report.source_type} -> {report.dest_type}: {message}")

    compatible_count = sum(1 for r in reports if r.compatible)
    return CompatibilityRunReport(
        pair_count=len(reports),
        compatible_count=compatible_count,
        incompatible_count=len(reports) - compatible_count,
        reports=reports,
        summary_errors=tuple(sorted(all_errors)),
    )


def assert_compatible(
    mapper: Mapper, source_type: type, dest_type: type
) -> CompatibilityReport:
    """Raise AssertionError listing every problem if the pair is incompatible."""
    report = check_compatibility(mapper, source_type, dest_type)
    if not report.compatible:
        raise AssertionError(
            f"{report.source_type} cannot be mapped into {report.dest_type}: "
            + "; ".join(report.errors)
        )
    return report

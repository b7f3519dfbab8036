"""
Caller contract violations and reuse of one Mapper across threads.

MapperUsageError is raised for bad arguments regardless of the failure policy.
A Mapper holds no per-call state, so one instance can serve concurrent calls.
"""

import dataclasses
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import pytest

from struct_mapper.exceptions import MapperUsageError
from struct_mapper.mapping.engine import DEFAULT_MAPPER, Mapper


@dataclass
class Line:
    sku: str = ""
    qty: int = 0


@dataclass
class LineDTO:
    sku: str = ""
    qty: int = 0
    note: str = ""


@dataclass
class Order:
    ref: str = ""
    lines: list[Line] = field(default_factory=list)


@dataclass
class OrderDTO:
    ref: str = ""
    lines: list[LineDTO] = field(default_factory=list)


@dataclass(frozen=True)
class FrozenDTO:
    ref: str = ""


class TestUsageErrors:
    def test_destination_class_rejected(self, lenient_mapper):
        with pytest.raises(MapperUsageError) as exc_info:
            lenient_mapper.map(Order(), OrderDTO)
        assert exc_info.value.argument == "dest"
        assert exc_info.value.code == "MAPPER_USAGE"

    def test_scalar_destination_rejected(self, lenient_mapper):
        with pytest.raises(MapperUsageError):
            lenient_mapper.map(Order(), 5)

    def test_frozen_destination_instance_rejected(self, lenient_mapper):
        with pytest.raises(MapperUsageError):
            lenient_mapper.map(Order(), FrozenDTO())

    def test_none_source_rejected(self, lenient_mapper):
        with pytest.raises(MapperUsageError) as exc_info:
            lenient_mapper.map(None, OrderDTO())
        assert exc_info.value.argument == "source"

    def test_map_to_new_requires_record_type(self, lenient_mapper):
        with pytest.raises(MapperUsageError) as exc_info:
            lenient_mapper.map_to_new(Order(), list[OrderDTO])
        assert exc_info.value.argument == "dest_type"

    def test_map_to_new_rejects_none_source(self, lenient_mapper):
        with pytest.raises(MapperUsageError):
            lenient_mapper.map_to_new(None, OrderDTO)


class TestMapperConfiguration:
    def test_defaults_fail_fast(self):
        assert DEFAULT_MAPPER.fail_on_missing_source_field is True
        assert DEFAULT_MAPPER.fail_on_incompatible_types is True

    def test_mapper_is_frozen(self):
        mapper = Mapper()
        with pytest.raises(dataclasses.FrozenInstanceError):
            mapper.fuzzy_match = True

    def test_collections_normalized(self):
        renames = {"a": "b"}
        mapper = Mapper(
            field_renames=renames,
            custom_mappers=[len],
            ignored_dest_fields=["x"],
        )
        renames["c"] = "d"
        assert mapper.field_renames == (("a", "b"),)
        assert mapper.custom_mappers == (len,)
        assert mapper.ignored_dest_fields == frozenset({"x"})

    def test_mapper_is_hashable_value(self):
        a = Mapper(field_renames={"a": "b"}, ignored_dest_fields=["x"])
        b = Mapper(field_renames=[("a", "b")], ignored_dest_fields={"x"})
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b, Mapper()}) == 2

    def test_variant_via_replace(self, strict_mapper):
        lenient = dataclasses.replace(strict_mapper, fail_on_missing_source_field=False)
        assert lenient.fail_on_missing_source_field is False
        assert strict_mapper.fail_on_missing_source_field is True


class TestConcurrentUse:
    def test_shared_mapper_across_threads(self, lenient_mapper):
        def run(i: int):
            source = Order(f"ord-{i}", [Line(f"sku-{i}-{j}", j) for j in range(i % 5)])
            dest = OrderDTO()
            result = lenient_mapper.map(source, dest)
            return i, dest, result

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(run, range(200)))

        for i, dest, result in outcomes:
            count = i % 5
            assert dest.ref == f"ord-{i}"
            assert [line.sku for line in dest.lines] == [f"sku-{i}-{j}" for j in range(count)]
            expected_missing = tuple("lines.note" for _ in range(count)) or ("lines.note",)
            assert result.missing_source_fields == expected_missing

    def test_results_are_independent(self, lenient_mapper):
        first = lenient_mapper.map(Order("a", [Line("x", 1)]), OrderDTO())
        second = lenient_mapper.map(Order("b"), OrderDTO())
        assert first.missing_source_fields == ("lines.note",)
        assert second.missing_source_fields == ("lines.note",)
        assert first is not second

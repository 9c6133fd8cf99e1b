"""Tests for sol2promela.translator.type_mapper — Solidity types to descriptors."""

from __future__ import annotations

import pytest

from conftest import array, elementary, enum_def, mapping, struct_def, user_type
from sol2promela.core.config import TranslationConfig
from sol2promela.core.errors import UnresolvedBoundError, UnsupportedConstructError
from sol2promela.core.types import AbstractionCategory
from sol2promela.ir.descriptors import (
    Address,
    Bool,
    DynamicArray,
    Enum,
    FixedInt,
    FixedString,
    Mapping,
    StaticArray,
    Struct,
)
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.type_mapper import DefinitionIndex, TypeMapper, abi_type_name


@pytest.fixture
def ledger() -> AbstractionLedger:
    return AbstractionLedger()


def _mapper(**config) -> TypeMapper:
    return TypeMapper(TranslationConfig(**config))


# ── Elementary types ─────────────────────────────────────────────────────────


class TestElementary:
    """Integers, bools and addresses."""

    @pytest.mark.parametrize("name,bits,signed", [
        ("uint8", 8, False),
        ("int16", 16, True),
        ("uint32", 32, False),
        ("int64", 64, True),
    ])
    def test_supported_widths_are_exact(self, ledger, name, bits, signed):
        desc = _mapper().map_type(elementary(name), ledger, "C.x")
        assert desc == FixedInt(bits, signed)
        assert len(ledger) == 0

    def test_wide_int_uses_fallback_and_records(self, ledger):
        desc = _mapper(int_width_fallback=16).map_type(elementary("uint256"), ledger, "C.x")
        assert desc == FixedInt(16, False)
        records = ledger.by_category(AbstractionCategory.TYPE_WIDTH)
        assert len(records) == 1
        assert "C.x" in records[0].description

    def test_bare_uint_uses_fallback(self, ledger):
        desc = _mapper().map_type(elementary("uint"), ledger, "C.x")
        assert desc == FixedInt(8, False)
        assert len(ledger.by_category(AbstractionCategory.TYPE_WIDTH)) == 1

    def test_odd_width_widens_to_next_supported(self, ledger):
        desc = _mapper().map_type(elementary("int24"), ledger, "C.x")
        assert desc == FixedInt(32, True)
        assert len(ledger) == 1

    def test_bool(self, ledger):
        assert _mapper().map_type(elementary("bool"), ledger, "C.b") == Bool()

    def test_address_payable_is_address(self, ledger):
        assert _mapper().map_type(elementary("address payable"), ledger, "C.a") == Address()

    def test_promela_hosts(self):
        assert FixedInt(8).promela_type == "byte"
        assert FixedInt(8, signed=True).promela_type == "short"
        assert FixedInt(16).promela_type == "int"
        assert FixedInt(64).promela_type == "int"
        assert Address().promela_type == "byte"

    def test_host_checkable(self):
        assert FixedInt(16).host_checkable
        assert FixedInt(32, signed=True).host_checkable
        assert not FixedInt(32).host_checkable
        assert not FixedInt(64, signed=True).host_checkable


# ── Strings ──────────────────────────────────────────────────────────────────


class TestStrings:
    def test_string_uses_declaration_bound(self, ledger):
        mapper = _mapper(string_max_bytes={"C.name": 12}, default_string_max_bytes=32)
        desc = mapper.map_type(elementary("string"), ledger, "C.name")
        assert desc == FixedString(12)
        assert len(ledger.by_category(AbstractionCategory.STRING)) == 1

    def test_string_without_bound_is_fatal(self, ledger):
        with pytest.raises(UnresolvedBoundError) as exc_info:
            _mapper().map_type(elementary("string"), ledger, "C.name")
        assert exc_info.value.declaration == "C.name"

    def test_fixed_bytes(self, ledger):
        assert _mapper().map_type(elementary("bytes4"), ledger, "C.sig") == FixedString(4)


# ── Collections ──────────────────────────────────────────────────────────────


class TestCollections:
    def test_dynamic_array_declaration_bound_wins(self, ledger):
        mapper = _mapper(dynamic_array_max_len={"C.items": 2}, default_array_max_len=5)
        desc = mapper.map_type(array(elementary("uint8")), ledger, "C.items")
        assert desc == DynamicArray(FixedInt(8), 2)

    def test_dynamic_array_falls_back_to_default(self, ledger):
        desc = _mapper(default_array_max_len=5).map_type(array(elementary("uint8")), ledger, "C.items")
        assert desc == DynamicArray(FixedInt(8), 5)

    def test_dynamic_array_without_bound_is_fatal(self, ledger):
        with pytest.raises(UnresolvedBoundError):
            _mapper().map_type(array(elementary("uint8")), ledger, "C.items")

    def test_static_array_needs_no_bound(self, ledger):
        desc = _mapper().map_type(array(elementary("bool"), 3), ledger, "C.flags")
        assert desc == StaticArray(Bool(), 3)

    def test_mapping(self, ledger):
        mapper = _mapper(mapping_max_entries={"C.balances": 3})
        desc = mapper.map_type(mapping(elementary("address"), elementary("uint8")), ledger, "C.balances")
        assert desc == Mapping(Address(), FixedInt(8), 3)
        assert desc.promela_type == "Map_addr_u8_3"

    def test_nested_collection_uses_global_default(self, ledger):
        mapper = _mapper(mapping_max_entries={"C.m": 2}, default_array_max_len=4)
        desc = mapper.map_type(
            mapping(elementary("address"), array(elementary("uint8"))), ledger, "C.m",
        )
        assert desc == Mapping(Address(), DynamicArray(FixedInt(8), 4), 2)

    def test_mapping_without_bound_is_fatal(self, ledger):
        with pytest.raises(UnresolvedBoundError) as exc_info:
            _mapper().map_type(mapping(elementary("address"), elementary("uint8")), ledger, "C.m")
        assert exc_info.value.kind == "mapping"

    def test_non_scalar_key_rejected(self, ledger):
        mapper = _mapper(default_mapping_max_entries=2, default_array_max_len=2)
        with pytest.raises(UnsupportedConstructError):
            mapper.map_type(mapping(array(elementary("uint8")), elementary("uint8")), ledger, "C.m")


# ── User-defined types ───────────────────────────────────────────────────────


class TestUserDefined:
    def test_enum_values_in_order(self, ledger):
        node = enum_def("State", "Open", "Closed")
        index = DefinitionIndex()
        index.add(node)
        desc = TypeMapper(TranslationConfig(), index).map_type(user_type(node), ledger, "C.s")
        assert desc == Enum("State", ("Open", "Closed"))
        assert desc.constant("Closed") == "State_Closed"
        assert desc.zero_value() == "State_Open"

    def test_struct_fields(self, ledger):
        node = struct_def("Account", ("owner", elementary("address")), ("amount", elementary("uint8")))
        index = DefinitionIndex()
        index.add(node)
        desc = TypeMapper(TranslationConfig(), index).map_type(user_type(node), ledger, "C.acct")
        assert isinstance(desc, Struct)
        assert desc.field_type("amount") == FixedInt(8)
        assert desc.promela_type == "S_Account"

    def test_unknown_user_type_rejected(self, ledger):
        ghost = {"nodeType": "UserDefinedTypeName", "referencedDeclaration": 1, "pathNode": {"name": "Ghost"}}
        with pytest.raises(UnsupportedConstructError):
            _mapper().map_type(ghost, ledger, "C.g")

    def test_unknown_type_node_rejected(self, ledger):
        with pytest.raises(UnsupportedConstructError):
            _mapper().map_type({"nodeType": "FunctionTypeName"}, ledger, "C.f")


class TestDeterminism:
    def test_same_node_same_bounds_equal_descriptors(self):
        node = mapping(elementary("address"), array(elementary("uint16")))
        config = dict(default_mapping_max_entries=3, default_array_max_len=2)
        first = _mapper(**config).map_type(node, AbstractionLedger(), "C.m")
        second = _mapper(**config).map_type(node, AbstractionLedger(), "C.m")
        assert first == second
        assert hash(first) == hash(second)


class TestAbiNames:
    def test_canonical_names(self):
        index = DefinitionIndex()
        assert abi_type_name(elementary("uint"), index) == "uint256"
        assert abi_type_name(elementary("address payable"), index) == "address"
        assert abi_type_name(array(elementary("uint8")), index) == "uint8[]"

    def test_enum_is_uint8(self):
        node = enum_def("State", "A")
        index = DefinitionIndex()
        index.add(node)
        assert abi_type_name(user_type(node), index) == "uint8"

"""Tests for sol2promela.core.ast_analyzer — solc AST to Contract IR."""

from __future__ import annotations

import pytest

from conftest import (
    array,
    assign,
    block,
    contract,
    elementary,
    enum_def,
    event_def,
    expr_stmt,
    function,
    ident,
    new,
    source_unit,
    state_var,
    user_type,
    var,
)
from sol2promela.core.ast_analyzer import function_selector, normalize_ast
from sol2promela.core.config import TranslationConfig
from sol2promela.core.errors import UnresolvedBoundError, UnsupportedConstructError
from sol2promela.core.types import AbstractionCategory, StateMutability, Visibility
from sol2promela.ir.descriptors import Address, FixedInt
from sol2promela.translator.ledger import AbstractionLedger


def _normalize(ast, **config):
    unit, ledger, _ = normalize_ast(ast, TranslationConfig(**config), AbstractionLedger())
    return unit, ledger


class TestSelectors:
    def test_known_selector(self):
        assert function_selector("transfer(address,uint256)") == 0xA9059CBB

    def test_selector_computed_from_canonical_signature(self):
        ast = source_unit(contract(
            "Token",
            function("transfer", params=[var("to", elementary("address")), var("amount", elementary("uint256"))]),
        ))
        unit, _ = _normalize(ast)
        func = unit.main.get_function("transfer")
        assert func.canonical == "transfer(address,uint256)"
        assert func.selector == 0xA9059CBB
        assert func.selector_signed == 0xA9059CBB - (1 << 32)

    def test_solc_selector_preferred(self):
        node = function("ping")
        node["functionSelector"] = "5c36b186"
        unit, _ = _normalize(source_unit(contract("P", node)))
        assert unit.main.get_function("ping").selector == 0x5C36B186


class TestContracts:
    def test_main_is_last_contract(self, bank_ast):
        ast = source_unit(contract("Helper"), *bank_ast["nodes"])
        unit, _ = _normalize(ast)
        assert unit.main.name == "Bank"

    def test_configured_main(self, bank_ast):
        ast = source_unit(*bank_ast["nodes"], contract("Other"))
        unit, _ = _normalize(ast, main_contract="Bank")
        assert unit.main.name == "Bank"

    def test_missing_main_rejected(self, bank_ast):
        with pytest.raises(UnsupportedConstructError):
            _normalize(bank_ast, main_contract="Nope")

    def test_contract_addresses_follow_agents(self, bank_ast):
        unit, _ = _normalize(bank_ast, agent_count=3)
        assert unit.main.address == 4

    def test_state_variables_and_functions(self, bank_ast):
        unit, _ = _normalize(bank_ast)
        bank = unit.main
        assert bank.get_state_variable("balance").type == FixedInt(8)
        add = bank.get_function("add")
        assert add.visibility == Visibility.PUBLIC
        assert add.state_mutability == StateMutability.NONPAYABLE
        assert [p.name for p in add.parameters] == ["x"]
        assert bank.external_functions == [add]

    def test_unnamed_returns_get_names(self):
        ast = source_unit(contract("C", function("get", returns=[var("", elementary("bool"))])))
        unit, _ = _normalize(ast)
        assert unit.main.get_function("get").returns[0].name == "ret0"

    def test_events_and_enums(self):
        ast = source_unit(contract(
            "C",
            enum_def("Phase", "Init", "Done"),
            event_def("Moved", var("to", elementary("address"))),
        ))
        unit, _ = _normalize(ast)
        assert unit.main.enums[0].values == ("Init", "Done")
        assert unit.main.get_event("Moved").fields[0][1] == Address()

    def test_inheritance_override(self):
        base = contract("Base", function("get", body=[expr_stmt(ident("a"))]), state_var("a", elementary("bool")))
        derived = contract("Derived", function("get"), bases=[base["id"]])
        unit, _ = _normalize(source_unit(base, derived))
        assert unit.main.name == "Derived"
        assert len(unit.main.functions) == 1
        assert unit.main.get_state_variable("a") is not None
        assert unit.main.get_function("get").body == block()

    def test_inherited_declaration_recorded_once(self):
        base = contract("Base", state_var("total", elementary("uint256")), function("ping"))
        derived = contract("Derived", state_var("peer", user_type(base)), bases=[base["id"]])
        unit, ledger = _normalize(source_unit(base, derived))
        assert [c.name for c in unit.contracts] == ["Derived", "Base"]
        assert unit.main.get_state_variable("total") is not None
        records = ledger.by_category(AbstractionCategory.TYPE_WIDTH)
        assert [r.description for r in records] == ["'Base.total': uint256 mapped to uint8"]

    def test_referenced_contract_is_predeployed(self):
        token = contract("Token", function("ping"))
        vault = contract("Vault", state_var("token", user_type(token)))
        unit, ledger = _normalize(source_unit(token, vault))
        assert [c.name for c in unit.contracts] == ["Vault", "Token"]
        assert unit.main.get_state_variable("token").type == Address(contract="Token")
        records = ledger.by_category(AbstractionCategory.INSTANCE)
        assert len(records) == 1
        assert "pre-deployed" in records[0].description

    def test_created_contract_is_not_predeployed(self):
        child = contract("Child", function("ping"))
        factory = contract("Factory", function("make", body=[expr_stmt(new(child))]))
        unit, ledger = _normalize(source_unit(child, factory))
        assert [c.name for c in unit.contracts] == ["Factory", "Child"]
        assert ledger.by_category(AbstractionCategory.INSTANCE) == []


class TestClosedNodeSet:
    def test_unknown_statement_rejected(self):
        asm = {"nodeType": "InlineAssembly", "src": "5:10:0"}
        ast = source_unit(contract("C", function("f", body=[asm])))
        with pytest.raises(UnsupportedConstructError) as exc_info:
            _normalize(ast)
        assert exc_info.value.node_kind == "InlineAssembly"

    def test_unknown_member_rejected(self):
        ast = source_unit(contract("C", {"nodeType": "UserDefinedValueTypeDefinition", "name": "U"}))
        with pytest.raises(UnsupportedConstructError):
            _normalize(ast)

    def test_not_a_source_unit(self):
        with pytest.raises(UnsupportedConstructError):
            _normalize({"nodeType": "ContractDefinition"})

    def test_unbounded_state_collection_is_fatal(self):
        ast = source_unit(contract("C", state_var("xs", array(elementary("uint8")))))
        with pytest.raises(UnresolvedBoundError):
            _normalize(ast)

    def test_assignment_body_passes(self):
        ast = source_unit(contract(
            "C", state_var("a", elementary("uint8")),
            function("f", body=[expr_stmt(assign(ident("a"), ident("a")))]),
        ))
        unit, _ = _normalize(ast)
        assert unit.main.get_function("f") is not None

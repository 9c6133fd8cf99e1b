"""Tests for sol2promela.translator.gas — the static search-depth hint."""

from __future__ import annotations

from conftest import (
    assign,
    call,
    contract,
    elementary,
    emit,
    event_def,
    expr_stmt,
    function,
    ident,
    member,
    source_unit,
    state_var,
    user_type,
)
from sol2promela.core.ast_analyzer import normalize_ast
from sol2promela.core.config import TranslationConfig
from sol2promela.translator.gas import BASE_TRANSACTION_GAS, NODE_GAS, estimate_gas_hint, function_cost
from sol2promela.translator.ledger import AbstractionLedger


def _main(ast):
    unit, _, _ = normalize_ast(ast, TranslationConfig(), AbstractionLedger())
    return unit.main


class TestFunctionCost:
    def test_bank_add(self, bank_ast):
        bank = _main(bank_ast)
        # storage write plus the read of the compound assignment target
        assert function_cost(bank, bank.get_function("add")) == 28_100

    def test_empty_function_is_base_cost(self):
        c = _main(source_unit(contract("C", function("noop"))))
        assert function_cost(c, c.get_function("noop")) == BASE_TRANSACTION_GAS

    def test_event_and_local_write(self):
        c = _main(source_unit(contract(
            "C",
            event_def("Ping"),
            function("ping", body=[emit("Ping")]),
        )))
        assert function_cost(c, c.get_function("ping")) == BASE_TRANSACTION_GAS + NODE_GAS["event"]

    def test_external_call(self):
        token = contract("Token", function("ping"))
        target = member(ident("token"), "ping")
        target["expression"]["typeDescriptions"] = {"typeString": "contract Token"}
        vault = contract(
            "Vault",
            state_var("token", user_type(token)),
            function("poke", body=[expr_stmt(call(target))]),
        )
        c = _main(source_unit(token, vault))
        expected = BASE_TRANSACTION_GAS + NODE_GAS["external_call"] + NODE_GAS["storage_read"]
        assert function_cost(c, c.get_function("poke")) == expected


class TestHint:
    def test_bank_hint(self, bank_ast):
        hint = estimate_gas_hint(_main(bank_ast), 30_000_000)
        assert hint.cheapest_transaction == 28_100
        assert hint.max_transactions == 30_000_000 // 28_100
        assert hint.search_depth == hint.max_transactions * 3

    def test_cheapest_function_wins(self):
        c = _main(source_unit(contract(
            "C",
            state_var("a", elementary("uint8")),
            function("write", body=[expr_stmt(assign(ident("a"), ident("a")))]),
            function("noop"),
        )))
        hint = estimate_gas_hint(c, 42_000)
        assert hint.cheapest_transaction == BASE_TRANSACTION_GAS
        assert hint.max_transactions == 2

    def test_no_external_function(self):
        c = _main(source_unit(contract("C", function("hidden", visibility="internal"))))
        assert estimate_gas_hint(c, 30_000_000) is None

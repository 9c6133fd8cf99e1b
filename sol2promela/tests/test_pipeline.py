"""End-to-end tests for sol2promela.pipeline — AST in, PROMELA text out."""

from __future__ import annotations

import logging

import pytest

from conftest import (
    binop,
    contract,
    elementary,
    function,
    ident,
    index,
    lit,
    mapping,
    require,
    ret,
    source_unit,
    state_var,
    var,
)
from sol2promela.core.config import TranslationConfig
from sol2promela.core.errors import InvalidAgentConfig, UnresolvedBoundError
from sol2promela.core.types import AbstractionCategory, Location
from sol2promela.pipeline import TranslationOrchestrator, translate
from sol2promela.promela.emitter import NEVER_CLAIM_MARKER
from sol2promela.translator.ledger import AbstractionLedger


class TestBank:
    def test_channels_and_processes(self, bank_ast, bank_config):
        text = translate(bank_ast, bank_config).text
        assert "chan Bank_add_call = [0] of { byte, byte, int, byte };" in text
        assert "chan Bank_add_result = [0] of { bit };" in text
        assert "proctype Bank(byte creator; byte origin) {" in text
        assert "proctype Agent0() {" in text
        assert "proctype Agent1() {" in text
        assert ":: Bank_add_call ? msg_sender, tx_origin, msg_value, add_x ->" in text
        assert "ret_1: Bank_add_result ! 0" in text

    def test_declarations(self, bank_ast, bank_config):
        text = translate(bank_ast, bank_config).text
        assert "#define Bank_ADDR 3  /* contract Bank */" in text
        assert "#define AGENT_1_ADDR 2" in text
        assert "#define GAS_TX_HINT 1067" in text
        assert "#define GAS_DEPTH_HINT 3201" in text
        assert "byte Bank_balance;" in text
        assert "int Bank_eth = 0;" in text
        assert "byte lock = LOCK_IDLE;" in text

    def test_init_deploys_then_starts_agents(self, bank_ast, bank_config):
        text = translate(bank_ast, bank_config).text
        init = text[text.index("init {"):]
        deploy = init.index("run Bank(AGENT_0_ADDR, AGENT_0_ADDR)")
        assert init.index("block_difficulty = 0") < deploy < init.index("run Agent0()") < init.index("run Agent1()")

    def test_overflow_dead_end_rendered(self, bank_ast, bank_config):
        text = translate(bank_ast, bank_config).text
        assert ":: Bank_balance <= 255 - add_x" in text
        assert "end_overflow_1: false" in text

    def test_ledger(self, bank_ast, bank_config):
        result = translate(bank_ast, bank_config)
        assert result.ledger.counts() == {"AgentStepBoundAbstraction": 2}
        assert " * 2 abstraction(s) recorded" in result.text

    def test_caller_ledger_is_extended(self, bank_ast, bank_config):
        ledger = AbstractionLedger()
        result = translate(bank_ast, bank_config, ledger)
        assert result.ledger is ledger
        assert len(ledger) == 2

    def test_to_dict(self, bank_ast, bank_config):
        report = translate(bank_ast, bank_config).to_dict()
        assert report["contract"] == "Bank"
        assert report["promela"].endswith(NEVER_CLAIM_MARKER + "\n")
        assert report["abstraction_counts"] == {"AgentStepBoundAbstraction": 2}
        assert report["abstractions"][0]["category"] == "AgentStepBoundAbstraction"

    def test_deterministic(self, bank_ast, bank_config):
        first = translate(bank_ast, bank_config).text
        second = TranslationOrchestrator(bank_config).run(bank_ast).text
        assert first == second

    def test_properties(self, bank_ast):
        config = TranslationConfig(
            agent_count=1,
            per_argument_value_domain={"add": {0: {"values": [1]}}},
            properties={"bounded": "Bank_balance <= 200"},
        )
        assert "#define prop_bounded (Bank_balance <= 200)" in translate(bank_ast, config).text


class TestLedgerContents:
    def test_exact_model_records_nothing(self, bank_ast):
        config = TranslationConfig(
            agent_count=2,
            agent_max_steps=None,
            per_argument_value_domain={"add": {0: {"values": [0, 1, 2]}}},
        )
        result = translate(bank_ast, config)
        assert len(result.ledger) == 0
        assert " * 0 abstraction(s) recorded" in result.text

    def test_wide_state_variable_recorded_at_its_declaration(self):
        total = state_var("total", elementary("uint256"))
        total["src"] = "24:18:0"
        ast = source_unit(contract("Counter", total, function("noop")))
        result = translate(ast, TranslationConfig(agent_max_steps=None))
        assert len(result.ledger) == 1
        record = result.ledger.by_category(AbstractionCategory.TYPE_WIDTH)[0]
        assert record.source_location == Location(offset=24, length=18)
        assert record.description == "'Counter.total': uint256 mapped to uint8"


class TestMappings:
    def test_mapping_typedef_and_helpers(self):
        ast = source_unit(contract(
            "Ledger",
            state_var("balances", mapping(elementary("address"), elementary("uint8"))),
            function("get", params=[var("a", elementary("address"))],
                     returns=[var("", elementary("uint8"))],
                     body=[ret(index(ident("balances"), ident("a")))]),
        ))
        result = translate(ast, TranslationConfig(mapping_max_entries={"Ledger.balances": 3}))
        text = result.text
        assert "typedef Map_addr_u8_3 {" in text
        assert "    byte vals[4];" in text
        assert "inline Map_addr_u8_3_find(_m, _k, _i) {" in text
        assert "inline Map_addr_u8_3_slot(_m, _k, _i, _ok) {" in text
        assert "Map_addr_u8_3 Ledger_balances;" in text
        assert "chan Ledger_get_result = [0] of { byte };" in text
        # the address argument defaults to known addresses
        assert len(result.ledger.by_category(AbstractionCategory.VALUE_DOMAIN)) == 1


class TestFailures:
    def test_unbounded_collection_aborts(self, caplog):
        ast = source_unit(contract("C", state_var("names", elementary("string")), function("f")))
        with caplog.at_level(logging.ERROR, logger="sol2promela"):
            with pytest.raises(UnresolvedBoundError):
                translate(ast, TranslationConfig())
        records = [r for r in caplog.records if getattr(r, "error_code", None)]
        assert records[0].error_code == "UNRESOLVED_BOUND"
        assert records[0].stage == "normalize"

    def test_agent_config_checked_first(self, bank_ast):
        config = TranslationConfig(agent_count=2, agent_address_domain=[1])
        with pytest.raises(InvalidAgentConfig):
            translate(bank_ast, config)

    def test_missing_domain_aborts(self, bank_ast):
        with pytest.raises(InvalidAgentConfig):
            translate(bank_ast, TranslationConfig())


class TestGuards:
    def test_comparison_require(self):
        ast = source_unit(contract(
            "Gate",
            state_var("count", elementary("uint8")),
            function("enter", body=[require(binop(ident("count"), "<", lit(3)))]),
        ))
        text = translate(ast, TranslationConfig()).text
        assert ":: (Gate_count < 3)" in text
        assert "end_require_1: false  /* require failed */" in text

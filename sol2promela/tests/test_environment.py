"""Tests for sol2promela.translator.environment — block/tx globals and the lock."""

from __future__ import annotations

import pytest

from sol2promela.core.config import TranslationConfig
from sol2promela.core.errors import InvalidAgentConfig
from sol2promela.promela.model import Assign, If, Select
from sol2promela.translator.collections import TypeRegistry
from sol2promela.translator.environment import (
    LOCK_IDLE,
    GlobalEnvironmentInitializer,
    initialize_environment,
    lock_held,
)
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.scope import ProcessScope


def _scope() -> ProcessScope:
    return ProcessScope("Agent0", TypeRegistry())


class TestDeclarations:
    def test_defines(self):
        env = GlobalEnvironmentInitializer(TranslationConfig(gas_limit=1000, tx_gas_price=7))
        defines = {d.name: d.value for d in env.defines()}
        assert defines == {
            "BLOCK_COINBASE": "0",
            "BLOCK_GASLIMIT": "1000",
            "TX_GASPRICE": "7",
            "LOCK_IDLE": "0",
        }

    def test_globals(self):
        env = GlobalEnvironmentInitializer(TranslationConfig(initial_timestamp=100))
        inits = {g.name: g.init for g in env.globals()}
        assert inits == {
            "block_number": "1",
            "block_timestamp": "100",
            "block_difficulty": "0",
            "lock": "LOCK_IDLE",
        }

    def test_lock_values(self):
        assert LOCK_IDLE == 0
        assert lock_held(0) == 1
        assert lock_held(2) == 3

    def test_stage_entry_point(self):
        ledger = AbstractionLedger()
        environment, artifacts, returned = initialize_environment(TranslationConfig(), ledger)
        assert returned is ledger
        assert len(ledger) == 0
        assert artifacts.init == [Assign("block_difficulty", "0")]
        assert isinstance(environment, GlobalEnvironmentInitializer)

    def test_empty_difficulty_domain(self):
        with pytest.raises(InvalidAgentConfig):
            GlobalEnvironmentInitializer(TranslationConfig(difficulty_domain={"values": []}))


class TestBlockAdvance:
    def test_default_steps(self):
        env = GlobalEnvironmentInitializer(TranslationConfig())
        assert env.block_advance(_scope()) == [
            Assign("block_number", "block_number + 1"),
            Assign("block_timestamp", "block_timestamp + 1"),
            Assign("block_difficulty", "0"),
        ]

    def test_step_choices(self):
        config = TranslationConfig(timestamp_step_domain={"values": [1, 15]}, difficulty_domain={"values": [0, 9]})
        stmts = GlobalEnvironmentInitializer(config).block_advance(_scope())
        assert stmts[1] == If(options=[
            [Assign("block_timestamp", "block_timestamp + 1")],
            [Assign("block_timestamp", "block_timestamp + 15")],
        ])
        assert stmts[2] == If(options=[[Assign("block_difficulty", "0")], [Assign("block_difficulty", "9")]])

    def test_range_step_uses_select(self):
        config = TranslationConfig(block_step_domain={"low": 1, "high": 5})
        scope = _scope()
        stmts = GlobalEnvironmentInitializer(config).block_advance(scope)
        assert stmts[0] == Select("step", 1, 5)
        assert stmts[1] == Assign("block_number", "block_number + step")
        assert [v.name for v in scope.locals] == ["step"]

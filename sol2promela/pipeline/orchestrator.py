"""Translation orchestrator — coordinates the AST to PROMELA pipeline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from sol2promela.core.ast_analyzer import normalize_ast
from sol2promela.core.config import TranslationConfig
from sol2promela.core.errors import TranslationError
from sol2promela.ir.contract import SourceUnitIR
from sol2promela.promela.emitter import PromelaEmitter
from sol2promela.promela.model import Atomic, PromelaModel, Stmt
from sol2promela.translator.agents import synthesize_agents, validate_agent_config
from sol2promela.translator.collections import TypeRegistry
from sol2promela.translator.environment import initialize_environment
from sol2promela.translator.gas import estimate_gas_hint
from sol2promela.translator.generator import generate_contracts
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.scope import TranslationState

logger = logging.getLogger(__name__)


@dataclass
class TranslationResult:
    """Everything one translation produced."""
    text: str
    model: PromelaModel
    unit: SourceUnitIR
    ledger: AbstractionLedger

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract": self.model.name,
            "promela": self.text,
            "abstractions": self.ledger.to_report(),
            "abstraction_counts": self.ledger.counts(),
        }


class TranslationOrchestrator:
    """Coordinates one translation.

    Flow:
    1. VALIDATE    — agent configuration checks that need no contract
    2. NORMALIZE   — solc AST to Contract IR
    3. GENERATE    — contract processes and channels
    4. ENVIRONMENT — block/tx globals and the transaction lock
    5. AGENTS      — external callers of the main contract
    6. GAS         — search-depth hint
    7. EMIT        — PROMELA text, only once every stage succeeded
    """

    def __init__(self, config: TranslationConfig | None = None) -> None:
        self.config = config or TranslationConfig.from_settings()
        self._emitter = PromelaEmitter()

    def run(self, ast: dict[str, Any], ledger: AbstractionLedger | None = None) -> TranslationResult:
        ledger = ledger if ledger is not None else AbstractionLedger()
        started = time.monotonic()
        contract = ""
        stage = "validate"
        try:
            self._stage(stage, contract, started, ledger)
            validate_agent_config(self.config)

            stage = "normalize"
            unit, ledger, mapper = normalize_ast(ast, self.config, ledger)
            contract = unit.main.name
            self._stage(stage, contract, started, ledger)

            stage = "generate"
            state = TranslationState(
                unit=unit, config=self.config, ledger=ledger,
                registry=TypeRegistry(), mapper=mapper,
            )
            contracts, ledger = generate_contracts(state)
            self._stage(stage, contract, started, ledger)

            stage = "environment"
            environment, env, ledger = initialize_environment(self.config, ledger)
            self._stage(stage, contract, started, ledger)

            stage = "agents"
            agents, ledger = synthesize_agents(unit, self.config, state.registry, environment, ledger)
            self._stage(stage, contract, started, ledger)

            stage = "gas"
            hint = estimate_gas_hint(unit.main, self.config.gas_limit)

            init: list[Stmt] = [Atomic(body=env.init + contracts.deployments + agents.runs)]
            model = PromelaModel(
                name=unit.main.name,
                defines=contracts.defines + env.defines + agents.defines,
                typedefs=state.registry.typedefs,
                channels=contracts.channels,
                globals=contracts.globals + env.globals,
                inlines=state.registry.inlines,
                processes=contracts.processes + agents.processes,
                init_locals=contracts.init_locals,
                init=init,
                properties=dict(self.config.properties),
                gas_hint=hint,
            )

            stage = "emit"
            text = self._emitter.emit(model, len(ledger))
        except TranslationError as exc:
            logger.error(
                "Translation failed in %s: %s",
                stage, exc,
                extra={"stage": stage, "contract": contract, "error_code": exc.code.value},
            )
            raise

        duration_ms = round((time.monotonic() - started) * 1000, 1)
        logger.info(
            "Translated '%s' with %d abstraction(s)",
            contract, len(ledger),
            extra={
                "stage": "done",
                "contract": contract,
                "duration_ms": duration_ms,
                "ledger_size": len(ledger),
            },
        )
        return TranslationResult(text=text, model=model, unit=unit, ledger=ledger)

    @staticmethod
    def _stage(stage: str, contract: str, started: float, ledger: AbstractionLedger) -> None:
        logger.debug(
            "Stage %s",
            stage,
            extra={
                "stage": stage,
                "contract": contract,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
                "ledger_size": len(ledger),
            },
        )


def translate(
    ast: dict[str, Any],
    config: TranslationConfig | None = None,
    ledger: AbstractionLedger | None = None,
) -> TranslationResult:
    """Translate a solc compact-JSON AST into a PROMELA model.

    All-or-nothing: any ``TranslationError`` propagates and no text is
    produced.
    """
    return TranslationOrchestrator(config).run(ast, ledger)

"""Global Environment Initializer — block/tx/msg globals and their update rules.

| Solidity          | PROMELA                                   | Updated by            |
|-------------------|-------------------------------------------|-----------------------|
| block.coinbase    | ``#define BLOCK_COINBASE 0``              | never                 |
| block.gaslimit    | ``#define BLOCK_GASLIMIT <gas_limit>``    | never                 |
| block.number      | ``int block_number = 1``                  | agents, +step >= 1    |
| block.timestamp   | ``int block_timestamp = <initial>``       | agents, +step >= 1    |
| block.difficulty  | ``int block_difficulty``                  | init and agents       |
| tx.gasprice       | ``#define TX_GASPRICE <price>``           | never                 |
| msg.sender/value, | process locals received over the call     | each call             |
| tx.origin         | channel                                   |                       |

The lock is ``byte lock``: ``LOCK_IDLE`` (0) or ``Held(i)`` = ``i + 1``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sol2promela.core.config import TranslationConfig, ValueDomain
from sol2promela.core.errors import InvalidAgentConfig
from sol2promela.promela.model import Assign, Define, If, Stmt, VarDecl, choice
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.scope import ProcessScope

logger = logging.getLogger(__name__)

LOCK_IDLE = 0


def lock_held(agent_index: int) -> int:
    """Lock value while agent ``agent_index`` holds it."""
    return agent_index + 1


@dataclass
class EnvironmentArtifacts:
    defines: list[Define] = field(default_factory=list)
    globals: list[VarDecl] = field(default_factory=list)
    init: list[Stmt] = field(default_factory=list)


class GlobalEnvironmentInitializer:
    """Declare the environment globals and build their update statements."""

    def __init__(self, config: TranslationConfig) -> None:
        self.config = config
        if config.difficulty_domain.is_empty:
            raise InvalidAgentConfig("difficulty_domain must not be empty")

    def defines(self) -> list[Define]:
        return [
            Define("BLOCK_COINBASE", "0", "block.coinbase"),
            Define("BLOCK_GASLIMIT", str(self.config.gas_limit), "block.gaslimit"),
            Define("TX_GASPRICE", str(self.config.tx_gas_price), "tx.gasprice, fixed"),
            Define("LOCK_IDLE", str(LOCK_IDLE)),
        ]

    def globals(self) -> list[VarDecl]:
        return [
            VarDecl("block_number", "int", init="1"),
            VarDecl("block_timestamp", "int", init=str(self.config.initial_timestamp)),
            VarDecl("block_difficulty", "int", init="0"),
            VarDecl("lock", "byte", init="LOCK_IDLE"),
        ]

    def init_statements(self) -> list[Stmt]:
        return [self._choose("block_difficulty", self.config.difficulty_domain)]

    def block_advance(self, process: ProcessScope) -> list[Stmt]:
        """Statements an agent runs between transactions.

        ``block_number`` and ``block_timestamp`` grow by a positive step;
        ``block_difficulty`` is chosen afresh.
        """
        return [
            *self._advance("block_number", self.config.block_step_domain, process),
            *self._advance("block_timestamp", self.config.timestamp_step_domain, process),
            self._choose("block_difficulty", self.config.difficulty_domain),
        ]

    def _advance(self, var: str, domain: ValueDomain, process: ProcessScope) -> list[Stmt]:
        if domain.is_range:
            step = process.declare_raw("step", "int")
            return [choice(step, low=domain.low, high=domain.high), Assign(var, f"{var} + {step}")]
        values = domain.expand()
        if len(values) == 1:
            return [Assign(var, f"{var} + {values[0]}")]
        return [If(options=[[Assign(var, f"{var} + {v}")] for v in values])]

    @staticmethod
    def _choose(var: str, domain: ValueDomain) -> Stmt:
        if domain.is_range:
            return choice(var, low=domain.low, high=domain.high)
        return choice(var, values=domain.expand())


def initialize_environment(
    config: TranslationConfig,
    ledger: AbstractionLedger,
) -> tuple[GlobalEnvironmentInitializer, EnvironmentArtifacts, AbstractionLedger]:
    """Stage entry point: environment declarations plus the initializer agents use."""
    environment = GlobalEnvironmentInitializer(config)
    artifacts = EnvironmentArtifacts(
        defines=environment.defines(),
        globals=environment.globals(),
        init=environment.init_statements(),
    )
    logger.debug(
        "Environment initialized with %d define(s) and %d global(s)",
        len(artifacts.defines), len(artifacts.globals),
        extra={"stage": "environment"},
    )
    return environment, artifacts, ledger

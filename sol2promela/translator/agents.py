"""Agent Process Synthesizer — N external callers of the main contract.

Each agent is one process::

    proctype Agent0() {
    end_agent:
        do
        :: steps < AGENT_MAX_STEPS ->
            end_lock: atomic { lock == LOCK_IDLE -> lock = 1 };
            if
            :: true -> <choose args>; end_call_1: Bank_add_call ! AGENT_0_ADDR, AGENT_0_ADDR, 0, add_x;
                       end_wait_1: Bank_add_result ? _
            ...
            fi;
            lock = LOCK_IDLE;
            atomic { <advance block number, timestamp, difficulty> };
            steps++
        od
    }

There is no ``else`` branch: once the step bound is reached the agent sits
at ``end_agent``, a valid end state. Every blocking point is end-labelled,
so a contract that dead-ended leaves its caller in a valid end state too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sol2promela.core.config import TranslationConfig, ValueDomain
from sol2promela.core.errors import InvalidAgentConfig
from sol2promela.core.types import AbstractionCategory
from sol2promela.ir.contract import AgentSpec, ContractIR, FunctionSignature, Parameter, SourceUnitIR
from sol2promela.ir.descriptors import Address, Bool, Enum, FixedInt
from sol2promela.promela.model import (
    Assign,
    Atomic,
    Define,
    Do,
    If,
    Labeled,
    ProcessDecl,
    Raw,
    Receive,
    Run,
    Send,
    Stmt,
    choice,
)
from sol2promela.translator.collections import TypeRegistry, length_type
from sol2promela.translator.environment import GlobalEnvironmentInitializer, lock_held
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.scope import MAX_ADDRESS, ProcessScope

logger = logging.getLogger(__name__)


def agent_macro(index: int) -> str:
    return f"AGENT_{index}_ADDR"


def validate_agent_config(config: TranslationConfig) -> None:
    """Checks that need no contract; run before any generation."""
    if config.agent_count < 1:
        raise InvalidAgentConfig(f"agent_count must be at least 1, got {config.agent_count}")
    addresses = config.agent_addresses
    if len(addresses) != config.agent_count:
        raise InvalidAgentConfig(
            f"agent_address_domain has {len(addresses)} address(es) for {config.agent_count} agent(s)"
        )
    if len(set(addresses)) != len(addresses):
        raise InvalidAgentConfig("agent addresses must be distinct")
    if any(a <= 0 or a > MAX_ADDRESS for a in addresses):
        raise InvalidAgentConfig(f"agent addresses must lie in 1..{MAX_ADDRESS}")
    if config.msg_value_domain.is_empty:
        raise InvalidAgentConfig("msg_value_domain must not be empty")


@dataclass
class AgentArtifacts:
    defines: list[Define] = field(default_factory=list)
    processes: list[ProcessDecl] = field(default_factory=list)
    runs: list[Stmt] = field(default_factory=list)
    specs: list[AgentSpec] = field(default_factory=list)


class AgentProcessSynthesizer:
    """Build ``agent_count`` caller processes for the main contract."""

    def __init__(
        self,
        unit: SourceUnitIR,
        config: TranslationConfig,
        registry: TypeRegistry,
        environment: GlobalEnvironmentInitializer,
    ) -> None:
        self.unit = unit
        self.config = config
        self.registry = registry
        self.environment = environment

    # ── Domains ──────────────────────────────────────────────────────

    def resolve_domains(self, ledger: AbstractionLedger) -> dict[str, dict[int, ValueDomain]]:
        """Value domain per (function key, argument index), shared by all agents."""
        main = self.unit.main
        if not main.external_functions:
            raise InvalidAgentConfig(f"main contract '{main.name}' has no externally visible function")
        domains: dict[str, dict[int, ValueDomain]] = {}
        for func in main.external_functions:
            key = main.function_key(func)
            domains[key] = {
                i: self._domain(func, i, param, ledger)
                for i, param in enumerate(func.parameters)
            }
        return domains

    def _domain(
        self,
        func: FunctionSignature,
        index: int,
        param: Parameter,
        ledger: AbstractionLedger,
    ) -> ValueDomain:
        configured = self.config.argument_domain(func.name, func.canonical, index)
        where = f"argument {index} ('{param.name}') of '{func.canonical}'"

        if not param.type.scalar:
            raise InvalidAgentConfig(f"{where} is not a scalar and cannot be chosen by an agent")

        if configured is not None:
            if configured.is_empty:
                raise InvalidAgentConfig(f"empty value domain for {where}")
            values = configured.expand()
            if isinstance(param.type, FixedInt) and (
                min(values) < param.type.min_value or max(values) > param.type.max_value
            ):
                raise InvalidAgentConfig(f"value domain for {where} exceeds {param.type.tag}")
            return configured

        if isinstance(param.type, Bool):
            return ValueDomain(values=[0, 1])
        if isinstance(param.type, Enum):
            return ValueDomain(values=list(range(len(param.type.values))))
        if isinstance(param.type, Address):
            addresses = self.config.agent_addresses + [c.address for c in self.unit.contracts]
            ledger.append(
                func.location, AbstractionCategory.VALUE_DOMAIN,
                f"{where}: no domain configured, agents choose among known addresses {addresses}",
            )
            return ValueDomain(values=addresses)
        raise InvalidAgentConfig(f"no value domain configured for {where}")

    def build_specs(self, ledger: AbstractionLedger) -> tuple[list[AgentSpec], AbstractionLedger]:
        domains = self.resolve_domains(ledger)
        specs: list[AgentSpec] = []
        for index, address in enumerate(self.config.agent_addresses):
            spec = AgentSpec(index=index, address=address)
            for key, per_arg in domains.items():
                spec.domains[key] = {}
                for i, domain in per_arg.items():
                    if domain.is_range:
                        spec.ranges.setdefault(key, {})[i] = (domain.low, domain.high)
                    else:
                        spec.domains[key][i] = domain.expand()
            specs.append(spec)
        return specs, ledger

    # ── Processes ────────────────────────────────────────────────────

    def synthesize(self, ledger: AbstractionLedger) -> tuple[AgentArtifacts, AbstractionLedger]:
        specs, ledger = self.build_specs(ledger)
        artifacts = AgentArtifacts(specs=specs)
        max_steps = self.config.agent_max_steps
        if max_steps is not None:
            artifacts.defines.append(Define("AGENT_MAX_STEPS", str(max_steps), "transactions per agent"))

        for spec in specs:
            artifacts.defines.append(Define(agent_macro(spec.index), str(spec.address)))
            if max_steps is not None:
                ledger.append(
                    self.unit.main.location, AbstractionCategory.AGENT_STEP_BOUND,
                    f"agent {spec.index} limited to {max_steps} transactions",
                )
            process = self._agent_process(spec, self.unit.main)
            artifacts.processes.append(process)
            artifacts.runs.append(Run(process.name))
        return artifacts, ledger

    def _agent_process(self, spec: AgentSpec, main: ContractIR) -> ProcessDecl:
        process = ProcessScope(f"Agent{spec.index}", self.registry)
        me = agent_macro(spec.index)
        bounded = self.config.agent_max_steps is not None
        steps = (
            process.declare_raw("steps", length_type(self.config.agent_max_steps + 1), init="0")
            if bounded else None
        )
        value: str | None = None

        options: list[list[Stmt]] = []
        channels: list[str] = []
        for func in main.external_functions:
            key = main.function_key(func)
            call, result = f"{main.name}_{key}_call", f"{main.name}_{key}_result"
            channels += [call, result]

            option: list[Stmt] = [Raw("true")]
            args: list[str] = []
            for i, param in enumerate(func.parameters):
                local = process.declare_raw(f"{key}_{param.name}", param.type.promela_type)
                option.append(self._choose(local, spec, key, i))
                args.append(local)
            sent_value = "0"
            if func.payable:
                if value is None:
                    value = process.declare_raw("value", "int", init="0")
                option.append(self._choose_domain(value, self.config.msg_value_domain))
                sent_value = value

            results: list[str] = []
            for ret in func.returns:
                if ret.type.scalar:
                    results.append("_")
                else:
                    results.append(process.declare(f"{key}_{ret.name}", ret.type))

            option.append(Labeled(process.label("end_call"), Send(call, [me, me, sent_value] + args)))
            option.append(Labeled(process.label("end_wait"), Receive(result, results or ["_"])))
            options.append(option)

        loop: list[Stmt] = [
            Raw(f"{steps} < AGENT_MAX_STEPS") if bounded else Raw("true"),
            Labeled("end_lock", Atomic(body=[
                Raw("lock == LOCK_IDLE"),
                Assign("lock", str(lock_held(spec.index))),
            ])),
            If(options=options),
            Assign("lock", "LOCK_IDLE"),
            Atomic(body=self.environment.block_advance(process)),
        ]
        if bounded:
            loop.append(Raw(f"{steps}++"))

        return ProcessDecl(
            name=process.name,
            kind="agent",
            locals=process.locals,
            body=[Labeled("end_agent", Do(options=[loop]))],
            used_channels=channels,
        )

    @staticmethod
    def _choose(target: str, spec: AgentSpec, key: str, index: int) -> Stmt:
        if index in spec.ranges.get(key, {}):
            low, high = spec.ranges[key][index]
            return choice(target, low=low, high=high)
        return choice(target, values=spec.domains[key][index])

    @staticmethod
    def _choose_domain(target: str, domain: ValueDomain) -> Stmt:
        if domain.is_range:
            return choice(target, low=domain.low, high=domain.high)
        return choice(target, values=domain.expand())


def synthesize_agents(
    unit: SourceUnitIR,
    config: TranslationConfig,
    registry: TypeRegistry,
    environment: GlobalEnvironmentInitializer,
    ledger: AbstractionLedger,
) -> tuple[AgentArtifacts, AbstractionLedger]:
    """Stage entry point."""
    validate_agent_config(config)
    synthesizer = AgentProcessSynthesizer(unit, config, registry, environment)
    artifacts, ledger = synthesizer.synthesize(ledger)
    logger.info(
        "Synthesized %d agent process(es) for '%s'",
        len(artifacts.processes), unit.main.name,
        extra={"contract": unit.main.name, "stage": "agents"},
    )
    return artifacts, ledger

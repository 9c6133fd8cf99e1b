"""Process/Channel Generator — one PROMELA process per contract.

For every externally visible function ``f`` of contract ``C`` there is a
rendezvous pair owned by ``C``'s process::

    chan C_f_call   = [0] of { byte, byte, int, <params> };  /* sender, origin, value */
    chan C_f_result = [0] of { <returns> | bit };

and the process serves them in one loop::

    proctype C(byte creator; byte origin; <constructor params>) {
        <state initializers>; <constructor>;
    end_serve:
        do
        :: C_f_call ? msg_sender, tx_origin, msg_value, <params> ->
           <body>;
           ret_1: C_f_result ! <returns>
        od
    }

Every non-dead path through a branch reaches its ``ret`` label, so each
received call is answered by exactly one send.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sol2promela.core.errors import InvalidAgentConfig, UnsupportedConstructError
from sol2promela.core.types import AbstractionCategory, OverflowPolicy
from sol2promela.ir.contract import ContractIR, FunctionSignature
from sol2promela.ir.descriptors import Address, Enum
from sol2promela.promela.model import (
    Assign,
    ChannelDecl,
    Define,
    Do,
    Labeled,
    ProcessDecl,
    Raw,
    Receive,
    Run,
    Send,
    Stmt,
    VarDecl,
    choice,
    walk,
)
from sol2promela.translator.agents import agent_macro
from sol2promela.translator.expressions import zero_value
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.scope import Binding, ProcessScope, TranslationState
from sol2promela.translator.statements import BodyTranslator

logger = logging.getLogger(__name__)


@dataclass
class ContractArtifacts:
    defines: list[Define] = field(default_factory=list)
    channels: list[ChannelDecl] = field(default_factory=list)
    globals: list[VarDecl] = field(default_factory=list)
    processes: list[ProcessDecl] = field(default_factory=list)
    deployments: list[Stmt] = field(default_factory=list)
    init_locals: list[VarDecl] = field(default_factory=list)


def call_channel(contract: ContractIR, func: FunctionSignature) -> str:
    return f"{contract.name}_{contract.function_key(func)}_call"


def result_channel(contract: ContractIR, func: FunctionSignature) -> str:
    return f"{contract.name}_{contract.function_key(func)}_result"


class ProcessChannelGenerator:
    """Translate every contract of the source unit into processes and channels."""

    def __init__(self, state: TranslationState) -> None:
        self.state = state
        self.unit = state.unit
        self.config = state.config
        self._translators: dict[str, BodyTranslator] = {}

    # ── Public API ───────────────────────────────────────────────────

    def generate(self) -> ContractArtifacts:
        artifacts = ContractArtifacts()
        # Bodies first: translation decides which contracts get spawned
        for contract in self.unit.contracts:
            artifacts.processes.append(self._contract_process(contract))

        for process in artifacts.processes:
            if process.name in self.state.spawned:
                process.kind = "subcontract"

        artifacts.defines = self._defines()
        for contract in self.unit.contracts:
            artifacts.channels += self._channels(contract)
            artifacts.globals += self._globals(contract)
            if self.config.overflow_policy != OverflowPolicy.REJECT:
                self.state.ledger.append(
                    contract.location, AbstractionCategory.OVERFLOW_POLICY,
                    f"bounded collections of '{contract.name}' use the "
                    f"'{self.config.overflow_policy.value}' overflow policy",
                )
        artifacts.globals += [
            VarDecl(f"{name}_spawned", "bool", init="false") for name in self.state.spawned
        ]
        artifacts.deployments, artifacts.init_locals = self._deployments()
        return artifacts

    def predeployed(self) -> list[ContractIR]:
        return [
            c for c in self.unit.contracts[1:]
            if c.name not in self.state.spawned
        ]

    # ── Declarations ─────────────────────────────────────────────────

    def _defines(self) -> list[Define]:
        defines = [
            Define(f"{c.name}_ADDR", str(c.address), f"contract {c.name}")
            for c in self.unit.contracts
        ]
        seen: set[str] = set()
        for enum in self._enums():
            if enum.name in seen:
                continue
            seen.add(enum.name)
            defines += [
                Define(enum.constant(value), str(i))
                for i, value in enumerate(enum.values)
            ]
        for contract in self.unit.contracts:
            for func in contract.external_functions:
                defines.append(Define(
                    f"SIG_{contract.name}_{contract.function_key(func)}",
                    str(func.selector_signed),
                    func.canonical,
                ))
        return defines

    def _enums(self) -> list[Enum]:
        enums = list(self.unit.enums)
        for contract in self.unit.contracts:
            enums += contract.enums
        return enums

    def _channels(self, contract: ContractIR) -> list[ChannelDecl]:
        channels: list[ChannelDecl] = []
        for func in contract.external_functions:
            call_fields = ["byte", "byte", "int"]
            call_fields += [self.state.registry.register(p.type) for p in func.parameters]
            result_fields = [self.state.registry.register(r.type) for r in func.returns] or ["bit"]
            channels.append(ChannelDecl(
                contract=contract.name,
                function=contract.function_key(func),
                call=call_channel(contract, func),
                result=result_channel(contract, func),
                call_fields=call_fields,
                result_fields=result_fields,
                owner=contract.name,
            ))
        return channels

    def _globals(self, contract: ContractIR) -> list[VarDecl]:
        translator = self._translators[contract.name]
        predeployed = {c.name for c in self.predeployed()}
        out: list[VarDecl] = []
        for var in contract.state_variables:
            ptype = self.state.registry.register(var.type)
            init = None
            if var.type.scalar:
                init = translator.static_value(var.initial_value)
                if (
                    init is None and var.initial_value is None
                    and isinstance(var.type, Address) and var.type.contract in predeployed
                ):
                    init = f"{var.type.contract}_ADDR"
            out.append(VarDecl(f"{contract.name}_{var.name}", ptype, init=init))
        out.append(VarDecl(f"{contract.name}_eth", "int", init="0"))
        for event in contract.events:
            out.append(VarDecl(f"{contract.name}_ev_{event.name}", self.state.registry.register(event)))
        return out

    # ── Contract process ─────────────────────────────────────────────

    def _contract_process(self, contract: ContractIR) -> ProcessDecl:
        process = ProcessScope(contract.name, self.state.registry)
        translator = BodyTranslator(self.state, contract, process)
        self._translators[contract.name] = translator

        for name, ptype in (("msg_sender", "byte"), ("tx_origin", "byte"), ("msg_value", "int")):
            process.declare_raw(name, ptype)

        body: list[Stmt] = [
            Assign("msg_sender", "creator"),
            Assign("tx_origin", "origin"),
            Assign("msg_value", "0"),
        ]
        params = [VarDecl("creator", "byte"), VarDecl("origin", "byte")]

        for var in contract.state_variables:
            if var.initial_value is None:
                continue
            if var.type.scalar and translator.static_value(var.initial_value) is not None:
                continue
            body += translator.initializer(var.initial_value, f"{contract.name}_{var.name}", var.type)

        ctor = contract.constructor
        if ctor is not None:
            bindings: dict[str, Binding] = {}
            for p in ctor.parameters:
                if not p.type.scalar:
                    raise UnsupportedConstructError(
                        "FunctionDefinition", ctor.location,
                        detail=f"non-scalar constructor parameter '{p.name}'",
                    )
                params.append(VarDecl(f"ctor_{p.name}", p.type.promela_type))
                bindings[p.name] = Binding(f"ctor_{p.name}", p.type)
            done = process.label("ctor_end")
            body += translator.function(ctor, bindings, [], done)
            body.append(Labeled(done, Raw("skip")))

        options = [self._serve(contract, func, process, translator) for func in contract.external_functions]
        if options:
            body.append(Labeled("end_serve", Do(options=options)))

        owned: list[str] = []
        for func in contract.external_functions:
            owned += [call_channel(contract, func), result_channel(contract, func)]
        used: list[str] = []
        for stmt in walk(body):
            if isinstance(stmt, (Send, Receive)) and stmt.channel not in owned and stmt.channel not in used:
                used.append(stmt.channel)

        logger.debug(
            "Generated process for '%s' with %d served function(s)",
            contract.name, len(options),
            extra={"contract": contract.name, "stage": "generate"},
        )
        return ProcessDecl(
            name=contract.name,
            kind="contract",
            params=params,
            locals=process.locals,
            body=body,
            owned_channels=owned,
            used_channels=used,
        )

    def _serve(
        self,
        contract: ContractIR,
        func: FunctionSignature,
        process: ProcessScope,
        translator: BodyTranslator,
    ) -> list[Stmt]:
        """One ``do`` branch: receive, run the body, answer."""
        key = contract.function_key(func)
        bindings: dict[str, Binding] = {}
        args: list[str] = []
        for p in func.parameters:
            local = process.declare(f"{key}_{p.name or 'arg'}", p.type)
            args.append(local)
            if p.name:
                bindings[p.name] = Binding(local, p.type)

        branch: list[Stmt] = [Receive(call_channel(contract, func), ["msg_sender", "tx_origin", "msg_value"] + args)]
        if func.payable:
            branch.append(Assign(translator.balance, f"{translator.balance} + msg_value"))

        returns: list[Binding] = []
        for i, r in enumerate(func.returns):
            local = process.declare(f"{key}_{r.name or f'ret{i}'}", r.type)
            branch += zero_value(local, r.type)
            binding = Binding(local, r.type)
            returns.append(binding)
            if r.name:
                bindings.setdefault(r.name, binding)

        done = process.label("ret")
        branch += translator.function(func, bindings, returns, done)
        branch.append(Labeled(done, Send(result_channel(contract, func), [b.text for b in returns] or ["0"])))
        return branch

    # ── Deployment ───────────────────────────────────────────────────

    def _deployments(self) -> tuple[list[Stmt], list[VarDecl]]:
        """``run`` statements for pre-deployed contracts, then the main one."""
        stmts: list[Stmt] = []
        locals_: list[VarDecl] = []
        deployer = agent_macro(0)
        for contract in self.predeployed() + [self.unit.main]:
            args: list[str] = []
            ctor = contract.constructor
            prefix = "" if contract is self.unit.main else f"{contract.name}."
            for i, p in enumerate(ctor.parameters if ctor else []):
                value, chosen = self._constructor_argument(contract, ctor, prefix, i)
                if chosen is None:
                    args.append(value)
                    continue
                locals_.append(VarDecl(value, p.type.promela_type))
                stmts.append(chosen)
                args.append(value)
            stmts.append(Run(contract.name, [deployer, deployer] + args))
        return stmts, locals_

    def _constructor_argument(
        self,
        contract: ContractIR,
        ctor: FunctionSignature,
        prefix: str,
        index: int,
    ) -> tuple[str, Stmt | None]:
        param = ctor.parameters[index]
        types = ",".join(p.abi_type for p in ctor.parameters)
        domain = self.config.argument_domain(f"{prefix}constructor", f"{prefix}constructor({types})", index)
        where = f"constructor argument {index} ('{param.name}') of '{contract.name}'"
        if domain is None:
            self.state.ledger.append(
                ctor.location, AbstractionCategory.VALUE_DOMAIN,
                f"{where}: no domain configured, deployed with the zero value",
            )
            return param.type.zero_value(), None
        if domain.is_empty:
            raise InvalidAgentConfig(f"empty value domain for {where}")
        local = f"ctor_{contract.name}_{param.name or index}"
        if domain.is_range:
            return local, choice(local, low=domain.low, high=domain.high)
        return local, choice(local, values=domain.expand())


def generate_contracts(state: TranslationState) -> tuple[ContractArtifacts, AbstractionLedger]:
    """Stage entry point."""
    generator = ProcessChannelGenerator(state)
    artifacts = generator.generate()
    logger.info(
        "Generated %d contract process(es), %d channel pair(s)",
        len(artifacts.processes), len(artifacts.channels),
        extra={"contract": state.unit.main.name, "stage": "generate", "ledger_size": len(state.ledger)},
    )
    return artifacts, state.ledger

"""Contract IR — the normalized, type-resolved view of a Solidity contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sol2promela.core.types import Location, StateMutability, Visibility
from sol2promela.ir.descriptors import Enum, Event, Struct, TypeDescriptor


@dataclass
class Parameter:
    """Function parameter or return value."""
    name: str
    type: TypeDescriptor
    abi_type: str = ""
    # "storage" parameters alias contract state instead of copying it
    storage_location: str = "default"


@dataclass
class StateVariable:
    name: str
    type: TypeDescriptor
    initial_value: dict[str, Any] | None = None
    constant: bool = False
    location: Location = field(default_factory=Location)


@dataclass
class ModifierInvocation:
    name: str
    arguments: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ModifierDefinition:
    name: str
    parameters: list[Parameter] = field(default_factory=list)
    body: dict[str, Any] | None = None
    location: Location = field(default_factory=Location)


@dataclass
class FunctionSignature:
    """A function with resolved parameter and return types."""
    name: str
    parameters: list[Parameter] = field(default_factory=list)
    returns: list[Parameter] = field(default_factory=list)
    visibility: Visibility = Visibility.PUBLIC
    state_mutability: StateMutability = StateMutability.NONPAYABLE
    kind: str = "function"  # function, constructor, receive, fallback
    selector: int = 0
    modifiers: list[ModifierInvocation] = field(default_factory=list)
    body: dict[str, Any] | None = None
    location: Location = field(default_factory=Location)

    @property
    def externally_visible(self) -> bool:
        return (
            self.visibility in (Visibility.PUBLIC, Visibility.EXTERNAL)
            and self.kind != "constructor"
        )

    @property
    def payable(self) -> bool:
        return self.state_mutability == StateMutability.PAYABLE

    @property
    def canonical(self) -> str:
        return f"{self.name}({','.join(p.abi_type for p in self.parameters)})"

    @property
    def selector_signed(self) -> int:
        """Selector as a signed 32-bit value, the width of a PROMELA ``int``."""
        return self.selector - (1 << 32) if self.selector >= (1 << 31) else self.selector


@dataclass
class ContractIR:
    """One source contract, with inheritance flattened."""
    name: str
    address: int
    state_variables: list[StateVariable] = field(default_factory=list)
    functions: list[FunctionSignature] = field(default_factory=list)
    modifiers: dict[str, ModifierDefinition] = field(default_factory=dict)
    events: list[Event] = field(default_factory=list)
    enums: list[Enum] = field(default_factory=list)
    structs: list[Struct] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    location: Location = field(default_factory=Location)

    @property
    def external_functions(self) -> list[FunctionSignature]:
        return [f for f in self.functions if f.externally_visible]

    @property
    def constructor(self) -> FunctionSignature | None:
        return next((f for f in self.functions if f.kind == "constructor"), None)

    def get_function(self, name: str, arity: int | None = None) -> FunctionSignature | None:
        return next(
            (
                f for f in self.functions
                if f.name == name and f.kind != "constructor"
                and (arity is None or len(f.parameters) == arity)
            ),
            None,
        )

    def function_key(self, func: FunctionSignature) -> str:
        """Name used for a function's channels and selector macro.

        Overloaded external functions get their arity appended.
        """
        overloads = [f for f in self.external_functions if f.name == func.name]
        if len(overloads) > 1:
            return f"{func.name}_{len(func.parameters)}"
        return func.name

    def get_state_variable(self, name: str) -> StateVariable | None:
        return next((v for v in self.state_variables if v.name == name), None)

    def get_event(self, name: str) -> Event | None:
        return next((e for e in self.events if e.name == name), None)


@dataclass
class SourceUnitIR:
    """All contracts that take part in the model, main contract first."""
    main: ContractIR
    contracts: list[ContractIR] = field(default_factory=list)
    enums: list[Enum] = field(default_factory=list)
    structs: list[Struct] = field(default_factory=list)
    # literal hex address -> interned address id
    literal_addresses: dict[str, int] = field(default_factory=dict)

    def get_contract(self, name: str) -> ContractIR | None:
        return next((c for c in self.contracts if c.name == name), None)

    @property
    def address_space(self) -> dict[str, int]:
        return {c.name: c.address for c in self.contracts}


@dataclass
class AgentSpec:
    """One synthesized external caller."""
    index: int
    address: int
    # function key -> argument index -> expanded domain
    domains: dict[str, dict[int, list[int]]] = field(default_factory=dict)
    # function key -> argument index -> (low, high) for range domains
    ranges: dict[str, dict[int, tuple[int, int]]] = field(default_factory=dict)

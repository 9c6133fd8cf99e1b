"""Translation state shared across contracts, and per-process scopes.

``TranslationState`` holds what every contract translation sees: the
source unit, the configuration, the ledger, the typedef registry and the
symbol tables for interned strings and literal addresses.

``ProcessScope`` owns the names of one PROMELA process: its locals, its
labels and its dead ends. PROMELA labels and locals are process-wide, so
uniqueness is enforced here rather than per function.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable

from sol2promela.core.config import TranslationConfig
from sol2promela.core.errors import UnsupportedConstructError
from sol2promela.core.types import AbstractionCategory, Location
from sol2promela.ir.contract import FunctionSignature, SourceUnitIR
from sol2promela.ir.descriptors import TypeDescriptor
from sol2promela.promela.model import DeadEnd, Stmt, VarDecl
from sol2promela.translator.collections import TypeRegistry
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.type_mapper import TypeMapper

logger = logging.getLogger(__name__)

# PROMELA addresses are stored in a byte
MAX_ADDRESS = 255


def site_key(node: dict[str, Any]) -> Any:
    """Identify one AST node: its solc ``id``, else its ``src``, else the node object.

    Inlined bodies reuse the same node dicts, so every key is stable for the
    length of a translation.
    """
    if "id" in node:
        return node["id"]
    if node.get("src"):
        return node["src"]
    return id(node)


@dataclass
class TranslationState:
    """Everything a contract translation shares with the others."""

    unit: SourceUnitIR
    config: TranslationConfig
    ledger: AbstractionLedger
    registry: TypeRegistry
    mapper: TypeMapper
    strings: dict[str, int] = field(default_factory=lambda: {"": 0})
    spawned: list[str] = field(default_factory=list)
    _recorded: set[Any] = field(default_factory=set)

    def record_once(
        self,
        key: Any,
        location: Location,
        category: AbstractionCategory,
        description: str,
    ) -> None:
        """Append to the ledger unless the same site was already recorded.

        Inlined code is translated once per call site; the approximation it
        carries is still one decision.
        """
        if key in self._recorded:
            return
        self._recorded.add(key)
        self.ledger.append(location, category, description)

    def intern_string(self, value: str) -> int:
        if value not in self.strings:
            self.strings[value] = len(self.strings)
        return self.strings[value]

    def intern_address(self, literal: str, location: Location) -> int:
        """Give a hex address literal a fixed id after all known addresses."""
        value = int(literal, 16)
        if value == 0:
            return 0
        key = literal.lower()
        if key not in self.unit.literal_addresses:
            taken = list(self.config.agent_addresses) + [c.address for c in self.unit.contracts]
            taken += list(self.unit.literal_addresses.values())
            address = max(taken, default=0) + 1
            if address > MAX_ADDRESS:
                raise UnsupportedConstructError(
                    "address literal", location, detail="address space exhausted",
                )
            self.unit.literal_addresses[key] = address
            self.record_once(
                ("address", key), location, AbstractionCategory.ADDRESS,
                f"address literal {literal} interned as address {address}",
            )
        return self.unit.literal_addresses[key]


@dataclass
class Binding:
    """A name visible in a body: a local, a parameter or a storage alias."""
    text: str
    type: TypeDescriptor
    storage: bool = False
    # storage pointer local or parameter: never reassigned, never copied into
    alias: bool = False


@dataclass
class Frame:
    """One function (or modifier) being inlined."""
    function: FunctionSignature
    returns: list[Binding]
    return_label: str
    scopes: list[dict[str, Binding]] = field(default_factory=lambda: [{}])
    placeholder: Callable[[], list[Stmt]] | None = None
    loops: list[tuple[str, str]] = field(default_factory=list)  # (continue, break) labels

    def lookup(self, name: str) -> Binding | None:
        for scope in reversed(self.scopes):
            if name in scope:
                return scope[name]
        return None

    def bind(self, name: str, binding: Binding) -> None:
        self.scopes[-1][name] = binding


class ProcessScope:
    """Locals, labels and dead ends of one PROMELA process."""

    def __init__(self, name: str, registry: TypeRegistry) -> None:
        self.name = name
        self._registry = registry
        self._locals: dict[str, VarDecl] = {}
        self._counters: Counter[str] = Counter()

    @property
    def locals(self) -> list[VarDecl]:
        return list(self._locals.values())

    def _unique(self, base: str) -> str:
        name = base
        n = 1
        while name in self._locals:
            name = f"{base}_{n}"
            n += 1
        return name

    def declare(self, base: str, desc: TypeDescriptor) -> str:
        """Declare a local of descriptor type; returns the unique name."""
        return self.declare_raw(base, self._registry.register(desc))

    def declare_raw(self, base: str, promela_type: str, init: str | None = None) -> str:
        name = self._unique(base)
        self._locals[name] = VarDecl(name=name, type=promela_type, init=init)
        return name

    def label(self, kind: str) -> str:
        self._counters[kind] += 1
        return f"{kind}_{self._counters[kind]}"

    def dead_end(self, kind: str, reason: str = "") -> DeadEnd:
        return DeadEnd(label=self.label(f"end_{kind}"), reason=reason)

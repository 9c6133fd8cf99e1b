"""PROMELA intermediate model.

Statements keep expressions as already-translated PROMELA text; only the
control structure is kept as objects, so handshake and dead-end structure
can be inspected before anything is rendered.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator


# ── Statements ───────────────────────────────────────────────────────────────


class Stmt:
    """Base class for PROMELA statements."""

    def substatements(self) -> Iterator["Stmt"]:
        return iter(())


@dataclass
class Raw(Stmt):
    """Expression statement or guard, e.g. ``x > 0`` or ``skip``."""
    text: str


@dataclass
class Assign(Stmt):
    target: str
    expr: str


@dataclass
class Send(Stmt):
    channel: str
    args: list[str] = field(default_factory=list)


@dataclass
class Receive(Stmt):
    channel: str
    targets: list[str] = field(default_factory=list)


@dataclass
class If(Stmt):
    """``if :: opt1 :: opt2 fi`` — each option is a statement sequence."""
    options: list[list[Stmt]] = field(default_factory=list)

    def substatements(self) -> Iterator[Stmt]:
        for option in self.options:
            yield from option


@dataclass
class Do(Stmt):
    options: list[list[Stmt]] = field(default_factory=list)

    def substatements(self) -> Iterator[Stmt]:
        for option in self.options:
            yield from option


@dataclass
class Atomic(Stmt):
    body: list[Stmt] = field(default_factory=list)

    def substatements(self) -> Iterator[Stmt]:
        yield from self.body


@dataclass
class Labeled(Stmt):
    label: str
    stmt: Stmt

    def substatements(self) -> Iterator[Stmt]:
        yield self.stmt


@dataclass
class Goto(Stmt):
    label: str


@dataclass
class Break(Stmt):
    pass


@dataclass
class DeadEnd(Stmt):
    """``end_x: false`` — a valid end state with no outgoing transition."""
    label: str
    reason: str = ""


@dataclass
class Assert(Stmt):
    expr: str


@dataclass
class InlineCall(Stmt):
    name: str
    args: list[str] = field(default_factory=list)


@dataclass
class Run(Stmt):
    proctype: str
    args: list[str] = field(default_factory=list)


@dataclass
class Select(Stmt):
    target: str
    low: int
    high: int


def walk(stmts: list[Stmt]) -> Iterator[Stmt]:
    """Depth-first iteration over a statement tree."""
    for stmt in stmts:
        yield stmt
        yield from walk(list(stmt.substatements()))


def choice(
    target: str,
    values: list[int] | None = None,
    low: int | None = None,
    high: int | None = None,
) -> Stmt:
    """Nondeterministically assign one of ``values`` (or of ``low..high``) to ``target``."""
    if low is not None and high is not None:
        return Select(target=target, low=low, high=high)
    values = values or [0]
    if len(values) == 1:
        return Assign(target, str(values[0]))
    return If(options=[[Assign(target, str(v))] for v in values])


# ── Declarations ─────────────────────────────────────────────────────────────


@dataclass
class VarDecl:
    name: str
    type: str
    array_len: int | None = None
    init: str | None = None


@dataclass
class Define:
    name: str
    value: str
    comment: str = ""


@dataclass
class TypedefDecl:
    name: str
    fields: list[VarDecl] = field(default_factory=list)


@dataclass
class InlineDecl:
    name: str
    params: list[str] = field(default_factory=list)
    body: list[Stmt] = field(default_factory=list)


@dataclass
class ChannelDecl:
    """Rendezvous call/result pair for one externally visible function."""
    contract: str
    function: str
    call: str
    result: str
    call_fields: list[str] = field(default_factory=list)
    result_fields: list[str] = field(default_factory=list)
    owner: str = ""


@dataclass
class ProcessDecl:
    name: str
    kind: str  # contract, agent, subcontract
    params: list[VarDecl] = field(default_factory=list)
    locals: list[VarDecl] = field(default_factory=list)
    body: list[Stmt] = field(default_factory=list)
    owned_channels: list[str] = field(default_factory=list)
    used_channels: list[str] = field(default_factory=list)


@dataclass
class GasHint:
    gas_limit: int
    cheapest_transaction: int
    max_transactions: int
    search_depth: int


@dataclass
class PromelaModel:
    """The fully assembled model, ready for the Emitter."""
    name: str
    defines: list[Define] = field(default_factory=list)
    typedefs: list[TypedefDecl] = field(default_factory=list)
    channels: list[ChannelDecl] = field(default_factory=list)
    globals: list[VarDecl] = field(default_factory=list)
    inlines: list[InlineDecl] = field(default_factory=list)
    processes: list[ProcessDecl] = field(default_factory=list)
    init_locals: list[VarDecl] = field(default_factory=list)
    init: list[Stmt] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    gas_hint: GasHint | None = None

    def processes_of_kind(self, *kinds: str) -> list[ProcessDecl]:
        return [p for p in self.processes if p.kind in kinds]

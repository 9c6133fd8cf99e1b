"""Expression translation — Solidity expressions to PROMELA text.

Every expression translates to a pair ``(pre, Expr)``: the statements that
must run first (guards, inlined calls, channel handshakes) and a
side-effect-free PROMELA expression for the value. Places (assignable
locations) go through ``place()``, which is where bounded-collection writes
get their capacity guard.

Checked arithmetic follows Solidity 0.8: an overflowing ``+ - *`` outside
``unchecked`` is a dead end, as is division by zero everywhere. Guards are
only emitted for widths PROMELA can represent exactly (``host_checkable``).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sol2promela.core.errors import UnsupportedConstructError
from sol2promela.core.types import AbstractionCategory, Location, OverflowPolicy
from sol2promela.ir.contract import ContractIR, FunctionSignature
from sol2promela.ir.descriptors import (
    Address,
    Bool,
    DynamicArray,
    Enum,
    FixedInt,
    FixedString,
    Mapping,
    StaticArray,
    Struct,
    TypeDescriptor,
)
from sol2promela.promela.model import (
    Assert,
    Assign,
    Atomic,
    Goto,
    If,
    InlineCall,
    Labeled,
    Raw,
    Receive,
    Run,
    Send,
    Stmt,
)
from sol2promela.translator.collections import TypeRegistry, length_type
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.scope import Binding, Frame, ProcessScope, TranslationState, site_key

logger = logging.getLogger(__name__)

INT_MIN = -(1 << 31)
INT_MAX = (1 << 31) - 1

# Type given to environment values (block.*, msg.value, balances)
ENV_UINT = FixedInt(bits=32, signed=False)

_COMPARISONS = frozenset({"==", "!=", "<", "<=", ">", ">="})
_ARITHMETIC = frozenset({"+", "-", "*", "/", "%", "&", "|", "^", "<<", ">>", "**"})

_UNITS: dict[str, int] = {
    "wei": 1,
    "gwei": 10**9,
    "szabo": 10**12,
    "finney": 10**15,
    "ether": 10**18,
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
    "weeks": 604800,
}


@dataclass
class Expr:
    """A translated value. ``parts`` is set for tuple values."""
    text: str
    type: TypeDescriptor | None = None
    parts: list["Expr"] | None = None


def _pack(values: list[Expr]) -> Expr:
    if not values:
        return Expr("0")
    if len(values) == 1:
        return values[0]
    return Expr("", None, parts=values)


def int_text(value: int) -> str:
    """PROMELA literal for ``value``; the int minimum has no direct literal."""
    if value == INT_MIN:
        return f"({INT_MIN + 1} - 1)"
    return str(value)


def parse_number(raw: str) -> int:
    raw = raw.replace("_", "")
    if raw.lower().startswith("0x"):
        return int(raw, 16)
    if "e" in raw.lower():
        mantissa, exponent = raw.lower().split("e")
        return int(Decimal(mantissa) * (Decimal(10) ** int(exponent)))
    return int(Decimal(raw))


def overflow_condition(op: str, a: str, b: str, t: FixedInt) -> str | None:
    """Condition under which ``a op b`` stays within ``t``; ``None`` if it always does."""
    lo, hi = int_text(t.min_value), int_text(t.max_value)
    if op == "+":
        if not t.signed:
            return f"{a} <= {hi} - {b}"
        return f"(({b} >= 0 && {a} <= {hi} - {b}) || ({b} < 0 && {a} >= {lo} - {b}))"
    if op == "-":
        if not t.signed:
            return f"{a} >= {b}"
        return f"(({b} >= 0 && {a} >= {lo} + {b}) || ({b} < 0 && {a} <= {hi} + {b}))"
    if op == "*":
        if not t.signed:
            return f"({b} == 0 || {a} <= {hi} / {b})"
        if t.bits <= 16:
            return f"({a} * {b} >= {lo} && {a} * {b} <= {hi})"
        return f"({b} == 0 || (({a} * {b}) / {b} == {a} && !({a} == {lo} && {b} == -1)))"
    if op == "/" and t.signed:
        return f"!({a} == {lo} && {b} == -1)"
    return None


# ── Value helpers ────────────────────────────────────────────────────────────


def copy_value(dst: str, src: str, desc: TypeDescriptor, location: Location | None = None) -> list[Stmt]:
    """Fieldwise copy; PROMELA has no whole-struct assignment."""
    if desc.scalar:
        return [Assign(dst, src)]
    if isinstance(desc, Struct):
        out: list[Stmt] = []
        for name, ftype in desc.fields:
            out += copy_value(f"{dst}.{name}", f"{src}.{name}", ftype, location)
        return out
    if isinstance(desc, StaticArray):
        out = []
        for i in range(desc.length):
            out += copy_value(f"{dst}.elems[{i}]", f"{src}.elems[{i}]", desc.element, location)
        return out
    if isinstance(desc, DynamicArray):
        out = []
        for i in range(desc.max_len):
            out += copy_value(f"{dst}.elems[{i}]", f"{src}.elems[{i}]", desc.element, location)
        out.append(Assign(f"{dst}.len", f"{src}.len"))
        return out
    raise UnsupportedConstructError("copy", location, detail=f"cannot copy a {desc.promela_type}")


def zero_value(dst: str, desc: TypeDescriptor) -> list[Stmt]:
    """Reset ``dst`` to the zero value of ``desc``."""
    if desc.scalar:
        return [Assign(dst, desc.zero_value())]
    if isinstance(desc, Struct):
        out: list[Stmt] = []
        for name, ftype in desc.fields:
            out += zero_value(f"{dst}.{name}", ftype)
        return out
    if isinstance(desc, StaticArray):
        out = []
        for i in range(desc.length):
            out += zero_value(f"{dst}.elems[{i}]", desc.element)
        return out
    if isinstance(desc, DynamicArray):
        out = []
        for i in range(desc.max_len):
            out += zero_value(f"{dst}.elems[{i}]", desc.element)
        out.append(Assign(f"{dst}.len", "0"))
        return out
    if isinstance(desc, Mapping):
        out = []
        for i in range(desc.max_entries):
            out += zero_value(f"{dst}.keys[{i}]", desc.key)
        for i in range(desc.max_entries + 1):
            out += zero_value(f"{dst}.vals[{i}]", desc.value)
        out.append(Assign(f"{dst}.size", "0"))
        return out
    return []


# ── Translator ───────────────────────────────────────────────────────────────


class ExpressionTranslator(ABC):
    """Translate expressions inside one contract process."""

    def __init__(self, state: TranslationState, contract: ContractIR, process: ProcessScope) -> None:
        self.state = state
        self.config = state.config
        self.contract = contract
        self.process = process
        self.self_address = f"{contract.name}_ADDR"
        self.balance = f"{contract.name}_eth"
        self._frames: list[Frame] = []
        self._unchecked = 0
        self._skip_labels: list[str | None] = []
        self._entry: FunctionSignature | None = None
        # functions being inlined, outermost first
        self._call_stack: list[str] = []

    @property
    def registry(self) -> TypeRegistry:
        return self.state.registry

    @property
    def frame(self) -> Frame:
        return self._frames[-1]

    def _loc(self, node: dict[str, Any]) -> Location:
        return self.state.mapper.location(node)

    def _site_name(self) -> str:
        """``Contract.function`` of the code being translated, for ledger descriptions."""
        if self._frames:
            return f"{self.contract.name}.{self.frame.function.name}"
        return self.contract.name

    # ── Names ────────────────────────────────────────────────────────

    def _lookup(self, name: str) -> Binding | None:
        if self._frames:
            binding = self.frame.lookup(name)
            if binding is not None:
                return binding
        var = self.contract.get_state_variable(name)
        if var is not None:
            return Binding(f"{self.contract.name}_{name}", var.type, storage=True)
        return None

    def _enum_named(self, name: str) -> Enum | None:
        for enum in self.contract.enums + self.state.unit.enums:
            if enum.name == name:
                return enum
        for contract in self.state.unit.contracts:
            for enum in contract.enums:
                if enum.name == name:
                    return enum
        return None

    def _map_local_type(
        self, type_node: dict[str, Any] | None, declaration: str, site: dict[str, Any],
    ) -> TypeDescriptor:
        """Map the type written at ``site``; its ledger entries are recorded once per site."""
        scratch = AbstractionLedger()
        desc = self.state.mapper.map_type(type_node, scratch, declaration, self._loc(site))
        for record in scratch:
            self.state.record_once(
                ("type", self.contract.name, site_key(site), record.description),
                record.source_location, record.category, record.description,
            )
        return desc

    # ── Guards ───────────────────────────────────────────────────────

    def _guard(self, condition: str, kind: str) -> If:
        return If(options=[[Raw(condition)], [Raw("else"), self.process.dead_end(kind)]])

    def _skip_label(self) -> str:
        if not self._skip_labels:
            raise UnsupportedConstructError("bounded write outside a statement")
        if self._skip_labels[-1] is None:
            self._skip_labels[-1] = self.process.label("sat")
        return self._skip_labels[-1]

    def _bound_guard(self, condition: str, kind: str) -> If:
        """Capacity guard for a bounded write, applying the overflow policy."""
        if self.config.overflow_policy == OverflowPolicy.SATURATE:
            action: Stmt = Goto(self._skip_label())
        else:
            action = self.process.dead_end(kind)
        return If(options=[[Raw(condition)], [Raw("else"), action]])

    # ── Dispatch ─────────────────────────────────────────────────────

    def expr(self, node: dict[str, Any] | None) -> tuple[list[Stmt], Expr]:
        """Translate an rvalue expression."""
        if not node:
            raise UnsupportedConstructError("empty expression")
        nt = node.get("nodeType", "")

        if nt == "Literal":
            return [], self._literal(node)
        if nt == "Identifier":
            return [], self._identifier(node)
        if nt == "MemberAccess":
            return self._member_access(node)
        if nt == "IndexAccess":
            return self._index_access(node, write=False)
        if nt == "BinaryOperation":
            return self._binary(node)
        if nt == "UnaryOperation":
            return self._unary(node)
        if nt == "Assignment":
            return self._assignment(node)
        if nt == "Conditional":
            return self._conditional(node)
        if nt == "TupleExpression":
            return self._tuple(node)
        if nt == "FunctionCall":
            return self._call(node)

        raise UnsupportedConstructError(nt or "expression", self._loc(node))

    def place(self, node: dict[str, Any], write: bool = False) -> tuple[list[Stmt], Expr]:
        """Translate an assignable location. ``write`` inserts mapping keys on demand."""
        nt = node.get("nodeType", "")
        loc = self._loc(node)

        if nt == "Identifier":
            binding = self._lookup(node.get("name", ""))
            if binding is None:
                raise UnsupportedConstructError("Identifier", loc, detail=f"'{node.get('name')}' is not assignable")
            return [], Expr(binding.text, binding.type)

        if nt == "MemberAccess":
            pre, base = self.place(node.get("expression", {}), write)
            member = node.get("memberName", "")
            if isinstance(base.type, Struct) and base.type.field_type(member) is not None:
                return pre, Expr(f"{base.text}.{member}", base.type.field_type(member))
            raise UnsupportedConstructError("MemberAccess", loc, detail=f"cannot assign to '.{member}'")

        if nt == "IndexAccess":
            return self._index_access(node, write)

        if nt == "TupleExpression" and len(node.get("components") or []) == 1:
            return self.place(node["components"][0], write)

        raise UnsupportedConstructError(nt or "expression", loc, detail="not an assignable location")

    # ── Leaves ───────────────────────────────────────────────────────

    def _literal(self, node: dict[str, Any]) -> Expr:
        kind = node.get("kind", "number")
        value = node.get("value")
        loc = self._loc(node)

        if kind == "bool":
            return Expr("true" if value == "true" else "false", Bool())
        if kind in ("string", "unicodeString", "hexString"):
            text = value if value is not None else node.get("hexValue", "")
            return Expr(str(self.state.intern_string(text)), FixedString(max(len(text), 1)))

        raw = str(value if value is not None else "0").replace("_", "")
        type_string = node.get("typeDescriptions", {}).get("typeString", "")
        if raw.lower().startswith("0x") and (type_string.startswith("address") or len(raw) == 42):
            return Expr(str(self.state.intern_address(raw, loc)), Address())

        number = parse_number(raw) * _UNITS.get(node.get("subdenomination") or "", 1)
        if not INT_MIN <= number <= INT_MAX:
            raise UnsupportedConstructError("Literal", loc, detail=f"{raw} exceeds the 32-bit model range")
        return Expr(str(number))

    def _identifier(self, node: dict[str, Any]) -> Expr:
        name = node.get("name", "")
        binding = self._lookup(name)
        if binding is not None:
            return Expr(binding.text, binding.type)
        if name == "this":
            return Expr(self.self_address, Address(contract=self.contract.name))
        if name == "now":
            return Expr("block_timestamp", ENV_UINT)
        raise UnsupportedConstructError("Identifier", self._loc(node), detail=f"unresolved name '{name}'")

    def _environment(self, base: str, member: str, node: dict[str, Any]) -> Expr | None:
        """``block.*``, ``msg.*`` and ``tx.*`` values."""
        loc = self._loc(node)
        if base == "block":
            if member == "number":
                return Expr("block_number", ENV_UINT)
            if member == "timestamp":
                return Expr("block_timestamp", ENV_UINT)
            if member in ("difficulty", "prevrandao"):
                return Expr("block_difficulty", ENV_UINT)
            if member == "coinbase":
                return Expr("BLOCK_COINBASE", Address())
            if member == "gaslimit":
                return Expr("BLOCK_GASLIMIT", ENV_UINT)
        elif base == "msg":
            if member == "sender":
                return Expr("msg_sender", Address())
            if member == "value":
                return Expr("msg_value", ENV_UINT)
            if member == "sig":
                if self._entry is None or not self._entry.externally_visible:
                    return Expr("0", FixedString(4))
                return Expr(f"SIG_{self.contract.name}_{self.contract.function_key(self._entry)}", FixedString(4))
            if member == "data":
                raise UnsupportedConstructError("msg.data", loc, detail="calldata is not modeled")
        elif base == "tx":
            if member == "origin":
                return Expr("tx_origin", Address())
            if member == "gasprice":
                self.state.record_once(
                    ("gasprice", self.contract.name, site_key(node)), loc,
                    AbstractionCategory.ENVIRONMENT,
                    "tx.gasprice read as the configured constant TX_GASPRICE",
                )
                return Expr("TX_GASPRICE", ENV_UINT)
        else:
            return None
        raise UnsupportedConstructError("MemberAccess", loc, detail=f"'{base}.{member}'")

    # ── Member and index access ──────────────────────────────────────

    def _member_access(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        member = node.get("memberName", "")
        base_node = node.get("expression", {})
        loc = self._loc(node)
        bnt = base_node.get("nodeType")

        if bnt == "Identifier" and self._lookup(base_node.get("name", "")) is None:
            name = base_node.get("name", "")
            env = self._environment(name, member, node)
            if env is not None:
                return [], env
            enum = self._enum_named(name)
            if enum is not None and member in enum.values:
                return [], Expr(enum.constant(member), enum)

        if bnt == "MemberAccess":
            enum = self._enum_named(base_node.get("memberName", ""))
            if enum is not None and member in enum.values:
                return [], Expr(enum.constant(member), enum)

        if bnt == "FunctionCall" and base_node.get("expression", {}).get("name") == "type":
            return [], self._type_bound(base_node, member, loc)

        pre, base = self.expr(base_node)
        btype = base.type

        if isinstance(btype, Struct) and btype.field_type(member) is not None:
            return pre, Expr(f"{base.text}.{member}", btype.field_type(member))
        if isinstance(btype, DynamicArray) and member == "length":
            return pre, Expr(f"{base.text}.len", ENV_UINT)
        if isinstance(btype, StaticArray) and member == "length":
            return pre, Expr(str(btype.length), ENV_UINT)
        if isinstance(btype, Address) and member == "balance":
            return pre, self._balance_of(base, node)

        raise UnsupportedConstructError("MemberAccess", loc, detail=f"'.{member}'")

    def _type_bound(self, call: dict[str, Any], member: str, loc: Location) -> Expr:
        """``type(T).min`` / ``type(T).max`` as constants."""
        args = call.get("arguments") or []
        type_name = args[0].get("typeName") if args else None
        if isinstance(type_name, str):
            type_name = {"nodeType": "ElementaryTypeName", "name": type_name}
        desc = None
        if type_name:
            desc = self._map_local_type(
                type_name, f"{self._site_name()}: type({type_name.get('name', '')})", call,
            )
        if isinstance(desc, FixedInt) and member in ("min", "max"):
            value = desc.min_value if member == "min" else desc.max_value
            if INT_MIN <= value <= INT_MAX:
                return Expr(int_text(value), desc)
        raise UnsupportedConstructError("MemberAccess", loc, detail=f"'type(...).{member}'")

    def _balance_of(self, base: Expr, node: dict[str, Any]) -> Expr:
        if base.text == self.self_address:
            return Expr(self.balance, ENV_UINT)
        self.state.record_once(
            ("balance", self.contract.name, site_key(node)), self._loc(node),
            AbstractionCategory.ENVIRONMENT,
            "balance of an address without a contract process read as 0",
        )
        text = "0"
        for contract in reversed(self.state.unit.contracts):
            text = f"({base.text} == {contract.name}_ADDR -> {contract.name}_eth : {text})"
        return Expr(text, ENV_UINT)

    def _index_access(self, node: dict[str, Any], write: bool) -> tuple[list[Stmt], Expr]:
        loc = self._loc(node)
        base_node = node.get("baseExpression", {})
        index_node = node.get("indexExpression")
        if index_node is None:
            raise UnsupportedConstructError("IndexAccess", loc, detail="missing index")

        pre, base = self.place(base_node, True) if write else self.expr(base_node)
        ipre, index = self.expr(index_node)
        pre = pre + ipre
        btype = base.type

        if isinstance(btype, Mapping):
            idx = self.process.declare_raw("idx", length_type(btype.max_entries + 1))
            key = f"({index.text})"
            if write:
                ok = self.process.declare_raw("ok", "bool")
                pre.append(InlineCall(TypeRegistry.slot_inline(btype), [base.text, key, idx, ok]))
                pre.append(self._bound_guard(ok, "mapping"))
            else:
                pre.append(InlineCall(TypeRegistry.find_inline(btype), [base.text, key, idx]))
            return pre, Expr(f"{base.text}.vals[{idx}]", btype.value)

        if isinstance(btype, DynamicArray):
            bound = f"{base.text}.len"
        elif isinstance(btype, StaticArray):
            bound = str(btype.length)
        else:
            raise UnsupportedConstructError("IndexAccess", loc, detail="indexing a non-collection value")

        if not (index.text.isdigit() and isinstance(btype, StaticArray) and int(index.text) < btype.length):
            pre.append(self._guard(f"{index.text} < {bound}", "index"))
        return pre, Expr(f"{base.text}.elems[{index.text}]", btype.element)

    # ── Operators ────────────────────────────────────────────────────

    def _binary(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        op = node.get("operator", "")
        loc = self._loc(node)
        lpre, left = self.expr(node.get("leftExpression"))
        rpre, right = self.expr(node.get("rightExpression"))

        if op in ("&&", "||"):
            if not rpre:
                return lpre, Expr(f"({left.text} {op} {right.text})", Bool())
            # Right operand with side effects keeps its short circuit
            tmp = self.process.declare("tmp", Bool())
            guard = tmp if op == "&&" else f"!{tmp}"
            return lpre + [
                Assign(tmp, left.text),
                If(options=[[Raw(guard)] + rpre + [Assign(tmp, right.text)], [Raw("else")]]),
            ], Expr(tmp, Bool())

        pre = lpre + rpre
        if op in _COMPARISONS:
            return pre, Expr(f"({left.text} {op} {right.text})", Bool())
        if op not in _ARITHMETIC:
            raise UnsupportedConstructError("BinaryOperation", loc, detail=f"operator '{op}'")
        if isinstance(left.type, Address) or isinstance(right.type, Address):
            raise UnsupportedConstructError("BinaryOperation", loc, detail=f"arithmetic '{op}' on an address")

        rtype = left.type if isinstance(left.type, FixedInt) else right.type
        guards, text = self._arith(op, left.text, right.text, rtype, loc)
        return pre + guards, Expr(text, rtype)

    def _arith(
        self,
        op: str,
        a: str,
        b: str,
        rtype: TypeDescriptor | None,
        loc: Location,
    ) -> tuple[list[Stmt], str]:
        if op == "**":
            if a.lstrip("-").isdigit() and b.isdigit():
                value = int(a) ** int(b)
                if INT_MIN <= value <= INT_MAX:
                    return [], str(value)
            raise UnsupportedConstructError("BinaryOperation", loc, detail="non-constant exponentiation")

        text = f"({a} {op} {b})"
        guards: list[Stmt] = []
        if op in ("/", "%"):
            guards.append(self._guard(f"{b} != 0", "divzero"))
        if not isinstance(rtype, FixedInt) or not rtype.host_checkable:
            return guards, text

        wraps = op in ("+", "-", "*", "<<")
        if self._unchecked or not self.config.checked_arithmetic or op == "<<":
            if wraps and not rtype.signed:
                text = f"({text} & {rtype.max_value})"
            return guards, text

        condition = overflow_condition(op, a, b, rtype)
        if condition is not None:
            guards.append(self._guard(condition, "overflow"))
        return guards, text

    def _unary(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        op = node.get("operator", "")
        sub = node.get("subExpression", {})
        loc = self._loc(node)

        if op in ("++", "--"):
            stmts, value = self._increment(node, want_value=True)
            return stmts, value
        if op == "delete":
            pre, target = self.place(sub, write=False)
            return pre + zero_value(target.text, target.type), Expr("0")

        pre, operand = self.expr(sub)
        if op == "!":
            return pre, Expr(f"!({operand.text})", Bool())
        if op == "-":
            t = operand.type
            if isinstance(t, FixedInt) and t.host_checkable and t.signed and not self._unchecked:
                pre = pre + [self._guard(f"{operand.text} != {int_text(t.min_value)}", "overflow")]
            return pre, Expr(f"(-{operand.text})", t)
        if op == "~":
            t = operand.type
            text = f"(~{operand.text})"
            if isinstance(t, FixedInt) and t.host_checkable and not t.signed:
                text = f"({text} & {t.max_value})"
            return pre, Expr(text, t)

        raise UnsupportedConstructError("UnaryOperation", loc, detail=f"operator '{op}'")

    def _increment(self, node: dict[str, Any], want_value: bool) -> tuple[list[Stmt], Expr]:
        op = node.get("operator", "++")
        pre, target = self.place(node.get("subExpression", {}), write=True)
        guards, text = self._arith("+" if op == "++" else "-", target.text, "1", target.type, self._loc(node))
        stmts = pre + guards
        value = target.text
        if want_value and not node.get("prefix", False):
            old = self.process.declare("tmp", target.type)
            stmts.append(Assign(old, target.text))
            value = old
        stmts.append(Assign(target.text, text))
        return stmts, Expr(value, target.type)

    def assign(self, target: str, desc: TypeDescriptor | None, value: Expr, location: Location | None = None) -> list[Stmt]:
        if desc is not None and not desc.scalar:
            return copy_value(target, value.text, desc, location)
        return [Assign(target, value.text)]

    def _assignment(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        op = node.get("operator", "=")
        lhs = node.get("leftHandSide", {})
        loc = self._loc(node)

        if lhs.get("nodeType") == "TupleExpression" and len(lhs.get("components") or []) > 1:
            if op != "=":
                raise UnsupportedConstructError("Assignment", loc, detail=f"tuple '{op}'")
            return self._tuple_assignment(lhs, node.get("rightHandSide", {})), Expr("0")

        if lhs.get("nodeType") == "Identifier":
            binding = self._lookup(lhs.get("name", ""))
            if binding is not None and binding.alias:
                raise UnsupportedConstructError("Assignment", loc, detail="storage pointer reassignment")

        rpre, value = self.expr(node.get("rightHandSide"))
        lpre, target = self.place(lhs, write=True)
        stmts = rpre + lpre
        if op == "=":
            stmts += self.assign(target.text, target.type, value, loc)
        else:
            guards, text = self._arith(op[:-1], target.text, value.text, target.type, loc)
            stmts += guards + [Assign(target.text, text)]
        return stmts, Expr(target.text, target.type)

    def _tuple_assignment(self, lhs: dict[str, Any], rhs: dict[str, Any]) -> list[Stmt]:
        pre, value = self.expr(rhs)
        parts = value.parts if value.parts is not None else [value]
        stmts = list(pre)
        for component, part in zip(lhs.get("components") or [], parts):
            if component is None:
                continue
            cpre, target = self.place(component, write=True)
            stmts += cpre + self.assign(target.text, target.type, part, self._loc(component))
        return stmts

    def _conditional(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        cpre, cond = self.expr(node.get("condition"))
        tpre, t = self.expr(node.get("trueExpression"))
        fpre, f = self.expr(node.get("falseExpression"))
        rtype = t.type or f.type
        if not tpre and not fpre and (rtype is None or rtype.scalar):
            return cpre, Expr(f"({cond.text} -> {t.text} : {f.text})", rtype)
        tmp = self.process.declare("tmp", rtype or ENV_UINT)
        return cpre + [If(options=[
            [Raw(cond.text)] + tpre + self.assign(tmp, rtype, t),
            [Raw("else")] + fpre + self.assign(tmp, rtype, f),
        ])], Expr(tmp, rtype)

    def _tuple(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        if node.get("isInlineArray"):
            raise UnsupportedConstructError("TupleExpression", self._loc(node), detail="inline array")
        components = node.get("components") or []
        if len(components) == 1 and components[0] is not None:
            return self.expr(components[0])
        pre: list[Stmt] = []
        parts: list[Expr] = []
        for component in components:
            if component is None:
                parts.append(Expr("0"))
                continue
            cpre, value = self.expr(component)
            pre += cpre
            parts.append(value)
        return pre, _pack(parts)

    # ── Calls ────────────────────────────────────────────────────────

    def _arguments(self, node: dict[str, Any], names: list[str] | None = None) -> list[dict[str, Any]]:
        """Call arguments in parameter order, resolving named arguments."""
        args = list(node.get("arguments") or [])
        given = node.get("names") or []
        if not given:
            return args
        if names is None:
            raise UnsupportedConstructError("FunctionCall", self._loc(node), detail="named arguments")
        by_name = dict(zip(given, args))
        return [by_name[n] for n in names if n in by_name]

    def _evaluate(self, nodes: list[dict[str, Any]]) -> tuple[list[Stmt], list[Expr]]:
        pre: list[Stmt] = []
        values: list[Expr] = []
        for arg in nodes:
            apre, value = self.expr(arg)
            pre += apre
            values.append(value)
        return pre, values

    def _call(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        kind = node.get("kind", "functionCall")
        callee = node.get("expression", {})
        loc = self._loc(node)

        if kind == "typeConversion":
            return self._conversion(node)
        if kind == "structConstructorCall":
            return self._struct_constructor(node)

        cnt = callee.get("nodeType")
        if cnt == "NewExpression":
            return self._new_contract(node)

        if cnt == "Identifier":
            name = callee.get("name", "")
            arity = len(node.get("arguments") or [])
            func = self.contract.get_function(name, arity)
            if func is not None:
                return self._call_internal(func, node)
            if name in ("require", "assert"):
                return self._require(node, name), Expr("0")
            if name == "revert":
                return [self.process.dead_end("revert")], Expr("0")
            raise UnsupportedConstructError("FunctionCall", loc, detail=f"call to '{name}'")

        if cnt == "MemberAccess":
            return self._member_call(node)

        raise UnsupportedConstructError("FunctionCall", loc, detail=f"callee '{cnt}'")

    def _require(self, node: dict[str, Any], name: str) -> list[Stmt]:
        args = node.get("arguments") or []
        if not args:
            raise UnsupportedConstructError("FunctionCall", self._loc(node), detail=f"{name} without a condition")
        pre, cond = self.expr(args[0])
        if name == "assert" and self.config.assert_as_violation:
            return pre + [Assert(cond.text)]
        return pre + [If(options=[
            [Raw(cond.text)],
            [Raw("else"), self.process.dead_end(name, reason=f"{name} failed")],
        ])]

    @abstractmethod
    def _call_internal(self, func: FunctionSignature, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        """Inline a call to an internal function of this contract."""
        ...

    def _member_call(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        callee = node.get("expression", {})
        member = callee.get("memberName", "")
        base_node = callee.get("expression", {})
        loc = self._loc(node)

        if base_node.get("nodeType") == "Identifier" and base_node.get("name") in ("super", "abi", "bytes", "string"):
            raise UnsupportedConstructError("FunctionCall", loc, detail=f"'{base_node.get('name')}.{member}'")

        if member in ("push", "pop"):
            pre, target = self.place(base_node, write=True)
            if isinstance(target.type, DynamicArray):
                if member == "push":
                    return self._push(target, node)
                return self._pop(target), Expr("0")
            raise UnsupportedConstructError("FunctionCall", loc, detail=f"'.{member}' on a non-array")

        pre, base = self.expr(base_node)
        if isinstance(base.type, Address):
            if member in ("transfer", "send"):
                stmts, value = self._transfer(member, base, node)
                return pre + stmts, value
            if base.type.contract:
                stmts, value = self._external_call(base, member, node)
                return pre + stmts, value
        raise UnsupportedConstructError("FunctionCall", loc, detail=f"'.{member}'")

    def _push(self, target: Expr, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        array = target.type
        assert isinstance(array, DynamicArray)
        args = node.get("arguments") or []
        stmts: list[Stmt] = []
        value: Expr | None = None
        if args:
            stmts, value = self.expr(args[0])
        stmts.append(self._bound_guard(f"{target.text}.len < {array.max_len}", "push"))
        slot = f"{target.text}.elems[{target.text}.len]"
        if value is None:
            stmts += zero_value(slot, array.element)
        else:
            stmts += self.assign(slot, array.element, value, self._loc(node))
        stmts.append(Raw(f"{target.text}.len++"))
        return stmts, Expr("0")

    def _pop(self, target: Expr) -> list[Stmt]:
        array = target.type
        assert isinstance(array, DynamicArray)
        return [
            If(options=[
                [Raw(f"{target.text}.len > 0"), Raw(f"{target.text}.len--")],
                [Raw("else"), self.process.dead_end("pop")],
            ]),
            *zero_value(f"{target.text}.elems[{target.text}.len]", array.element),
        ]

    def _credit(self, recipient: str, amount: str) -> list[Stmt]:
        options: list[list[Stmt]] = [
            [Raw(f"{recipient} == {c.name}_ADDR"), Assign(f"{c.name}_eth", f"{c.name}_eth + {amount}")]
            for c in self.state.unit.contracts
        ]
        options.append([Raw("else")])
        return [If(options=options)]

    def _transfer(self, member: str, recipient: Expr, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        args = node.get("arguments") or []
        if len(args) != 1:
            raise UnsupportedConstructError("FunctionCall", self._loc(node), detail=f"'{member}' takes one amount")
        pre, amount = self.expr(args[0])
        self.state.record_once(
            ("transfer", self.contract.name, site_key(node)), self._loc(node),
            AbstractionCategory.EXTERNAL_TRANSFER,
            f"{member} of {amount.text} to {recipient.text} moves balance only; recipient code is not executed",
        )
        covered = f"{self.balance} >= {amount.text}"
        debit: list[Stmt] = [Assign(self.balance, f"{self.balance} - {amount.text}")]
        debit += self._credit(recipient.text, amount.text)
        if member == "transfer":
            return pre + [If(options=[
                [Raw(covered)] + debit,
                [Raw("else"), self.process.dead_end("transfer")],
            ])], Expr("0")
        ok = self.process.declare("tmp", Bool())
        return pre + [If(options=[
            [Raw(covered)] + debit + [Assign(ok, "true")],
            [Raw("else"), Assign(ok, "false")],
        ])], Expr(ok, Bool())

    def _external_call(self, target: Expr, member: str, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        """Route a call through the target contract's channels."""
        loc = self._loc(node)
        assert isinstance(target.type, Address)
        name = target.type.contract or ""
        callee = self.state.unit.get_contract(name)
        if callee is None:
            raise UnsupportedConstructError("FunctionCall", loc, detail=f"'{name}' has no contract process")
        if callee.name == self.contract.name:
            raise UnsupportedConstructError("FunctionCall", loc, detail="external call into the calling contract")
        func = callee.get_function(member, len(node.get("arguments") or []))
        if func is None or not func.externally_visible:
            raise UnsupportedConstructError("FunctionCall", loc, detail=f"'{name}.{member}' is not externally visible")

        pre, args = self._evaluate(self._arguments(node, [p.name for p in func.parameters]))
        key = callee.function_key(func)
        results = [self.process.declare("ret", r.type) for r in func.returns]
        pre.append(self._guard(f"{target.text} == {name}_ADDR", "call"))
        pre.append(Labeled(
            self.process.label("end_xcall"),
            Send(f"{name}_{key}_call", [self.self_address, "tx_origin", "0"] + [a.text for a in args]),
        ))
        pre.append(Labeled(
            self.process.label("end_xwait"),
            Receive(f"{name}_{key}_result", results or ["_"]),
        ))
        return pre, _pack([Expr(r, p.type) for r, p in zip(results, func.returns)])

    def _new_contract(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        """``new T(...)``: spawn T's process once and hand back its address."""
        loc = self._loc(node)
        type_node = node.get("expression", {}).get("typeName") or {}
        definition = self.state.mapper.definitions.resolve(type_node)
        if not definition or definition.get("nodeType") != "ContractDefinition":
            raise UnsupportedConstructError("NewExpression", loc, detail="only contract creation is modeled")
        target = self.state.unit.get_contract(definition.get("name", ""))
        if target is None or target.name == self.contract.name:
            raise UnsupportedConstructError("NewExpression", loc, detail=f"'{definition.get('name')}' cannot be spawned")

        ctor = target.constructor
        params = ctor.parameters if ctor else []
        for p in params:
            if not p.type.scalar:
                raise UnsupportedConstructError("NewExpression", loc, detail="non-scalar constructor argument")
        pre, args = self._evaluate(self._arguments(node, [p.name for p in params]))

        if target.name not in self.state.spawned:
            self.state.spawned.append(target.name)
        flag = f"{target.name}_spawned"
        pre.append(Atomic(body=[If(options=[
            [Raw(f"!{flag}"), Assign(flag, "true"),
             Run(target.name, [self.self_address, "tx_origin"] + [a.text for a in args])],
            [Raw("else")],
        ])]))
        self.state.record_once(
            ("new", self.contract.name, site_key(node)), loc, AbstractionCategory.INSTANCE,
            f"'new {target.name}' collapsed onto the single {target.name} process at address {target.address}",
        )
        return pre, Expr(f"{target.name}_ADDR", Address(contract=target.name))

    def _conversion(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        args = node.get("arguments") or []
        pre, value = self.expr(args[0]) if args else ([], Expr("0"))
        target = self._conversion_target(node)
        if target is None:
            return pre, Expr(value.text, value.type)
        if isinstance(target, FixedInt) and isinstance(value.type, FixedInt):
            narrowing = value.type.bits > target.bits or value.type.signed != target.signed
            if narrowing and not target.signed and target.host_checkable:
                return pre, Expr(f"({value.text} & {target.max_value})", target)
        return pre, Expr(value.text, target)

    def _conversion_target(self, node: dict[str, Any]) -> TypeDescriptor | None:
        callee = node.get("expression", {})
        loc = self._loc(node)
        nt = callee.get("nodeType")
        if nt == "ElementaryTypeNameExpression":
            type_name = callee.get("typeName")
            if isinstance(type_name, dict):
                name = type_name.get("name", "")
            else:
                name = type_name or ""
            if name in ("string", "bytes") or name.startswith("bytes"):
                # Symbol ids convert unchanged
                return None
            return self._map_local_type(
                {"nodeType": "ElementaryTypeName", "name": name}, f"{self._site_name()}: {name}(...)", node,
            )
        if nt in ("Identifier", "MemberAccess"):
            definition = self.state.mapper.definitions.resolve(callee)
            if nt == "MemberAccess" and definition is None:
                definition = self.state.mapper.definitions.by_name.get(callee.get("memberName", ""))
            kind = (definition or {}).get("nodeType")
            if kind == "ContractDefinition":
                return Address(contract=definition.get("name"))
            if kind == "EnumDefinition":
                return self.state.mapper.map_enum(definition)
        raise UnsupportedConstructError("FunctionCall", loc, detail="type conversion")

    def _struct_constructor(self, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        loc = self._loc(node)
        callee = node.get("expression", {})
        definition = self.state.mapper.definitions.resolve(callee)
        if definition is None and callee.get("nodeType") == "MemberAccess":
            definition = self.state.mapper.definitions.by_name.get(callee.get("memberName", ""))
        if not definition or definition.get("nodeType") != "StructDefinition":
            raise UnsupportedConstructError("FunctionCall", loc, detail="struct constructor")
        struct = self.state.mapper.map_struct(definition, self.state.ledger)
        tmp = self.process.declare("tmp", struct)
        names = node.get("names") or [n for n, _ in struct.fields]
        stmts: list[Stmt] = []
        for name, arg in zip(names, node.get("arguments") or []):
            apre, value = self.expr(arg)
            stmts += apre + self.assign(f"{tmp}.{name}", struct.field_type(name), value, loc)
        return stmts, Expr(tmp, struct)

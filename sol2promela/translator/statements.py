"""Statement translation, modifier expansion and internal-call inlining.

Control flow is structural: ``if`` becomes ``if :: c -> ... :: else -> ... fi``
and every loop becomes one ``do`` with explicit ``cont_k``/``brk_k`` labels.
Function returns jump to the frame's return label; the caller places that
label after the inlined body.

Loop shape::

    lb_1 = 0;
    do
    :: <condition pre-statements>
       if
       :: (cond) && lb_1 < MAX -> lb_1++
       :: (cond) && lb_1 >= MAX -> end_loopbound_1: false   /* or goto brk_1 */
       :: else -> goto brk_1
       fi;
       <body>;
       cont_1: skip;
       <loop expression>
    od;
    brk_1: skip

The counter is only emitted for loops without a provable bound; those are
the loops that get a ``LoopBoundAbstraction``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from sol2promela.core.ast_analyzer import iter_nodes
from sol2promela.core.errors import UnsupportedConstructError
from sol2promela.core.types import AbstractionCategory, LoopBoundPolicy
from sol2promela.ir.contract import FunctionSignature, ModifierInvocation
from sol2promela.ir.descriptors import Bool, Enum
from sol2promela.promela.model import Assign, Do, Goto, If, Labeled, Raw, Stmt
from sol2promela.translator.collections import length_type
from sol2promela.translator.expressions import Expr, ExpressionTranslator, _pack, zero_value
from sol2promela.translator.scope import Binding, Frame, site_key

logger = logging.getLogger(__name__)


# ── Loop bounds ──────────────────────────────────────────────────────────────


def _literal_int(node: dict[str, Any] | None) -> int | None:
    if not node or node.get("nodeType") != "Literal" or node.get("kind") != "number":
        return None
    if node.get("subdenomination"):
        return None
    raw = str(node.get("value", "")).replace("_", "")
    try:
        return int(raw, 0)
    except ValueError:
        return None


def _loop_start(init: dict[str, Any] | None) -> tuple[str | None, int | None]:
    if not init:
        return None, None
    if init.get("nodeType") == "VariableDeclarationStatement":
        decls = [d for d in init.get("declarations") or [] if d]
        if len(decls) == 1:
            return decls[0].get("name"), _literal_int(init.get("initialValue"))
    if init.get("nodeType") == "ExpressionStatement":
        expr = init.get("expression") or {}
        lhs = expr.get("leftHandSide") or {}
        if expr.get("nodeType") == "Assignment" and expr.get("operator") == "=" and lhs.get("nodeType") == "Identifier":
            return lhs.get("name"), _literal_int(expr.get("rightHandSide"))
    return None, None


def _is_unit_step(step: dict[str, Any] | None, var: str) -> bool:
    expr = (step or {}).get("expression") or {}
    if expr.get("nodeType") == "UnaryOperation" and expr.get("operator") == "++":
        sub = expr.get("subExpression") or {}
        return sub.get("nodeType") == "Identifier" and sub.get("name") == var
    if expr.get("nodeType") == "Assignment" and expr.get("operator") == "+=":
        lhs = expr.get("leftHandSide") or {}
        return lhs.get("nodeType") == "Identifier" and lhs.get("name") == var and _literal_int(expr.get("rightHandSide")) == 1
    return False


def _writes(body: Any, var: str) -> bool:
    for node in iter_nodes(body):
        nt = node.get("nodeType")
        if nt == "Assignment":
            targets = [node.get("leftHandSide") or {}]
            if targets[0].get("nodeType") == "TupleExpression":
                targets = [c for c in targets[0].get("components") or [] if c]
            if any(t.get("nodeType") == "Identifier" and t.get("name") == var for t in targets):
                return True
        elif nt == "UnaryOperation" and node.get("operator") in ("++", "--", "delete"):
            sub = node.get("subExpression") or {}
            if sub.get("nodeType") == "Identifier" and sub.get("name") == var:
                return True
    return False


def provable_iterations(node: dict[str, Any]) -> int | None:
    """Iteration count of ``for (i = L0; i < L1; i++)`` with literal bounds, else None.

    ``<=`` and ``i += 1`` are accepted too; any write to ``i`` in the body
    makes the bound unprovable.
    """
    if node.get("nodeType") != "ForStatement":
        return None
    var, start = _loop_start(node.get("initializationExpression"))
    if var is None or start is None:
        return None
    cond = node.get("condition") or {}
    left = cond.get("leftExpression") or {}
    op = cond.get("operator")
    end = _literal_int(cond.get("rightExpression"))
    if (
        cond.get("nodeType") != "BinaryOperation"
        or op not in ("<", "<=")
        or left.get("nodeType") != "Identifier"
        or left.get("name") != var
        or end is None
    ):
        return None
    if not _is_unit_step(node.get("loopExpression"), var) or _writes(node.get("body"), var):
        return None
    return max(end - start + (1 if op == "<=" else 0), 0)


# ── Body translator ──────────────────────────────────────────────────────────


class BodyTranslator(ExpressionTranslator):
    """Translate function bodies of one contract into its process."""

    # ── Entry points ─────────────────────────────────────────────────

    def function(
        self,
        func: FunctionSignature,
        params: dict[str, Binding],
        returns: list[Binding],
        return_label: str,
    ) -> list[Stmt]:
        """Translate ``func`` with its modifiers; ``return_label`` is placed by the caller."""
        self._entry = func
        self._call_stack = [func.name]
        return self._with_modifiers(func, params, returns, list(func.modifiers), return_label)

    def initializer(self, node: dict[str, Any], target: str, desc: Any) -> list[Stmt]:
        """State-variable initializer run in the contract prologue."""
        def translate(n: dict[str, Any]) -> list[Stmt]:
            pre, value = self.expr(n)
            return pre + self.assign(target, desc, value, self._loc(n))
        return self._simple(node, translate)

    def static_value(self, node: dict[str, Any] | None) -> str | None:
        """Text of an initializer that needs no statements, or None."""
        if not node:
            return None
        nt = node.get("nodeType")
        if nt == "UnaryOperation":
            sub = node.get("subExpression") or {}
            if node.get("operator") != "-" or sub.get("nodeType") != "Literal":
                return None
        elif nt not in ("Literal", "MemberAccess"):
            return None
        try:
            pre, value = self.expr(node)
        except UnsupportedConstructError:
            return None
        if pre or value.parts is not None:
            return None
        if nt == "MemberAccess" and not isinstance(value.type, Enum):
            return None
        return value.text

    # ── Frames, modifiers, inlining ──────────────────────────────────

    def _in_frame(self, frame: Frame, translate: Callable[[], list[Stmt]]) -> list[Stmt]:
        self._frames.append(frame)
        try:
            return translate()
        finally:
            self._frames.pop()

    def _with_modifiers(
        self,
        func: FunctionSignature,
        params: dict[str, Binding],
        returns: list[Binding],
        modifiers: list[ModifierInvocation],
        return_label: str,
    ) -> list[Stmt]:
        if not modifiers:
            frame = Frame(function=func, returns=returns, return_label=return_label, scopes=[dict(params)])
            return self._in_frame(frame, lambda: self.statement(func.body) if func.body else [])

        invocation, rest = modifiers[0], modifiers[1:]
        definition = self.contract.modifiers.get(invocation.name)
        loc = func.location
        if definition is None:
            raise UnsupportedConstructError("ModifierInvocation", loc, detail=f"unknown modifier '{invocation.name}'")

        # Modifier arguments see the function's parameters
        arg_frame = Frame(function=func, returns=returns, return_label=return_label, scopes=[dict(params)])
        pre, values = self._in_frame_values(arg_frame, invocation.arguments)

        modifier_scope: dict[str, Binding] = {}
        stmts = list(pre)
        for param, value in zip(definition.parameters, values):
            local = self.process.declare(f"{definition.name}_{param.name}", param.type)
            stmts += self.assign(local, param.type, value, definition.location)
            modifier_scope[param.name] = Binding(local, param.type)

        def placeholder() -> list[Stmt]:
            body_end = self.process.label("body_end")
            body = self._with_modifiers(func, params, returns, rest, body_end)
            return body + [Labeled(body_end, Raw("skip"))]

        frame = Frame(
            function=FunctionSignature(name=definition.name, kind="modifier", location=definition.location),
            returns=returns,
            return_label=return_label,
            scopes=[modifier_scope],
            placeholder=placeholder,
        )
        return stmts + self._in_frame(frame, lambda: self.statement(definition.body) if definition.body else [])

    def _in_frame_values(self, frame: Frame, nodes: list[dict[str, Any]]) -> tuple[list[Stmt], list[Expr]]:
        result: list[tuple[list[Stmt], list[Expr]]] = []

        def evaluate() -> list[Stmt]:
            result.append(self._evaluate(nodes))
            return []

        self._in_frame(frame, evaluate)
        return result[0]

    def _call_internal(self, func: FunctionSignature, node: dict[str, Any]) -> tuple[list[Stmt], Expr]:
        """Inline an internal call with fresh locals."""
        loc = self._loc(node)
        depth = self._call_stack.count(func.name)
        if depth >= self.config.max_recursion_depth:
            self.state.record_once(
                ("recursion", self.contract.name, func.name), loc, AbstractionCategory.RECURSION_BOUND,
                f"recursion into '{func.name}' cut at depth {self.config.max_recursion_depth}",
            )
            return [self.process.dead_end("recursion")], _pack([Expr(r.type.zero_value(), r.type) for r in func.returns])

        arg_nodes = self._arguments(node, [p.name for p in func.parameters])
        stmts: list[Stmt] = []
        params: dict[str, Binding] = {}
        for param, arg in zip(func.parameters, arg_nodes):
            if param.storage_location == "storage" and not param.type.scalar:
                pre, target = self.place(arg, write=True)
                stmts += pre
                params[param.name] = Binding(target.text, param.type, storage=True, alias=True)
                continue
            pre, value = self.expr(arg)
            local = self.process.declare(f"{func.name}_{param.name}", param.type)
            stmts += pre + self.assign(local, param.type, value, loc)
            params[param.name] = Binding(local, param.type)

        returns: list[Binding] = []
        for ret in func.returns:
            local = self.process.declare(f"{func.name}_{ret.name}", ret.type)
            stmts += zero_value(local, ret.type)
            binding = Binding(local, ret.type)
            returns.append(binding)
            params.setdefault(ret.name, binding)

        end = self.process.label("ret")
        self._call_stack.append(func.name)
        try:
            stmts += self._with_modifiers(func, params, returns, list(func.modifiers), end)
        finally:
            self._call_stack.pop()
        stmts.append(Labeled(end, Raw("skip")))
        return stmts, _pack([Expr(b.text, b.type) for b in returns])

    # ── Statements ───────────────────────────────────────────────────

    def _simple(self, node: dict[str, Any], translate: Callable[[dict[str, Any]], list[Stmt]]) -> list[Stmt]:
        """Run ``translate`` with a statement-level skip label for saturating writes."""
        self._skip_labels.append(None)
        try:
            stmts = translate(node)
        finally:
            label = self._skip_labels.pop()
        if label is not None:
            stmts.append(Labeled(label, Raw("skip")))
        return stmts

    def statement(self, node: dict[str, Any] | None) -> list[Stmt]:
        if not node:
            return []
        nt = node.get("nodeType", "")
        loc = self._loc(node)

        if nt == "Block":
            return self._block(node.get("statements") or [])
        if nt == "UncheckedBlock":
            self._unchecked += 1
            try:
                return self._block(node.get("statements") or [])
            finally:
                self._unchecked -= 1

        if nt == "ExpressionStatement":
            return self._simple(node, self._expression_statement)
        if nt == "VariableDeclarationStatement":
            return self._simple(node, self._declaration)
        if nt == "IfStatement":
            return self._simple(node, self._if)
        if nt == "ForStatement":
            return self._simple(node, self._for)
        if nt == "WhileStatement":
            return self._simple(node, lambda n: self._loop(n, self._loop_counter(n)))
        if nt == "DoWhileStatement":
            return self._simple(node, lambda n: self._loop(n, self._loop_counter(n), do_while=True))
        if nt == "Return":
            return self._simple(node, self._return)
        if nt == "EmitStatement":
            return self._simple(node, self._emit)
        if nt == "RevertStatement":
            return [self.process.dead_end("revert")]
        if nt == "Break":
            return [Goto(self._innermost_loop(loc)[1])]
        if nt == "Continue":
            return [Goto(self._innermost_loop(loc)[0])]
        if nt == "PlaceholderStatement":
            if not self._frames or self.frame.placeholder is None:
                raise UnsupportedConstructError(nt, loc, detail="placeholder outside a modifier")
            return self.frame.placeholder()

        raise UnsupportedConstructError(nt or "statement", loc)

    def _block(self, statements: list[dict[str, Any]]) -> list[Stmt]:
        self.frame.scopes.append({})
        try:
            out: list[Stmt] = []
            for stmt in statements:
                out += self.statement(stmt)
            return out
        finally:
            self.frame.scopes.pop()

    def _branch(self, node: dict[str, Any] | None) -> list[Stmt]:
        if not node:
            return []
        self.frame.scopes.append({})
        try:
            return self.statement(node)
        finally:
            self.frame.scopes.pop()

    def _innermost_loop(self, loc: Any) -> tuple[str, str]:
        if not self.frame.loops:
            raise UnsupportedConstructError("Break", loc, detail="outside a loop")
        return self.frame.loops[-1]

    def _expression_statement(self, node: dict[str, Any]) -> list[Stmt]:
        expression = node.get("expression") or {}
        if expression.get("nodeType") == "UnaryOperation" and expression.get("operator") in ("++", "--"):
            stmts, _ = self._increment(expression, want_value=False)
            return stmts
        pre, _ = self.expr(expression)
        return pre

    def _declaration(self, node: dict[str, Any]) -> list[Stmt]:
        init = node.get("initialValue")
        declarations = node.get("declarations") or []
        stmts: list[Stmt] = []
        value: Expr | None = None
        if init is not None:
            pre, value = self.expr(init) if not self._is_storage_alias(declarations) else ([], None)
            stmts += pre

        parts: list[Expr | None]
        if value is None:
            parts = [None] * len(declarations)
        elif value.parts is not None:
            parts = list(value.parts)
        else:
            parts = [value]

        bindings: list[tuple[str, Binding]] = []
        for decl, part in zip(declarations, parts):
            if decl is None:
                continue
            name = decl.get("name", "")
            loc = self._loc(decl)
            desc = self._map_local_type(
                decl.get("typeName"), f"{self.contract.name}.{self.frame.function.name}.{name}", decl,
            )
            if decl.get("storageLocation") == "storage" and not desc.scalar:
                if init is None:
                    raise UnsupportedConstructError("VariableDeclaration", loc, detail="uninitialized storage pointer")
                pre, target = self.place(init, write=True)
                stmts += pre
                bindings.append((name, Binding(target.text, desc, storage=True, alias=True)))
                continue
            local = self.process.declare(f"{self.frame.function.name}_{name}", desc)
            if part is None:
                stmts += zero_value(local, desc)
            else:
                stmts += self.assign(local, desc, part, loc)
            bindings.append((name, Binding(local, desc)))

        # Names become visible after their own initializer
        for name, binding in bindings:
            self.frame.bind(name, binding)
        return stmts

    @staticmethod
    def _is_storage_alias(declarations: list[dict[str, Any] | None]) -> bool:
        return len(declarations) == 1 and bool(declarations[0]) and declarations[0].get("storageLocation") == "storage"

    def _if(self, node: dict[str, Any]) -> list[Stmt]:
        pre, cond = self.expr(node.get("condition"))
        then = self._branch(node.get("trueBody"))
        otherwise = self._branch(node.get("falseBody"))
        return pre + [If(options=[[Raw(cond.text)] + then, [Raw("else")] + otherwise])]

    def _return(self, node: dict[str, Any]) -> list[Stmt]:
        frame = self.frame
        stmts: list[Stmt] = []
        expression = node.get("expression")
        if expression is not None:
            pre, value = self.expr(expression)
            stmts += pre
            values = value.parts if value.parts is not None else [value]
            for binding, part in zip(frame.returns, values):
                stmts += self.assign(binding.text, binding.type, part, self._loc(node))
        stmts.append(Goto(frame.return_label))
        return stmts

    def _emit(self, node: dict[str, Any]) -> list[Stmt]:
        call = node.get("eventCall") or {}
        callee = call.get("expression") or {}
        name = callee.get("name") or callee.get("memberName") or ""
        event = self.contract.get_event(name)
        if event is None:
            raise UnsupportedConstructError("EmitStatement", self._loc(node), detail=f"unknown event '{name}'")
        target = f"{self.contract.name}_ev_{name}"
        pre, values = self._evaluate(self._arguments(call, [n for n, _ in event.fields]))
        stmts = pre + [Raw(f"{target}.count++")]
        for (field_name, field_type), value in zip(event.fields, values):
            if field_type.scalar:
                stmts.append(Assign(f"{target}.{field_name}", value.text))
        return stmts

    # ── Loops ────────────────────────────────────────────────────────

    def _loop_counter(self, node: dict[str, Any]) -> str:
        limit = self.config.loop_max_iterations
        policy = self.config.loop_bound_policy
        self.state.record_once(
            ("loop", self.contract.name, site_key(node)), self._loc(node),
            AbstractionCategory.LOOP_BOUND,
            f"{node.get('nodeType')} without a provable bound limited to {limit} iterations "
            f"({policy.value} when exhausted)",
        )
        return self.process.declare_raw("lb", length_type(limit + 1))

    def _for(self, node: dict[str, Any]) -> list[Stmt]:
        self.frame.scopes.append({})
        try:
            stmts = self.statement(node.get("initializationExpression"))
            counter = None if provable_iterations(node) is not None else self._loop_counter(node)
            return stmts + self._loop(node, counter)
        finally:
            self.frame.scopes.pop()

    def _loop(self, node: dict[str, Any], counter: str | None, do_while: bool = False) -> list[Stmt]:
        cont = self.process.label("cont")
        brk = self.process.label("brk")
        cond_node = node.get("condition")
        cpre, cond = self.expr(cond_node) if cond_node else ([], Expr("true", Bool()))

        self.frame.loops.append((cont, brk))
        try:
            body = self._branch(node.get("body"))
        finally:
            self.frame.loops.pop()
        step = self.statement(node.get("loopExpression")) if node.get("loopExpression") else []

        check = self._loop_check(cond.text, counter, brk)
        tail = [Labeled(cont, Raw("skip"))] + step
        if do_while:
            option = body + tail + cpre + [check]
        else:
            option = cpre + [check] + body + tail

        stmts: list[Stmt] = []
        if counter is not None:
            stmts.append(Assign(counter, "0"))
        stmts += [Do(options=[option]), Labeled(brk, Raw("skip"))]
        return stmts

    def _loop_check(self, cond: str, counter: str | None, brk: str) -> If:
        if counter is None:
            return If(options=[[Raw(cond)], [Raw("else"), Goto(brk)]])
        limit = self.config.loop_max_iterations
        if self.config.loop_bound_policy == LoopBoundPolicy.BLOCK:
            exhausted: Stmt = self.process.dead_end("loopbound")
        else:
            exhausted = Goto(brk)
        return If(options=[
            [Raw(f"({cond}) && {counter} < {limit}"), Raw(f"{counter}++")],
            [Raw(f"({cond}) && {counter} >= {limit}"), exhausted],
            [Raw("else"), Goto(brk)],
        ])

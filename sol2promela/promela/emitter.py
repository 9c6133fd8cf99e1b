"""Emitter — render a ``PromelaModel`` as PROMELA source text.

One deterministic pass over a fully assembled model. Section order:

  1. header comment
  2. ``#define``s (addresses, enum constants, selectors, environment, gas hint)
  3. typedefs
  4. channels
  5. globals
  6. mapping inlines
  7. contract processes
  8. agent processes
  9. ``init``
 10. never-claim placeholder section

Nothing here knows about Solidity; the text depends only on the model.
"""

from __future__ import annotations

import logging

from sol2promela.promela.model import (
    Assert,
    Assign,
    Atomic,
    Break,
    ChannelDecl,
    DeadEnd,
    Define,
    Do,
    Goto,
    If,
    InlineCall,
    InlineDecl,
    Labeled,
    ProcessDecl,
    PromelaModel,
    Raw,
    Receive,
    Run,
    Select,
    Send,
    Stmt,
    TypedefDecl,
    VarDecl,
)

logger = logging.getLogger(__name__)

INDENT = "    "
NEVER_CLAIM_MARKER = "/* NEVER_CLAIMS: append never claims for the properties above */"


def _indent(lines: list[str], depth: int = 1) -> list[str]:
    prefix = INDENT * depth
    return [prefix + line if line else line for line in lines]


def render_var(decl: VarDecl) -> str:
    text = f"{decl.type} {decl.name}"
    if decl.array_len is not None:
        text += f"[{decl.array_len}]"
    if decl.init is not None:
        text += f" = {decl.init}"
    return text


class PromelaEmitter:
    """Render statements and declarations; ``emit()`` renders a whole model."""

    # ── Statements ───────────────────────────────────────────────────

    def statement(self, stmt: Stmt) -> list[str]:
        if isinstance(stmt, Raw):
            return [stmt.text]
        if isinstance(stmt, Assign):
            return [f"{stmt.target} = {stmt.expr}"]
        if isinstance(stmt, Send):
            return [f"{stmt.channel} ! {', '.join(stmt.args)}"]
        if isinstance(stmt, Receive):
            return [f"{stmt.channel} ? {', '.join(stmt.targets)}"]
        if isinstance(stmt, If):
            return ["if"] + self._options(stmt.options) + ["fi"]
        if isinstance(stmt, Do):
            return ["do"] + self._options(stmt.options) + ["od"]
        if isinstance(stmt, Atomic):
            return ["atomic {"] + _indent(self.sequence(stmt.body)) + ["}"]
        if isinstance(stmt, Labeled):
            inner = self.statement(stmt.stmt)
            return [f"{stmt.label}: {inner[0]}"] + inner[1:]
        if isinstance(stmt, DeadEnd):
            line = f"{stmt.label}: false"
            if stmt.reason:
                line += f"  /* {stmt.reason} */"
            return [line]
        if isinstance(stmt, Goto):
            return [f"goto {stmt.label}"]
        if isinstance(stmt, Break):
            return ["break"]
        if isinstance(stmt, Assert):
            return [f"assert({stmt.expr})"]
        if isinstance(stmt, InlineCall):
            return [f"{stmt.name}({', '.join(stmt.args)})"]
        if isinstance(stmt, Run):
            return [f"run {stmt.proctype}({', '.join(stmt.args)})"]
        if isinstance(stmt, Select):
            return [f"select({stmt.target} : {stmt.low} .. {stmt.high})"]
        raise TypeError(f"cannot render {type(stmt).__name__}")

    def sequence(self, stmts: list[Stmt]) -> list[str]:
        """Statements joined by ``;``."""
        lines: list[str] = []
        for i, stmt in enumerate(stmts):
            rendered = self.statement(stmt)
            if i < len(stmts) - 1:
                rendered[-1] += ";"
            lines += rendered
        return lines

    def _options(self, options: list[list[Stmt]]) -> list[str]:
        lines: list[str] = []
        for option in options:
            if not option:
                lines.append(":: skip")
                continue
            first = self.statement(option[0])
            head = [f":: {first[0]}"] + ["   " + line for line in first[1:]]
            if len(option) > 1:
                head[-1] += " ->"
                head += _indent(self.sequence(option[1:]))
            lines += head
        return lines

    # ── Declarations ─────────────────────────────────────────────────

    @staticmethod
    def define(define: Define) -> str:
        line = f"#define {define.name} {define.value}"
        if define.comment:
            line += f"  /* {define.comment} */"
        return line

    @staticmethod
    def typedef(typedef: TypedefDecl) -> list[str]:
        fields = [render_var(f) for f in typedef.fields]
        body = [f + ";" for f in fields[:-1]] + fields[-1:]
        return [f"typedef {typedef.name} {{"] + _indent(body) + ["}"]

    @staticmethod
    def channel(channel: ChannelDecl) -> list[str]:
        return [
            f"chan {channel.call} = [0] of {{ {', '.join(channel.call_fields)} }};",
            f"chan {channel.result} = [0] of {{ {', '.join(channel.result_fields)} }};",
        ]

    def inline(self, inline: InlineDecl) -> list[str]:
        return [f"inline {inline.name}({', '.join(inline.params)}) {{"] + _indent(self.sequence(inline.body)) + ["}"]

    def process(self, process: ProcessDecl) -> list[str]:
        params = "; ".join(render_var(p) for p in process.params)
        lines = [f"/* {process.kind} {process.name} */", f"proctype {process.name}({params}) {{"]
        lines += _indent([render_var(v) + ";" for v in process.locals])
        if process.locals:
            lines.append("")
        lines += _indent(self.sequence(process.body))
        lines.append("}")
        return lines

    def init(self, locals_: list[VarDecl], body: list[Stmt]) -> list[str]:
        lines = ["init {"]
        lines += _indent([render_var(v) + ";" for v in locals_])
        lines += _indent(self.sequence(body))
        lines.append("}")
        return lines

    # ── Model ────────────────────────────────────────────────────────

    def emit(self, model: PromelaModel, ledger_size: int | None = None) -> str:
        out: list[str] = [
            "/*",
            f" * PROMELA model of contract {model.name}",
            " * generated by sol2promela",
        ]
        if ledger_size is not None:
            out.append(f" * {ledger_size} abstraction(s) recorded")
        out += [" */", ""]

        defines = list(model.defines)
        if model.gas_hint is not None:
            defines += [
                Define("GAS_TX_HINT", str(model.gas_hint.max_transactions), "transactions per block, not enforced"),
                Define("GAS_DEPTH_HINT", str(model.gas_hint.search_depth), "suggested search depth"),
            ]
        out += self._section("defines", [[self.define(d) for d in defines]])
        out += self._section("typedefs", [self.typedef(t) for t in model.typedefs])
        out += self._section("channels", [self.channel(c) for c in model.channels])
        out += self._section("globals", [[render_var(g) + ";" for g in model.globals]])
        out += self._section("mapping helpers", [self.inline(i) for i in model.inlines])
        out += self._section(
            "contracts",
            [self.process(p) for p in model.processes_of_kind("contract", "subcontract")],
        )
        out += self._section("agents", [self.process(p) for p in model.processes_of_kind("agent")])
        out += self.init(model.init_locals, model.init)
        out += [""]
        out += self._never_claims(model.properties)

        text = "\n".join(out) + "\n"
        logger.debug(
            "Emitted %d line(s) for '%s'",
            len(out), model.name,
            extra={"contract": model.name, "stage": "emit"},
        )
        return text

    @staticmethod
    def _section(title: str, blocks: list[list[str]]) -> list[str]:
        blocks = [b for b in blocks if b]
        if not blocks:
            return []
        lines = [f"/* ── {title} ── */"]
        for block in blocks:
            lines += block
            lines.append("")
        return lines

    @staticmethod
    def _never_claims(properties: dict[str, str]) -> list[str]:
        lines = ["/* ── properties ── */"]
        lines += [f"#define prop_{name} ({predicate})" for name, predicate in properties.items()]
        lines.append(NEVER_CLAIM_MARKER)
        return lines


def emit(model: PromelaModel, ledger_size: int | None = None) -> str:
    """Convenience function."""
    return PromelaEmitter().emit(model, ledger_size)

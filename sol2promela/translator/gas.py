"""Gas hint — a static search-depth estimate for the verifier.

Costs are a coarse per-node table, not per-opcode accounting; the hint is
emitted as two macros and never enforced by the model.
"""

from __future__ import annotations

import logging
from typing import Any

from sol2promela.core.ast_analyzer import STATEMENT_NODES, iter_nodes
from sol2promela.ir.contract import ContractIR, FunctionSignature
from sol2promela.promela.model import GasHint

logger = logging.getLogger(__name__)


# ── Constants ────────────────────────────────────────────────────────────────

BASE_TRANSACTION_GAS = 21_000

NODE_GAS: dict[str, int] = {
    "storage_write": 5_000,
    "storage_read": 2_100,
    "external_call": 2_600,
    "event": 375,
    "arithmetic": 3,
    "jump": 8,
}

# Extra steps per transaction: the call send and the result receive
HANDSHAKE_STEPS = 2

_BRANCHING = frozenset({"IfStatement", "ForStatement", "WhileStatement", "DoWhileStatement", "Conditional"})


def _root_name(node: dict[str, Any]) -> str | None:
    """Name at the base of ``a.b[c].d``, or None."""
    while node.get("nodeType") in ("MemberAccess", "IndexAccess"):
        node = node.get("expression") or node.get("baseExpression") or {}
    if node.get("nodeType") == "Identifier":
        return node.get("name")
    return None


def function_cost(contract: ContractIR, func: FunctionSignature) -> int:
    """Static gas estimate of one call to ``func``."""
    state = {v.name for v in contract.state_variables}
    roots: list[Any] = [func.body]
    roots += [contract.modifiers[m.name].body for m in func.modifiers if m.name in contract.modifiers]

    cost = BASE_TRANSACTION_GAS
    for node in iter_nodes(roots):
        nt = node.get("nodeType")
        if nt == "Assignment":
            target = _root_name(node.get("leftHandSide") or {})
            cost += NODE_GAS["storage_write"] if target in state else NODE_GAS["arithmetic"]
        elif nt == "Identifier" and node.get("name") in state:
            cost += NODE_GAS["storage_read"]
        elif nt == "FunctionCall" and _is_external_call(node):
            cost += NODE_GAS["external_call"]
        elif nt == "EmitStatement":
            cost += NODE_GAS["event"]
        elif nt in ("BinaryOperation", "UnaryOperation"):
            cost += NODE_GAS["arithmetic"]
        elif nt in _BRANCHING:
            cost += NODE_GAS["jump"]
    return cost


def _is_external_call(node: dict[str, Any]) -> bool:
    callee = node.get("expression") or {}
    if callee.get("nodeType") != "MemberAccess":
        return False
    type_string = (callee.get("expression") or {}).get("typeDescriptions", {}).get("typeString", "")
    return type_string.startswith("contract ")


def statement_count(func: FunctionSignature) -> int:
    return sum(
        1 for node in iter_nodes(func.body)
        if node.get("nodeType") in STATEMENT_NODES and node.get("nodeType") != "Block"
    )


def estimate_gas_hint(contract: ContractIR, gas_limit: int) -> GasHint | None:
    """Transactions per block and a search depth derived from them."""
    functions = contract.external_functions
    if not functions:
        return None
    cheapest = min(function_cost(contract, f) for f in functions)
    longest = max(statement_count(f) for f in functions)
    max_transactions = gas_limit // cheapest
    hint = GasHint(
        gas_limit=gas_limit,
        cheapest_transaction=cheapest,
        max_transactions=max_transactions,
        search_depth=max_transactions * (longest + HANDSHAKE_STEPS),
    )
    logger.debug(
        "Gas hint for '%s': %d transaction(s), depth %d",
        contract.name, hint.max_transactions, hint.search_depth,
        extra={"contract": contract.name, "stage": "gas"},
    )
    return hint

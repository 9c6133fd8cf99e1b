"""Shared fixtures and solc AST builders for the sol2promela test suite."""

from __future__ import annotations

import itertools
from typing import Any

import pytest

from sol2promela.core.ast_analyzer import normalize_ast
from sol2promela.core.config import TranslationConfig
from sol2promela.translator.collections import TypeRegistry
from sol2promela.translator.generator import ContractArtifacts, generate_contracts
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.scope import TranslationState

Node = dict[str, Any]

_ids = itertools.count(1000)


# ── AST builders ─────────────────────────────────────────────────────────────


def elementary(name: str) -> Node:
    return {"nodeType": "ElementaryTypeName", "name": name}


def mapping(key: Node, value: Node) -> Node:
    return {"nodeType": "Mapping", "keyType": key, "valueType": value}


def array(base: Node, length: int | None = None) -> Node:
    return {
        "nodeType": "ArrayTypeName",
        "baseType": base,
        "length": lit(length) if length is not None else None,
    }


def user_type(definition: Node) -> Node:
    return {
        "nodeType": "UserDefinedTypeName",
        "referencedDeclaration": definition["id"],
        "pathNode": {"nodeType": "IdentifierPath", "name": definition["name"]},
    }


def lit(value: Any, kind: str = "number", type_string: str = "") -> Node:
    if isinstance(value, bool):
        return {"nodeType": "Literal", "kind": "bool", "value": "true" if value else "false"}
    node: Node = {"nodeType": "Literal", "kind": kind, "value": str(value)}
    if type_string:
        node["typeDescriptions"] = {"typeString": type_string}
    return node


def ident(name: str) -> Node:
    return {"nodeType": "Identifier", "name": name}


def member(expression: Node, name: str) -> Node:
    return {"nodeType": "MemberAccess", "expression": expression, "memberName": name}


def index(base: Node, idx: Node) -> Node:
    return {"nodeType": "IndexAccess", "baseExpression": base, "indexExpression": idx}


def binop(left: Node, op: str, right: Node) -> Node:
    return {"nodeType": "BinaryOperation", "operator": op, "leftExpression": left, "rightExpression": right}


def unary(op: str, sub: Node, prefix: bool = False) -> Node:
    return {"nodeType": "UnaryOperation", "operator": op, "subExpression": sub, "prefix": prefix}


def assign(lhs: Node, rhs: Node, op: str = "=") -> Node:
    return {"nodeType": "Assignment", "operator": op, "leftHandSide": lhs, "rightHandSide": rhs}


def call(callee: Node, *args: Node) -> Node:
    return {"nodeType": "FunctionCall", "kind": "functionCall", "expression": callee, "arguments": list(args)}


def new(definition: Node, *args: Node) -> Node:
    return call({"nodeType": "NewExpression", "typeName": user_type(definition)}, *args)


def convert(type_name: str, value: Node) -> Node:
    return {
        "nodeType": "FunctionCall",
        "kind": "typeConversion",
        "id": next(_ids),
        "expression": {"nodeType": "ElementaryTypeNameExpression", "typeName": elementary(type_name)},
        "arguments": [value],
    }


def expr_stmt(expression: Node) -> Node:
    return {"nodeType": "ExpressionStatement", "expression": expression}


def require(condition: Node) -> Node:
    return expr_stmt(call(ident("require"), condition))


def ret(expression: Node | None = None) -> Node:
    return {"nodeType": "Return", "expression": expression}


def block(*statements: Node) -> Node:
    return {"nodeType": "Block", "statements": list(statements)}


def var(name: str, type_name: Node, storage: str = "default") -> Node:
    return {
        "nodeType": "VariableDeclaration",
        "id": next(_ids),
        "name": name,
        "typeName": type_name,
        "storageLocation": storage,
    }


def declare(name: str, type_name: Node, value: Node | None = None) -> Node:
    return {
        "nodeType": "VariableDeclarationStatement",
        "declarations": [var(name, type_name)],
        "initialValue": value,
    }


def state_var(name: str, type_name: Node, value: Node | None = None) -> Node:
    node = var(name, type_name)
    node["stateVariable"] = True
    node["value"] = value
    return node


def for_loop(init: Node, condition: Node, step: Node, body: Node) -> Node:
    return {
        "nodeType": "ForStatement",
        "id": next(_ids),
        "initializationExpression": init,
        "condition": condition,
        "loopExpression": step,
        "body": body,
    }


def while_loop(condition: Node, body: Node) -> Node:
    return {"nodeType": "WhileStatement", "id": next(_ids), "condition": condition, "body": body}


def function(
    name: str,
    params: list[Node] | None = None,
    returns: list[Node] | None = None,
    body: list[Node] | None = None,
    visibility: str = "public",
    mutability: str = "nonpayable",
    kind: str = "function",
    modifiers: list[Node] | None = None,
) -> Node:
    return {
        "nodeType": "FunctionDefinition",
        "id": next(_ids),
        "name": name,
        "kind": kind,
        "visibility": visibility,
        "stateMutability": mutability,
        "parameters": {"nodeType": "ParameterList", "parameters": params or []},
        "returnParameters": {"nodeType": "ParameterList", "parameters": returns or []},
        "modifiers": modifiers or [],
        "body": block(*(body or [])),
        "implemented": True,
    }


def modifier(name: str, body: list[Node], params: list[Node] | None = None) -> Node:
    return {
        "nodeType": "ModifierDefinition",
        "id": next(_ids),
        "name": name,
        "parameters": {"nodeType": "ParameterList", "parameters": params or []},
        "body": block(*body),
    }


def invoke(name: str, *args: Node) -> Node:
    return {
        "nodeType": "ModifierInvocation",
        "modifierName": {"nodeType": "IdentifierPath", "name": name},
        "arguments": list(args),
    }


def placeholder() -> Node:
    return {"nodeType": "PlaceholderStatement"}


def enum_def(name: str, *values: str) -> Node:
    return {
        "nodeType": "EnumDefinition",
        "id": next(_ids),
        "name": name,
        "members": [{"nodeType": "EnumValue", "name": v} for v in values],
    }


def struct_def(name: str, *fields: tuple[str, Node]) -> Node:
    return {
        "nodeType": "StructDefinition",
        "id": next(_ids),
        "name": name,
        "members": [var(fname, ftype) for fname, ftype in fields],
    }


def event_def(name: str, *params: Node) -> Node:
    return {
        "nodeType": "EventDefinition",
        "id": next(_ids),
        "name": name,
        "parameters": {"nodeType": "ParameterList", "parameters": list(params)},
    }


def emit(name: str, *args: Node) -> Node:
    return {"nodeType": "EmitStatement", "eventCall": call(ident(name), *args)}


def contract(name: str, *nodes: Node, bases: list[int] | None = None, kind: str = "contract") -> Node:
    cid = next(_ids)
    return {
        "nodeType": "ContractDefinition",
        "id": cid,
        "name": name,
        "contractKind": kind,
        "abstract": False,
        "linearizedBaseContracts": [cid] + (bases or []),
        "nodes": list(nodes),
    }


def source_unit(*nodes: Node) -> Node:
    return {"nodeType": "SourceUnit", "nodes": list(nodes)}


# ── Pipeline helpers ─────────────────────────────────────────────────────────


def generate(ast: Node, config: TranslationConfig) -> tuple[ContractArtifacts, TranslationState]:
    """Normalize ``ast`` and run the Process/Channel Generator on it."""
    unit, ledger, mapper = normalize_ast(ast, config, AbstractionLedger())
    state = TranslationState(unit=unit, config=config, ledger=ledger, registry=TypeRegistry(), mapper=mapper)
    artifacts, _ = generate_contracts(state)
    return artifacts, state


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def bank_ast() -> Node:
    """``contract Bank { uint8 balance; function add(uint8 x) public { balance += x; } }``"""
    return source_unit(contract(
        "Bank",
        state_var("balance", elementary("uint8")),
        function(
            "add",
            params=[var("x", elementary("uint8"))],
            body=[expr_stmt(assign(ident("balance"), ident("x"), op="+="))],
        ),
    ))


@pytest.fixture
def bank_config() -> TranslationConfig:
    return TranslationConfig(
        agent_count=2,
        per_argument_value_domain={"add": {0: {"values": [0, 1, 2]}}},
    )

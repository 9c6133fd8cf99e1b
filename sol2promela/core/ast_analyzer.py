"""Solidity AST normalizer — solc compact JSON AST to Contract IR.

Walks the Solidity AST (as produced by solc ``--ast-compact-json``) and
builds a ``SourceUnitIR``:
  - Main contract selection and reachable contracts (by type reference
    or ``new``)
  - Inheritance flattened along ``linearizedBaseContracts``
  - State variables, functions, modifiers, events, enums and structs with
    every type resolved through the Type Mapper
  - Function selectors (``functionSelector`` or keccak of the signature)
  - Fixed contract addresses

Only a closed set of node kinds is recognised; anything else is a fatal
``UnsupportedConstructError``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from eth_hash.auto import keccak

from sol2promela.core.config import TranslationConfig
from sol2promela.core.errors import UnsupportedConstructError
from sol2promela.core.types import (
    AbstractionCategory,
    Location,
    StateMutability,
    Visibility,
)
from sol2promela.ir.contract import (
    ContractIR,
    FunctionSignature,
    ModifierDefinition,
    ModifierInvocation,
    Parameter,
    SourceUnitIR,
    StateVariable,
)
from sol2promela.ir.descriptors import Enum, Struct
from sol2promela.translator.ledger import AbstractionLedger
from sol2promela.translator.type_mapper import DefinitionIndex, TypeMapper, abi_type_name

logger = logging.getLogger(__name__)


# ── Recognised node kinds ────────────────────────────────────────────────────

SOURCE_UNIT_NODES = frozenset({
    "PragmaDirective", "ImportDirective", "ContractDefinition",
    "StructDefinition", "EnumDefinition", "ErrorDefinition",
})

CONTRACT_MEMBER_NODES = frozenset({
    "FunctionDefinition", "ModifierDefinition", "VariableDeclaration",
    "StructDefinition", "EnumDefinition", "EventDefinition",
    "ErrorDefinition", "UsingForDirective",
})

STATEMENT_NODES = frozenset({
    "Block", "UncheckedBlock", "ExpressionStatement",
    "VariableDeclarationStatement", "IfStatement", "ForStatement",
    "WhileStatement", "DoWhileStatement", "Return", "EmitStatement",
    "RevertStatement", "Break", "Continue", "PlaceholderStatement",
})

EXPRESSION_NODES = frozenset({
    "Literal", "Identifier", "BinaryOperation", "UnaryOperation",
    "Assignment", "IndexAccess", "MemberAccess", "FunctionCall",
    "Conditional", "TupleExpression", "ElementaryTypeNameExpression",
    "NewExpression",
})

# Structural nodes that appear inside bodies without being statements
_AUXILIARY_NODES = frozenset({
    "VariableDeclaration", "ParameterList", "ElementaryTypeName",
    "UserDefinedTypeName", "Mapping", "ArrayTypeName", "IdentifierPath",
    "ModifierInvocation", "StructuredDocumentation",
})

BODY_NODES = STATEMENT_NODES | EXPRESSION_NODES | _AUXILIARY_NODES


def function_selector(canonical: str) -> int:
    """First four bytes of ``keccak256(canonical signature)``."""
    return int.from_bytes(keccak(canonical.encode("utf-8"))[:4], "big")


def iter_nodes(node: Any) -> Iterator[dict[str, Any]]:
    """Yield every dict carrying a ``nodeType`` below ``node``."""
    if isinstance(node, dict):
        if "nodeType" in node:
            yield node
        for key, value in node.items():
            if key in ("typeDescriptions", "documentation"):
                continue
            yield from iter_nodes(value)
    elif isinstance(node, list):
        for item in node:
            yield from iter_nodes(item)


# ── Normalizer ───────────────────────────────────────────────────────────────


class SolidityASTAnalyzer:
    """Turn a solc ``SourceUnit`` into a ``SourceUnitIR``."""

    def __init__(self, config: TranslationConfig) -> None:
        self.config = config
        self._source = config.source_code
        self._file_path = config.file_path
        self._index = DefinitionIndex()
        self._mapper = TypeMapper(config, self._index, self._source, self._file_path)
        self._contracts_by_id: dict[int, dict[str, Any]] = {}
        self._contract_nodes: list[dict[str, Any]] = []
        # ids of declaration nodes whose ledger entries are already recorded
        self._mapped: set[int] = set()

    @property
    def type_mapper(self) -> TypeMapper:
        return self._mapper

    def _loc(self, node: dict[str, Any]) -> Location:
        return Location.from_src(node.get("src", ""), self._source, self._file_path)

    def analyze(
        self,
        ast: dict[str, Any],
        ledger: AbstractionLedger,
    ) -> tuple[SourceUnitIR, AbstractionLedger]:
        """Normalize a complete Solidity AST."""
        if not ast or ast.get("nodeType") != "SourceUnit":
            raise UnsupportedConstructError(
                ast.get("nodeType", "empty AST") if ast else "empty AST",
                detail="expected a SourceUnit",
            )

        self._index_definitions(ast)

        # File-level structs and enums, in declaration order
        enums: list[Enum] = []
        structs: list[Struct] = []
        for node in ast.get("nodes", []):
            if node.get("nodeType") == "EnumDefinition":
                enums.append(self._mapper.map_enum(node))
        for node in ast.get("nodes", []):
            if node.get("nodeType") == "StructDefinition":
                structs.append(self._mapper.map_struct(node, ledger))

        main_node = self._select_main()
        reachable = self._reachable_contracts(main_node)
        created = self._created_contracts(reachable)

        base = max(self.config.agent_addresses, default=0) + 1
        contracts: list[ContractIR] = []
        for offset, node in enumerate(reachable):
            contracts.append(self._visit_contract(node, base + offset, ledger))

        # Contracts referenced by type but never created are pre-deployed
        for contract in contracts[1:]:
            if contract.name not in created:
                ledger.append(
                    contract.location, AbstractionCategory.INSTANCE,
                    f"contract '{contract.name}' assumed pre-deployed at address {contract.address}",
                )

        unit = SourceUnitIR(
            main=contracts[0],
            contracts=contracts,
            enums=enums,
            structs=structs,
        )
        logger.info(
            "Normalized %d contract(s), main contract '%s'",
            len(contracts), unit.main.name,
            extra={"contract": unit.main.name, "stage": "normalize"},
        )
        return unit, ledger

    # ── Indexing ─────────────────────────────────────────────────────

    def _index_definitions(self, ast: dict[str, Any]) -> None:
        for node in ast.get("nodes", []):
            nt = node.get("nodeType", "")
            if nt not in SOURCE_UNIT_NODES:
                raise UnsupportedConstructError(nt, self._loc(node))
            if nt == "ContractDefinition":
                self._contracts_by_id[node.get("id", -1)] = node
                self._contract_nodes.append(node)
                self._index.add(node)
                for child in node.get("nodes", []):
                    cnt = child.get("nodeType", "")
                    if cnt not in CONTRACT_MEMBER_NODES:
                        raise UnsupportedConstructError(cnt, self._loc(child))
                    if cnt in ("StructDefinition", "EnumDefinition"):
                        self._index.add(child)
            elif nt in ("StructDefinition", "EnumDefinition"):
                self._index.add(node)

    def _select_main(self) -> dict[str, Any]:
        candidates = [c for c in self._contract_nodes if c.get("contractKind", "contract") == "contract"]
        if self.config.main_contract:
            for c in candidates:
                if c.get("name") == self.config.main_contract:
                    return c
            raise UnsupportedConstructError(
                "ContractDefinition", detail=f"main contract '{self.config.main_contract}' not found",
            )
        concrete = [c for c in candidates if not c.get("abstract", False)]
        if not concrete:
            raise UnsupportedConstructError("ContractDefinition", detail="no concrete contract in source unit")
        return concrete[-1]

    def _linearized(self, node: dict[str, Any]) -> list[dict[str, Any]]:
        """Bases most-base first, the contract itself last."""
        ids = node.get("linearizedBaseContracts") or [node.get("id")]
        chain = [self._contracts_by_id[i] for i in ids if i in self._contracts_by_id]
        if node not in chain:
            chain.insert(0, node)
        return list(reversed(chain))

    def _referenced_contracts(self, node: dict[str, Any]) -> list[str]:
        names: list[str] = []
        for base in self._linearized(node):
            for child in base.get("nodes", []):
                for sub in iter_nodes(child):
                    nt = sub.get("nodeType")
                    if nt in ("UserDefinedTypeName", "NewExpression"):
                        type_node = sub.get("typeName", sub) if nt == "NewExpression" else sub
                        definition = self._index.resolve(type_node) if type_node else None
                        if definition and definition.get("nodeType") == "ContractDefinition":
                            names.append(definition.get("name", ""))
        return names

    def _reachable_contracts(self, main: dict[str, Any]) -> list[dict[str, Any]]:
        order = [main]
        seen = {main.get("name")}
        i = 0
        while i < len(order):
            for name in self._referenced_contracts(order[i]):
                target = self._index.by_name.get(name)
                if name in seen or target is None:
                    continue
                if target.get("contractKind", "contract") != "contract" or target.get("abstract"):
                    # Interfaces and libraries get no process; calls through them are rejected later
                    continue
                seen.add(name)
                order.append(target)
            i += 1
        # Keep source order after the main contract
        rest = sorted(order[1:], key=self._contract_nodes.index)
        return [main] + rest

    def _created_contracts(self, contracts: list[dict[str, Any]]) -> set[str]:
        created: set[str] = set()
        for node in contracts:
            for sub in iter_nodes(node.get("nodes", [])):
                if sub.get("nodeType") == "NewExpression":
                    definition = self._index.resolve(sub.get("typeName") or {})
                    if definition:
                        created.add(definition.get("name", ""))
        return created

    # ── Contract visitor ─────────────────────────────────────────────

    def _visit_contract(
        self,
        node: dict[str, Any],
        address: int,
        ledger: AbstractionLedger,
    ) -> ContractIR:
        name = node.get("name", "")
        contract = ContractIR(name=name, address=address, location=self._loc(node))

        constructor_bodies: list[dict[str, Any]] = []
        derived_constructor: dict[str, Any] | None = None

        for base in self._linearized(node):
            owner = base.get("name", "")
            for child in base.get("nodes", []):
                nt = child.get("nodeType", "")
                child_ledger = self._declaration_ledger(child, ledger)

                if nt == "VariableDeclaration":
                    contract.state_variables.append(self._visit_state_variable(owner, child, child_ledger))

                elif nt == "FunctionDefinition":
                    if child.get("kind") == "constructor":
                        if base is node:
                            derived_constructor = child
                        else:
                            constructor_bodies.append(self._base_constructor_body(child))
                        continue
                    if child.get("body") is None and child.get("implemented") is False:
                        continue
                    func = self._visit_function(owner, child, child_ledger)
                    existing = contract.get_function(func.name, len(func.parameters))
                    if existing is not None:
                        contract.functions[contract.functions.index(existing)] = func
                    else:
                        contract.functions.append(func)

                elif nt == "ModifierDefinition":
                    contract.modifiers[child.get("name", "")] = self._visit_modifier(owner, child, child_ledger)

                elif nt == "EventDefinition":
                    event = self._mapper.map_event(child, child_ledger)
                    if contract.get_event(event.name) is None:
                        contract.events.append(event)

                elif nt == "EnumDefinition":
                    contract.enums.append(self._mapper.map_enum(child))

                elif nt == "StructDefinition":
                    contract.structs.append(self._mapper.map_struct(child, child_ledger))

                elif nt == "ErrorDefinition":
                    contract.errors.append(child.get("name", ""))

        if derived_constructor is not None or constructor_bodies:
            contract.functions.insert(0, self._merge_constructors(
                name, derived_constructor, constructor_bodies, ledger,
            ))

        self._check_bodies(contract)
        return contract

    def _declaration_ledger(self, node: dict[str, Any], ledger: AbstractionLedger) -> AbstractionLedger:
        """Ledger for mapping ``node``: the real one the first time, a scratch one after.

        Base contract members are visited once per derived contract that
        reaches them; their approximations belong to the declaring contract.
        """
        if id(node) in self._mapped:
            return AbstractionLedger()
        self._mapped.add(id(node))
        return ledger

    def _visit_state_variable(
        self,
        contract: str,
        node: dict[str, Any],
        ledger: AbstractionLedger,
    ) -> StateVariable:
        var_name = node.get("name", "")
        loc = self._loc(node)
        desc = self._mapper.map_type(
            node.get("typeName"), ledger, declaration=f"{contract}.{var_name}", location=loc,
        )
        return StateVariable(
            name=var_name,
            type=desc,
            initial_value=node.get("value"),
            constant=bool(node.get("constant")) or node.get("mutability") == "constant",
            location=loc,
        )

    def _visit_parameters(
        self,
        scope: str,
        params_node: dict[str, Any] | None,
        ledger: AbstractionLedger,
        prefix: str = "",
    ) -> list[Parameter]:
        params: list[Parameter] = []
        for i, p in enumerate((params_node or {}).get("parameters", [])):
            pname = p.get("name") or f"{prefix}{i}"
            params.append(Parameter(
                name=pname,
                type=self._mapper.map_type(
                    p.get("typeName"), ledger,
                    declaration=f"{scope}.{pname}",
                    location=self._loc(p),
                ),
                abi_type=abi_type_name(p.get("typeName"), self._index),
                storage_location=p.get("storageLocation", "default"),
            ))
        return params

    def _visit_function(
        self,
        contract: str,
        node: dict[str, Any],
        ledger: AbstractionLedger,
    ) -> FunctionSignature:
        kind = node.get("kind", "function")
        name = node.get("name", "") or kind
        scope = f"{contract}.{name}"

        func = FunctionSignature(
            name=name,
            parameters=self._visit_parameters(scope, node.get("parameters"), ledger),
            returns=self._visit_parameters(scope, node.get("returnParameters"), ledger, prefix="ret"),
            visibility=Visibility(node.get("visibility", "public")),
            state_mutability=StateMutability(node.get("stateMutability", "nonpayable")),
            kind=kind,
            body=node.get("body"),
            location=self._loc(node),
        )

        for mod in node.get("modifiers", []):
            if mod.get("kind") == "baseConstructorSpecifier":
                continue
            mod_name = mod.get("modifierName", {}).get("name", "")
            func.modifiers.append(ModifierInvocation(
                name=mod_name, arguments=list(mod.get("arguments") or []),
            ))

        if func.externally_visible:
            selector = node.get("functionSelector")
            func.selector = int(selector, 16) if selector else function_selector(func.canonical)
        return func

    def _visit_modifier(
        self,
        contract: str,
        node: dict[str, Any],
        ledger: AbstractionLedger,
    ) -> ModifierDefinition:
        name = node.get("name", "")
        return ModifierDefinition(
            name=name,
            parameters=self._visit_parameters(f"{contract}.{name}", node.get("parameters"), ledger),
            body=node.get("body"),
            location=self._loc(node),
        )

    # ── Constructors ─────────────────────────────────────────────────

    def _base_constructor_body(self, node: dict[str, Any]) -> dict[str, Any]:
        if node.get("parameters", {}).get("parameters") or node.get("modifiers"):
            raise UnsupportedConstructError(
                "base constructor with arguments", self._loc(node),
            )
        return node.get("body") or {"nodeType": "Block", "statements": []}

    def _merge_constructors(
        self,
        contract: str,
        derived: dict[str, Any] | None,
        base_bodies: list[dict[str, Any]],
        ledger: AbstractionLedger,
    ) -> FunctionSignature:
        if derived is None:
            ctor = FunctionSignature(name="constructor", kind="constructor")
            own_body: list[dict[str, Any]] = []
        else:
            ctor = self._visit_function(contract, derived, ledger)
            own_body = [derived["body"]] if derived.get("body") else []
        ctor.body = {
            "nodeType": "Block",
            "src": derived.get("src", "") if derived else "",
            "statements": base_bodies + own_body,
        }
        return ctor

    # ── Closed-set check ─────────────────────────────────────────────

    def _check_bodies(self, contract: ContractIR) -> None:
        roots: list[Any] = [f.body for f in contract.functions]
        roots += [m.body for m in contract.modifiers.values()]
        roots += [v.initial_value for v in contract.state_variables]
        for node in iter_nodes(roots):
            if node.get("nodeType") not in BODY_NODES:
                raise UnsupportedConstructError(node.get("nodeType", ""), self._loc(node))


def normalize_ast(
    ast: dict[str, Any],
    config: TranslationConfig,
    ledger: AbstractionLedger,
) -> tuple[SourceUnitIR, AbstractionLedger, TypeMapper]:
    """Convenience function: normalize and hand back the mapper used."""
    analyzer = SolidityASTAnalyzer(config)
    unit, ledger = analyzer.analyze(ast, ledger)
    return unit, ledger, analyzer.type_mapper

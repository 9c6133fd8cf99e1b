"""Type Mapper — Solidity type names to PROMELA type descriptors.

Handles:
  - Fixed-width integers, with width fallback recorded in the ledger
  - Dynamic arrays, mappings and strings, with bound resolution
    (per-declaration bound, then global default, else fatal)
  - Enums (ordered symbolic constants) and structs (typedef records)
  - Addresses and contract-typed references (opaque ids)

Mapping is deterministic: the same type node under the same configuration
always yields an equal descriptor.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from sol2promela.core.config import SUPPORTED_INT_WIDTHS, TranslationConfig
from sol2promela.core.errors import UnresolvedBoundError, UnsupportedConstructError
from sol2promela.core.types import AbstractionCategory, Location
from sol2promela.ir.descriptors import (
    Address,
    Bool,
    DynamicArray,
    Enum,
    Event,
    FixedInt,
    FixedString,
    Mapping,
    StaticArray,
    Struct,
    TypeDescriptor,
)
from sol2promela.translator.ledger import AbstractionLedger

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"^(u?)int(\d*)$")
_BYTES_RE = re.compile(r"^bytes(\d+)$")


@dataclass
class DefinitionIndex:
    """Lookup of user-defined types (structs, enums, contracts) by AST id and name."""
    by_id: dict[int, dict[str, Any]] = field(default_factory=dict)
    by_name: dict[str, dict[str, Any]] = field(default_factory=dict)

    def add(self, node: dict[str, Any]) -> None:
        if "id" in node:
            self.by_id[node["id"]] = node
        if node.get("name"):
            self.by_name.setdefault(node["name"], node)

    def resolve(self, type_node: dict[str, Any]) -> dict[str, Any] | None:
        ref = type_node.get("referencedDeclaration")
        if ref is not None and ref in self.by_id:
            return self.by_id[ref]
        name = _user_type_name(type_node)
        return self.by_name.get(name.split(".")[-1]) if name else None


def _user_type_name(type_node: dict[str, Any]) -> str:
    path = type_node.get("pathNode")
    if isinstance(path, dict):
        return path.get("name", "")
    return type_node.get("name", "") or ""


def _int_width(bits: int, fallback: int) -> int:
    """Nearest supported width: widen within 64 bits, else the configured fallback."""
    if bits > max(SUPPORTED_INT_WIDTHS):
        return fallback
    return next(w for w in SUPPORTED_INT_WIDTHS if w >= bits)


class TypeMapper:
    """Map solc ``typeName`` nodes onto ``TypeDescriptor``s.

    Parameters
    ----------
    config:
        Translation configuration supplying widths and bounds.
    definitions:
        Index of struct/enum/contract definitions in the source unit.
    source_code:
        Optional source text, used to resolve line numbers.
    """

    def __init__(
        self,
        config: TranslationConfig,
        definitions: DefinitionIndex | None = None,
        source_code: str = "",
        file_path: str = "",
    ) -> None:
        self.config = config
        self.definitions = definitions or DefinitionIndex()
        self._source = source_code
        self._file_path = file_path
        self._structs: dict[int | str, Struct] = {}
        self._enums: dict[int | str, Enum] = {}
        self._in_progress: set[int | str] = set()

    def location(self, node: dict[str, Any]) -> Location:
        return Location.from_src(node.get("src", ""), self._source, self._file_path)

    # ── Public API ───────────────────────────────────────────────────

    def map_type(
        self,
        type_node: dict[str, Any] | None,
        ledger: AbstractionLedger,
        declaration: str,
        location: Location | None = None,
    ) -> TypeDescriptor:
        """Map one declaration's type, appending any abstraction to ``ledger``."""
        if not type_node:
            raise UnsupportedConstructError("missing type", location, detail=declaration)
        loc = location or self.location(type_node)
        return self._map(type_node, ledger, declaration, loc, top_level=True)

    def map_struct(self, node: dict[str, Any], ledger: AbstractionLedger) -> Struct:
        """Map a ``StructDefinition``; each field is its own declaration."""
        key = node.get("id", node.get("name", ""))
        if key in self._structs:
            return self._structs[key]
        if key in self._in_progress:
            raise UnsupportedConstructError(
                "recursive struct", self.location(node), detail=node.get("name", ""),
            )
        self._in_progress.add(key)
        try:
            fields: list[tuple[str, TypeDescriptor]] = []
            for member in node.get("members", []):
                fname = member.get("name", "")
                desc = self.map_type(
                    member.get("typeName"), ledger,
                    declaration=f"{node.get('name', '')}.{fname}",
                    location=self.location(member),
                )
                if isinstance(desc, Mapping):
                    raise UnsupportedConstructError(
                        "mapping inside struct", self.location(member),
                        detail=f"{node.get('name', '')}.{fname}",
                    )
                fields.append((fname, desc))
        finally:
            self._in_progress.discard(key)
        struct = Struct(name=node.get("name", ""), fields=tuple(fields))
        self._structs[key] = struct
        return struct

    def map_enum(self, node: dict[str, Any]) -> Enum:
        key = node.get("id", node.get("name", ""))
        if key not in self._enums:
            self._enums[key] = Enum(
                name=node.get("name", ""),
                values=tuple(m.get("name", "") for m in node.get("members", [])),
            )
        return self._enums[key]

    def map_event(self, node: dict[str, Any], ledger: AbstractionLedger) -> Event:
        name = node.get("name", "")
        fields: list[tuple[str, TypeDescriptor]] = []
        for i, p in enumerate(node.get("parameters", {}).get("parameters", [])):
            pname = p.get("name") or f"arg{i}"
            fields.append((pname, self.map_type(
                p.get("typeName"), ledger,
                declaration=f"{name}.{pname}",
                location=self.location(p),
            )))
        return Event(name=name, fields=tuple(fields))

    # ── Dispatch ─────────────────────────────────────────────────────

    def _map(
        self,
        node: dict[str, Any],
        ledger: AbstractionLedger,
        declaration: str,
        loc: Location,
        top_level: bool,
    ) -> TypeDescriptor:
        nt = node.get("nodeType", "")

        if nt == "ElementaryTypeName":
            return self._map_elementary(node, ledger, declaration, loc, top_level)

        if nt == "UserDefinedTypeName":
            return self._map_user_defined(node, ledger, loc)

        if nt == "Mapping":
            key = self._map(node.get("keyType", {}), ledger, declaration, loc, top_level=False)
            if not key.scalar:
                raise UnsupportedConstructError("non-scalar mapping key", loc, detail=declaration)
            value = self._map(node.get("valueType", {}), ledger, declaration, loc, top_level=False)
            bound = (
                self.config.mapping_bound(declaration) if top_level
                else self.config.default_mapping_max_entries
            )
            if bound is None:
                raise UnresolvedBoundError(declaration, "mapping", loc)
            return Mapping(key=key, value=value, max_entries=bound)

        if nt == "ArrayTypeName":
            element = self._map(node.get("baseType", {}), ledger, declaration, loc, top_level=False)
            if isinstance(element, Mapping):
                raise UnsupportedConstructError("array of mappings", loc, detail=declaration)
            length = node.get("length")
            if length:
                return StaticArray(element=element, length=self._static_length(length, loc))
            bound = (
                self.config.array_bound(declaration) if top_level
                else self.config.default_array_max_len
            )
            if bound is None:
                raise UnresolvedBoundError(declaration, "dynamic array", loc)
            return DynamicArray(element=element, max_len=bound)

        raise UnsupportedConstructError(nt or "unknown type", loc, detail=declaration)

    def _map_elementary(
        self,
        node: dict[str, Any],
        ledger: AbstractionLedger,
        declaration: str,
        loc: Location,
        top_level: bool,
    ) -> TypeDescriptor:
        name = node.get("name", "")

        if name == "bool":
            return Bool()
        if name in ("address", "address payable"):
            return Address()

        m = _INT_RE.match(name)
        if m:
            signed = m.group(1) != "u"
            bits = int(m.group(2) or 256)
            if bits in SUPPORTED_INT_WIDTHS:
                return FixedInt(bits=bits, signed=signed)
            width = _int_width(bits, self.config.int_width_fallback)
            ledger.append(
                loc, AbstractionCategory.TYPE_WIDTH,
                f"'{declaration}': {name} mapped to {'' if signed else 'u'}int{width}",
            )
            return FixedInt(bits=width, signed=signed)

        if name in ("string", "bytes"):
            bound = (
                self.config.string_bound(declaration) if top_level
                else self.config.default_string_max_bytes
            )
            if bound is None:
                raise UnresolvedBoundError(declaration, name, loc)
            ledger.append(
                loc, AbstractionCategory.STRING,
                f"'{declaration}': {name} contents interned as symbol ids (max {bound} bytes)",
            )
            return FixedString(max_bytes=bound)

        m = _BYTES_RE.match(name)
        if m or name == "byte":
            size = int(m.group(1)) if m else 1
            ledger.append(
                loc, AbstractionCategory.STRING,
                f"'{declaration}': {name} contents interned as symbol ids",
            )
            return FixedString(max_bytes=size)

        raise UnsupportedConstructError(name or "ElementaryTypeName", loc, detail=declaration)

    def _map_user_defined(
        self,
        node: dict[str, Any],
        ledger: AbstractionLedger,
        loc: Location,
    ) -> TypeDescriptor:
        definition = self.definitions.resolve(node)
        name = _user_type_name(node)
        if definition is None:
            raise UnsupportedConstructError("UserDefinedTypeName", loc, detail=f"unknown type '{name}'")

        kind = definition.get("nodeType", "")
        if kind == "StructDefinition":
            return self.map_struct(definition, ledger)
        if kind == "EnumDefinition":
            return self.map_enum(definition)
        if kind == "ContractDefinition":
            return Address(contract=definition.get("name", name))
        raise UnsupportedConstructError(kind or "UserDefinedTypeName", loc, detail=name)

    def _static_length(self, node: dict[str, Any], loc: Location) -> int:
        if node.get("nodeType") == "Literal" and node.get("kind") == "number":
            return int(str(node.get("value", "0")).replace("_", ""), 0)
        raise UnsupportedConstructError("non-literal array length", loc)


# ── ABI names ────────────────────────────────────────────────────────────────


def abi_type_name(type_node: dict[str, Any] | None, definitions: DefinitionIndex) -> str:
    """Canonical ABI type of a parameter, as used in function selectors."""
    if not type_node:
        return ""
    nt = type_node.get("nodeType", "")

    if nt == "ElementaryTypeName":
        name = type_node.get("name", "")
        if name == "address payable":
            return "address"
        m = _INT_RE.match(name)
        if m:
            return f"{m.group(1)}int{m.group(2) or 256}"
        if name == "byte":
            return "bytes1"
        return name

    if nt == "UserDefinedTypeName":
        definition = definitions.resolve(type_node) or {}
        kind = definition.get("nodeType", "")
        if kind == "EnumDefinition":
            return "uint8"
        if kind == "ContractDefinition":
            return "address"
        if kind == "StructDefinition":
            members = [abi_type_name(m.get("typeName"), definitions) for m in definition.get("members", [])]
            return f"({','.join(members)})"
        return _user_type_name(type_node)

    if nt == "ArrayTypeName":
        base = abi_type_name(type_node.get("baseType"), definitions)
        length = type_node.get("length")
        size = length.get("value", "") if isinstance(length, dict) else ""
        return f"{base}[{size}]"

    return type_node.get("typeDescriptions", {}).get("typeString", "")

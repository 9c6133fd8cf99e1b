"""TypeDescriptor — the closed set of PROMELA-side types.

Every descriptor is a frozen dataclass, so two descriptors produced from
the same Solidity type under the same bounds compare (and hash) equal.
Collections always carry a resolved finite bound; there is no way to
build one without it.
"""

from __future__ import annotations

from dataclasses import dataclass


class TypeDescriptor:
    """Base of all descriptors."""

    #: True for types stored as a single PROMELA scalar
    scalar: bool = True

    @property
    def promela_type(self) -> str:
        raise NotImplementedError

    @property
    def tag(self) -> str:
        """Short identifier used when naming typedefs built from this type."""
        return self.promela_type

    def zero_value(self) -> str:
        return "0"

    def children(self) -> tuple["TypeDescriptor", ...]:
        return ()


@dataclass(frozen=True)
class FixedInt(TypeDescriptor):
    bits: int
    signed: bool = False

    @property
    def promela_type(self) -> str:
        if self.bits == 8:
            return "short" if self.signed else "byte"
        if self.bits == 16:
            return "short" if self.signed else "int"
        return "int"

    @property
    def tag(self) -> str:
        return f"{'i' if self.signed else 'u'}{self.bits}"

    @property
    def min_value(self) -> int:
        return -(1 << (self.bits - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        return (1 << (self.bits - 1)) - 1 if self.signed else (1 << self.bits) - 1

    @property
    def host_checkable(self) -> bool:
        """Whether the full range fits PROMELA's signed 32-bit ``int``."""
        return self.bits <= 16 or (self.bits == 32 and self.signed)


@dataclass(frozen=True)
class Bool(TypeDescriptor):
    @property
    def promela_type(self) -> str:
        return "bool"

    def zero_value(self) -> str:
        return "false"


@dataclass(frozen=True)
class Address(TypeDescriptor):
    """Opaque fixed-width address id. ``contract`` names the target type, if known."""

    contract: str | None = None

    @property
    def promela_type(self) -> str:
        return "byte"

    @property
    def tag(self) -> str:
        return "addr"


@dataclass(frozen=True)
class FixedString(TypeDescriptor):
    """String/bytes content, represented by an interned symbol id."""

    max_bytes: int

    @property
    def promela_type(self) -> str:
        return "int"

    @property
    def tag(self) -> str:
        return f"str{self.max_bytes}"


@dataclass(frozen=True)
class Enum(TypeDescriptor):
    name: str
    values: tuple[str, ...] = ()

    @property
    def promela_type(self) -> str:
        return "byte"

    @property
    def tag(self) -> str:
        return f"E{self.name}"

    def constant(self, value: str) -> str:
        return f"{self.name}_{value}"

    def zero_value(self) -> str:
        return self.constant(self.values[0]) if self.values else "0"


@dataclass(frozen=True)
class DynamicArray(TypeDescriptor):
    element: TypeDescriptor
    max_len: int
    scalar = False

    @property
    def promela_type(self) -> str:
        return f"Arr_{self.element.tag}_{self.max_len}"

    def children(self) -> tuple[TypeDescriptor, ...]:
        return (self.element,)


@dataclass(frozen=True)
class StaticArray(TypeDescriptor):
    element: TypeDescriptor
    length: int
    scalar = False

    @property
    def promela_type(self) -> str:
        return f"SArr_{self.element.tag}_{self.length}"

    def children(self) -> tuple[TypeDescriptor, ...]:
        return (self.element,)


@dataclass(frozen=True)
class Mapping(TypeDescriptor):
    key: TypeDescriptor
    value: TypeDescriptor
    max_entries: int
    scalar = False

    @property
    def promela_type(self) -> str:
        return f"Map_{self.key.tag}_{self.value.tag}_{self.max_entries}"

    def children(self) -> tuple[TypeDescriptor, ...]:
        return (self.key, self.value)


@dataclass(frozen=True)
class Struct(TypeDescriptor):
    name: str
    fields: tuple[tuple[str, TypeDescriptor], ...] = ()
    scalar = False

    @property
    def promela_type(self) -> str:
        return f"S_{self.name}"

    def field_type(self, name: str) -> TypeDescriptor | None:
        return next((t for n, t in self.fields if n == name), None)

    def children(self) -> tuple[TypeDescriptor, ...]:
        return tuple(t for _, t in self.fields)


@dataclass(frozen=True)
class Event(TypeDescriptor):
    name: str
    fields: tuple[tuple[str, TypeDescriptor], ...] = ()
    scalar = False

    @property
    def promela_type(self) -> str:
        return f"Ev_{self.name}"

    def children(self) -> tuple[TypeDescriptor, ...]:
        return tuple(t for _, t in self.fields if t.scalar)


def is_typedef(desc: TypeDescriptor) -> bool:
    """Descriptors rendered as a PROMELA ``typedef``."""
    return isinstance(desc, (DynamicArray, StaticArray, Mapping, Struct, Event))

"""Typedef registry and bounded-collection helpers.

Every non-scalar descriptor becomes one PROMELA ``typedef``. Registration
is dependency-first and otherwise first-come, so the typedef section
follows source declaration order.

Mapping layout::

    typedef Map_addr_u8_3 {
        byte keys[3];
        byte vals[4];   /* slot 3 stays zero: the absent-key sentinel */
        byte size
    }

``find`` leaves ``idx`` at the key's slot, or at ``size`` when the key is
absent. Slots at or past ``size`` are never written, so ``vals[idx]`` of
an absent key always reads the zero value. ``slot`` inserts on demand and
reports ``ok = false`` when the mapping is full.
"""

from __future__ import annotations

from sol2promela.ir.descriptors import (
    DynamicArray,
    Event,
    Mapping,
    StaticArray,
    Struct,
    TypeDescriptor,
    is_typedef,
)
from sol2promela.promela.model import (
    Assign,
    Break,
    Do,
    If,
    InlineCall,
    InlineDecl,
    Raw,
    TypedefDecl,
    VarDecl,
)


def length_type(bound: int) -> str:
    return "byte" if bound < 256 else "int"


class TypeRegistry:
    """Collects typedefs and mapping inlines in declaration order."""

    def __init__(self) -> None:
        self._typedefs: dict[str, TypedefDecl] = {}
        self._inlines: dict[str, InlineDecl] = {}

    @property
    def typedefs(self) -> list[TypedefDecl]:
        return list(self._typedefs.values())

    @property
    def inlines(self) -> list[InlineDecl]:
        return list(self._inlines.values())

    def register(self, desc: TypeDescriptor) -> str:
        """Register ``desc`` (and what it is built from); return its PROMELA type name."""
        for child in desc.children():
            self.register(child)
        name = desc.promela_type
        if not is_typedef(desc) or name in self._typedefs:
            return name

        if isinstance(desc, DynamicArray):
            fields = [
                VarDecl("elems", desc.element.promela_type, array_len=desc.max_len),
                VarDecl("len", length_type(desc.max_len)),
            ]
        elif isinstance(desc, StaticArray):
            fields = [VarDecl("elems", desc.element.promela_type, array_len=desc.length)]
        elif isinstance(desc, Mapping):
            fields = [
                VarDecl("keys", desc.key.promela_type, array_len=desc.max_entries),
                VarDecl("vals", desc.value.promela_type, array_len=desc.max_entries + 1),
                VarDecl("size", length_type(desc.max_entries)),
            ]
            self._register_mapping_inlines(desc)
        elif isinstance(desc, Struct):
            fields = [self._field(n, t) for n, t in desc.fields]
        elif isinstance(desc, Event):
            fields = [VarDecl("count", "int")]
            fields += [self._field(n, t) for n, t in desc.fields if t.scalar]
        else:  # pragma: no cover - is_typedef covers the closed set
            raise TypeError(f"no typedef layout for {desc!r}")

        self._typedefs[name] = TypedefDecl(name=name, fields=fields)
        return name

    @staticmethod
    def _field(name: str, desc: TypeDescriptor) -> VarDecl:
        return VarDecl(name, desc.promela_type)

    # ── Mapping helpers ──────────────────────────────────────────────

    @staticmethod
    def find_inline(desc: Mapping) -> str:
        return f"{desc.promela_type}_find"

    @staticmethod
    def slot_inline(desc: Mapping) -> str:
        return f"{desc.promela_type}_slot"

    def _register_mapping_inlines(self, desc: Mapping) -> None:
        find = self.find_inline(desc)
        slot = self.slot_inline(desc)
        self._inlines[find] = InlineDecl(
            name=find,
            params=["_m", "_k", "_i"],
            body=[
                Assign("_i", "0"),
                Do(options=[
                    [Raw("_i < _m.size && _m.keys[_i] != _k"), Raw("_i++")],
                    [Raw("else"), Break()],
                ]),
            ],
        )
        self._inlines[slot] = InlineDecl(
            name=slot,
            params=["_m", "_k", "_i", "_ok"],
            body=[
                InlineCall(find, ["_m", "_k", "_i"]),
                If(options=[
                    [Raw("_i < _m.size"), Assign("_ok", "true")],
                    [
                        Raw(f"_i == _m.size && _m.size < {desc.max_entries}"),
                        Assign("_m.keys[_i]", "_k"),
                        Raw("_m.size++"),
                        Assign("_ok", "true"),
                    ],
                    [Raw("else"), Assign("_ok", "false")],
                ]),
            ],
        )

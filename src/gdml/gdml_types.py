"""
The GDML type model.

A `Type` wraps exactly one variant from a closed set: a `Primitive`
(unknown, void, bool, int, float, string), `FunType`, `StructType`,
`NodeType`, `EnumType`, `RefType` or `AliasType`. Compatibility is
structural: aliases are transparent, anonymous aggregates compare by shape,
named aggregates by name, and distinct primitives never convert into each
other.

Every Type also remembers the AST node that declared it through a weak
reference, so diagnostics and exports can point back at the declaration
without keeping the tree alive.

Values (`PrimitiveValue`, `StructValue`, `NodeValue`, `RefValue`) are the
constant-evaluated counterparts used for member defaults.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from gdml.gdml_constants import MAX_ALIAS_DEPTH
from gdml.gdml_diagnostics import CyclicAlias, Range
from gdml.gdml_paths import FullIdentPath


class Primitive(Enum):
    UNK = "unknown"
    VOID = "void"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STR = "string"


@dataclass
class ParamType:
    name: str
    # May be unknown until the function body is checked.
    type: Type


@dataclass
class FunType:
    name: FullIdentPath | None
    params: list[ParamType]
    ret_type: Type | None = None
    is_extern: bool = False


@dataclass
class PropType:
    """A struct member or node prop.

    Attributes:
        type (Type): The member's type.
        dependencies (list[str]): Members that must be assigned before this one.
        required (bool): Whether literals must supply the member.
        default (Value | None): Constant default, when it could be evaluated.
    """

    type: Type
    dependencies: list[str] = field(default_factory=list)
    required: bool = True
    default: Value | None = field(default=None, compare=False)


@dataclass
class StructType:
    name: FullIdentPath | None
    members: dict[str, PropType]
    is_extern: bool = False


@dataclass
class NodeType:
    name: FullIdentPath
    props: dict[str, PropType]


@dataclass
class EnumType:
    name: FullIdentPath | None
    variants: dict[str, Type]
    is_extern: bool = False


@dataclass
class RefType:
    type: Type


@dataclass
class AliasType:
    alias: FullIdentPath
    # Not compared: two aliases are equal when they carry the same name.
    type: Type = field(compare=False)


TypeKind = Union[Primitive, FunType, StructType, NodeType, EnumType, RefType, AliasType]


class Type:
    """A GDML type.

    Args:
        kind (TypeKind): The variant.
        decl (object, optional): The declaring AST node; held weakly.
    """

    def __init__(self, kind: TypeKind, decl: Any = None) -> None:
        self.kind = kind
        self._decl = weakref.ref(decl) if decl is not None else None

    @classmethod
    def of(cls, primitive: Primitive) -> Type:
        return cls(primitive)

    @classmethod
    def unknown(cls) -> Type:
        return cls(Primitive.UNK)

    @property
    def decl(self) -> Any:
        """The declaring node, or None when it was never set or has been collected."""
        return self._decl() if self._decl is not None else None

    @property
    def decl_range(self) -> Range:
        node = self.decl
        return node.range if node is not None else Range()

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, Type) and self.kind == other.kind

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Type({self})"

    def is_unknown(self) -> bool:
        return self.kind is Primitive.UNK

    def is_primitive(self, primitive: Primitive | None = None) -> bool:
        if primitive is None:
            return isinstance(self.kind, Primitive)
        return self.kind is primitive

    def realize(self) -> Type:
        """
        Follows alias chains down to the underlying type.

        Raises:
            CyclicAlias: If the chain loops or exceeds MAX_ALIAS_DEPTH.
        """
        current = self
        seen: set[int] = set()
        while isinstance(current.kind, AliasType):
            if id(current) in seen or len(seen) >= MAX_ALIAS_DEPTH:
                raise CyclicAlias(
                    f"Type alias `{self}` never resolves to a concrete type",
                    self.decl_range,
                    hint="Break the cycle by pointing one alias at a concrete type",
                )
            seen.add(id(current))
            current = current.kind.type
        return current

    def convertible(self, other: Type) -> bool:
        """Whether a value of this type may be used where `other` is expected."""
        a = self.realize()
        b = other.realize()
        if a.is_unknown() or b.is_unknown():
            return True

        ka, kb = a.kind, b.kind
        if isinstance(ka, Primitive) or isinstance(kb, Primitive):
            return ka is kb

        if isinstance(ka, RefType) and isinstance(kb, RefType):
            return ka.type.convertible(kb.type)

        if isinstance(ka, FunType) and isinstance(kb, FunType):
            if len(ka.params) != len(kb.params):
                return False
            if not all(p.type.convertible(q.type) for p, q in zip(ka.params, kb.params)):
                return False
            if ka.ret_type is None or kb.ret_type is None:
                return ka.ret_type is None and kb.ret_type is None
            return ka.ret_type.convertible(kb.ret_type)

        if type(ka) is not type(kb):
            return False

        name_a, name_b = a.get_name(), b.get_name()
        if name_a is not None and name_b is not None:
            return name_a == name_b

        if isinstance(ka, EnumType) and isinstance(kb, EnumType):
            return ka.variants.keys() == kb.variants.keys() and all(
                ka.variants[v].convertible(kb.variants[v]) for v in ka.variants
            )

        members_a, members_b = a.get_members(), b.get_members()
        return members_a.keys() == members_b.keys() and all(
            members_a[m].type.convertible(members_b[m].type) for m in members_a
        )

    def get_members(self) -> dict[str, PropType]:
        """Members of a struct or props of a node; empty for everything else."""
        kind = self.realize().kind
        if isinstance(kind, StructType):
            return kind.members
        if isinstance(kind, NodeType):
            return kind.props
        return {}

    def get_member_type(self, name: str) -> Type | None:
        """Type of an aggregate member, looking through one reference. None if absent."""
        target = self.realize()
        if isinstance(target.kind, RefType):
            target = target.kind.type.realize()
        member = target.get_members().get(name)
        return member.type if member is not None else None

    def get_required_members(self) -> set[str]:
        return {name for name, prop in self.get_members().items() if prop.required}

    def is_aggregate(self) -> bool:
        return isinstance(self.realize().kind, (StructType, NodeType))

    def get_name(self) -> FullIdentPath | None:
        kind = self.kind
        if isinstance(kind, (FunType, StructType, NodeType, EnumType)):
            return kind.name
        if isinstance(kind, AliasType):
            return kind.alias
        if isinstance(kind, Primitive) and kind is not Primitive.UNK:
            return FullIdentPath([kind.value])
        return None

    def is_exportable(self) -> bool:
        return self.get_name() is not None and not self.is_primitive()

    def __str__(self) -> str:
        kind = self.kind
        if isinstance(kind, Primitive):
            return kind.value
        if isinstance(kind, RefType):
            return f"&{kind.type}"
        if isinstance(kind, AliasType):
            return str(kind.alias)
        if isinstance(kind, FunType):
            params = ", ".join(f"{p.name}: {p.type}" for p in kind.params)
            ret = kind.ret_type if kind.ret_type is not None else "void"
            return f"fun({params}) -> {ret}"
        name = self.get_name()
        if name is not None:
            return str(name)
        if isinstance(kind, EnumType):
            variants = ", ".join(
                v if t.is_primitive(Primitive.VOID) else f"{v}({t})"
                for v, t in kind.variants.items()
            )
            return f"enum {{ {variants} }}"
        members = ", ".join(f"{m}: {p.type}" for m, p in self.get_members().items())
        return f"struct {{ {members} }}"


@dataclass
class PrimitiveValue:
    primitive: Primitive
    value: bool | int | float | str | None = None

    def get_type(self) -> Type:
        return Type.of(self.primitive)


@dataclass
class PropValue:
    value: Value


@dataclass
class StructValue:
    type: StructType
    members: dict[str, PropValue]

    def get_type(self) -> Type:
        return Type(self.type)


@dataclass
class NodeValue:
    type: NodeType
    props: dict[str, PropValue]

    def get_type(self) -> Type:
        return Type(self.type)


@dataclass
class RefValue:
    type: RefType
    value: Value

    def get_type(self) -> Type:
        return Type(self.type)


Value = Union[PrimitiveValue, StructValue, NodeValue, RefValue]

"""
Defines the abstract syntax tree (AST) node hierarchy for the GDML language.

Every node records the source `range` it was parsed from and, once the
typechecker has visited it, the `eval_type` it was given. Nodes are plain
data: parsing lives in `gdml_parser`, typechecking in `gdml_typecheck`, which
dispatches on the `kind` string each class declares.

Node kinds:
    Expressions:  lit, ident, binop, unop, member, call, list, node, prop
    Types:        type_ident, ref_type
    Declarations: member_decl, struct_decl, node_decl, variant_decl, enum_decl,
                  alias_decl, let, param, fun_decl
    Statements:   return, block, namespace
    Root:         ast

Helpers shared by all nodes:
    debug(indent): deterministic structural dump used in logs and golden tests.
    to_dict(): nested dictionaries, suitable for JSON output.
    walk(): pre-order iteration over the node and its descendants.
    height(): depth of the subtree, used to reject trees too deep to process.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, fields
from typing import Any, Union

from gdml.gdml_constants import OPERATOR_SYMBOLS
from gdml.gdml_diagnostics import Range
from gdml.gdml_paths import FullIdentPath, IdentPath
from gdml.gdml_types import Primitive, Type

INDENT = "    "


@dataclass(eq=False)
class ASTNode:
    """
    Base class for every GDML syntax tree node.

    Attributes:
        range (Range): Source span of the node.
        eval_type (Type | None): Set by the typechecker.
    """

    kind = "expr"

    range: Range = field(default_factory=Range, kw_only=True)
    eval_type: Type | None = field(default=None, init=False, repr=False)

    def _data_fields(self) -> list[tuple[str, Any]]:
        skip = {"range", "eval_type"}
        return [(f.name, getattr(self, f.name)) for f in fields(self) if f.name not in skip]

    def children(self) -> Iterator[ASTNode]:
        for _, value in self._data_fields():
            if isinstance(value, ASTNode):
                yield value
            elif isinstance(value, list):
                yield from (v for v in value if isinstance(v, ASTNode))

    def walk(self) -> Iterator[ASTNode]:
        yield self
        for child in self.children():
            yield from child.walk()

    def height(self) -> int:
        """Nodes on the longest path down from this one, counted iteratively."""
        deepest = 0
        pending = [(self, 1)]
        while pending:
            node, depth = pending.pop()
            deepest = max(deepest, depth)
            pending.extend((child, depth + 1) for child in node.children())
        return deepest

    def __eq__(self, other: Any) -> bool:
        if type(self) is not type(other):
            return False
        return self._data_fields() == other._data_fields()

    __hash__ = None  # type: ignore[assignment]

    def debug(self, indent: int = 0) -> str:
        pad = INDENT * indent
        lines = [f"{pad}{type(self).__name__}"]
        for name, value in self._data_fields():
            if isinstance(value, ASTNode):
                lines.append(f"{pad}  {name}:")
                lines.append(value.debug(indent + 1))
            elif isinstance(value, list):
                if not value:
                    lines.append(f"{pad}  {name}: []")
                    continue
                lines.append(f"{pad}  {name}:")
                lines.extend(
                    v.debug(indent + 1) if isinstance(v, ASTNode) else f"{pad}{INDENT}{v}"
                    for v in value
                )
            elif value is not None:
                lines.append(f"{pad}  {name}: {_debug_value(value)}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind}
        for name, value in self._data_fields():
            data[name] = _dict_value(value)
        data["range"] = {
            "start": [self.range.start.line, self.range.start.col],
            "end": [self.range.end.line, self.range.end.col],
        }
        if self.eval_type is not None:
            data["type"] = str(self.eval_type)
        return data


def _debug_value(value: Any) -> str:
    if isinstance(value, str):
        return repr(value)
    if isinstance(value, Primitive):
        return value.value
    return str(value)


def _dict_value(value: Any) -> Any:
    if isinstance(value, ASTNode):
        return value.to_dict()
    if isinstance(value, list):
        return [_dict_value(v) for v in value]
    if isinstance(value, (IdentPath, FullIdentPath)):
        return str(value)
    if isinstance(value, Primitive):
        return value.value
    return value


class TypeExpr(ASTNode):
    """Marker base for nodes that denote a type rather than a value."""

    kind = "type"


@dataclass(eq=False)
class TypeIdentExpr(TypeExpr):
    kind = "type_ident"

    ident: IdentPath


@dataclass(eq=False)
class RefTypeExpr(TypeExpr):
    kind = "ref_type"

    inner: TypeExpr | StructDeclExpr


@dataclass(eq=False)
class LitExpr(ASTNode):
    kind = "lit"

    value: bool | int | float | str
    primitive: Primitive

    def debug(self, indent: int = 0) -> str:
        return f"{INDENT * indent}LitExpr {self.primitive.value} {self.value!r}"


@dataclass(eq=False)
class IdentExpr(ASTNode):
    kind = "ident"

    ident: IdentPath
    resolved: FullIdentPath | None = field(default=None, compare=False, repr=False)

    def _data_fields(self) -> list[tuple[str, Any]]:
        return [("ident", self.ident)]

    def debug(self, indent: int = 0) -> str:
        return f"{INDENT * indent}IdentExpr {self.ident}"


@dataclass(eq=False)
class BinOpExpr(ASTNode):
    kind = "binop"

    lhs: ASTNode
    rhs: ASTNode
    op: str

    @property
    def symbol(self) -> str:
        return OPERATOR_SYMBOLS.get(self.op, self.op)


@dataclass(eq=False)
class UnaryOpExpr(ASTNode):
    kind = "unop"

    op: str
    operand: ASTNode

    @property
    def symbol(self) -> str:
        return OPERATOR_SYMBOLS.get(self.op, self.op)


@dataclass(eq=False)
class MemberExpr(ASTNode):
    kind = "member"

    target: ASTNode
    member: str


@dataclass(eq=False)
class CallExpr(ASTNode):
    kind = "call"

    target: ASTNode
    args: list[ASTNode]


@dataclass(eq=False)
class ListExpr(ASTNode):
    kind = "list"

    exprs: list[ASTNode]


@dataclass(eq=False)
class PropExpr(ASTNode):
    """`prop: value` inside a node literal; `node` names the owning literal."""

    kind = "prop"

    prop: str
    value: ASTNode
    node: str


@dataclass(eq=False)
class NodeExpr(ASTNode):
    """A node (or struct) literal: `Label { text: "hi", Icon { } }`."""

    kind = "node"

    ident: IdentPath
    props: list[PropExpr]
    children_nodes: list[NodeExpr]


@dataclass(eq=False)
class MemberDeclExpr(ASTNode):
    """
    One member of a struct or node declaration.

    A member is required unless it is marked optional (`name?: T`) or has a
    default value. The type may be omitted when a default is given; it is then
    inferred while the aggregate is being built.
    """

    kind = "member_decl"

    name: str
    type: TypeExpr | StructDeclExpr | None
    default: ASTNode | None = None
    optional: bool = False

    @property
    def required(self) -> bool:
        return not self.optional and self.default is None


@dataclass(eq=False)
class StructDeclExpr(ASTNode):
    kind = "struct_decl"

    ident: IdentPath | None
    members: list[MemberDeclExpr]
    is_extern: bool = False


@dataclass(eq=False)
class NodeDeclExpr(ASTNode):
    kind = "node_decl"

    ident: IdentPath
    members: list[MemberDeclExpr]


@dataclass(eq=False)
class VariantDeclExpr(ASTNode):
    kind = "variant_decl"

    name: str
    type: TypeExpr | StructDeclExpr | None = None


@dataclass(eq=False)
class EnumDeclExpr(ASTNode):
    kind = "enum_decl"

    ident: IdentPath | None
    variants: list[VariantDeclExpr]
    is_extern: bool = False


@dataclass(eq=False)
class AliasDeclExpr(ASTNode):
    kind = "alias_decl"

    ident: IdentPath
    type: TypeExpr | StructDeclExpr


@dataclass(eq=False)
class VarDeclExpr(ASTNode):
    kind = "let"

    ident: IdentPath
    type: TypeExpr | StructDeclExpr | None
    value: ASTNode


@dataclass(eq=False)
class ParamDeclExpr(ASTNode):
    kind = "param"

    name: str
    type: TypeExpr | StructDeclExpr | None = None


@dataclass(eq=False)
class BlockExpr(ASTNode):
    kind = "block"

    exprs: list[ASTNode]


@dataclass(eq=False)
class FunDeclExpr(ASTNode):
    kind = "fun_decl"

    ident: IdentPath
    params: list[ParamDeclExpr]
    ret_type: TypeExpr | StructDeclExpr | None
    body: BlockExpr | None
    is_extern: bool = False


@dataclass(eq=False)
class ReturnExpr(ASTNode):
    kind = "return"

    value: ASTNode | None = None


@dataclass(eq=False)
class NamespaceExpr(ASTNode):
    kind = "namespace"

    ident: IdentPath
    exprs: list[ASTNode]


@dataclass(eq=False)
class AST(ASTNode):
    """The root of one compilation unit."""

    kind = "ast"

    exprs: list[ASTNode]


Declaration = Union[
    StructDeclExpr, NodeDeclExpr, EnumDeclExpr, AliasDeclExpr, VarDeclExpr, FunDeclExpr
]

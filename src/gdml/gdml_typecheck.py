"""
Semantic analysis for GDML.

`TypeChecker.check(node)` dispatches on `node.kind` to a `check_<kind>`
method, stores the resulting type on `node.eval_type` and returns it. Checks
raise `TypecheckError` (or `ResolutionError`); `check` logs the error and
gives the node the unknown type, which converts to and from everything, so
one mistake does not cascade and sibling statements are still checked.

Declarations register entities with the `UnitParser` as they are checked, so
a name is usable from the statement after its declaration onward. Functions
are registered before their body, which makes recursion work. Struct and node
members are checked in order in a scope of their own; a member default may
only read members declared before it.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from gdml.gdml_ast import (
    AST,
    AliasDeclExpr,
    ASTNode,
    BinOpExpr,
    BlockExpr,
    CallExpr,
    EnumDeclExpr,
    FunDeclExpr,
    IdentExpr,
    ListExpr,
    LitExpr,
    MemberDeclExpr,
    MemberExpr,
    NamespaceExpr,
    NodeDeclExpr,
    NodeExpr,
    ParamDeclExpr,
    PropExpr,
    RefTypeExpr,
    ReturnExpr,
    StructDeclExpr,
    TypeIdentExpr,
    UnaryOpExpr,
    VarDeclExpr,
    VariantDeclExpr,
)
from gdml.gdml_diagnostics import (
    CyclicDependency,
    DuplicateEntity,
    GdmlError,
    InternalError,
    MissingRequiredProps,
    Range,
    ResolutionError,
    TypecheckError,
    TypeMismatch,
    UndefinedIdentifier,
    UnknownMember,
    UnresolvedType,
)
from gdml.gdml_paths import FullIdentPath, IdentPath
from gdml.gdml_state import Fun, Namespace, UnitParser, Var, entity_kind
from gdml.gdml_types import (
    AliasType,
    EnumType,
    FunType,
    NodeType,
    NodeValue,
    ParamType,
    Primitive,
    PrimitiveValue,
    PropType,
    PropValue,
    RefType,
    StructType,
    StructValue,
    Type,
    Value,
)

logger = logging.getLogger(__name__)


def truncated_div(a: int, b: int) -> int:
    """Integer division rounding toward zero, as C++ does."""
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


def truncated_mod(a: int, b: int) -> int:
    """Remainder with the sign of the dividend, matching `truncated_div`."""
    return a - b * truncated_div(a, b)


CONSTANT_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "PLUS": operator.add,
    "SUB": operator.sub,
    "MULT": operator.mul,
    "MOD": truncated_mod,
    "AND": lambda a, b: a and b,
    "OR": lambda a, b: a or b,
}


@dataclass
class _Aggregate:
    """Members of the struct or node currently being checked."""

    names: list[str]
    props: dict[str, PropType] = field(default_factory=dict)
    position: int = 0


class TypeChecker:
    """
    Typechecks a parsed unit against the scope stack of its `UnitParser`.

    Args:
        unit (UnitParser): Compilation state for the unit; receives diagnostics.
    """

    def __init__(self, unit: UnitParser) -> None:
        self.unit = unit
        self._aggregates: list[_Aggregate] = []

    def check(self, node: ASTNode) -> Type:
        method = getattr(self, f"check_{node.kind}", None)
        if method is None:
            raise NotImplementedError(
                f"No typecheck rule for node kind '{node.kind}' (at {node.range})"
            )
        try:
            result = method(node)
        except (TypecheckError, ResolutionError) as e:
            self.report(e, node.range)
            result = Type.unknown()
        node.eval_type = result
        return result

    def report(self, error: GdmlError, fallback: Range | None = None) -> None:
        """Logs `error` without interrupting the current check."""
        if error.range == Range() and fallback is not None:
            error.range = fallback
        logger.debug("%s at %s: %s", error.code, error.range, error.message)
        self.unit.log_error(error)

    def void(self) -> Type:
        return Type.of(Primitive.VOID)

    def export(self, type_: Type) -> None:
        if self.unit.parsed is not None and self.unit.is_export_level():
            self.unit.parsed.add_exported_type(type_)

    # Program structure

    def check_ast(self, node: AST) -> Type:
        for expr in node.exprs:
            self.check(expr)
        return self.void()

    def check_block(self, node: BlockExpr) -> Type:
        with self.unit.scope():
            for expr in node.exprs:
                self.check(expr)
        return self.void()

    def check_namespace(self, node: NamespaceExpr) -> Type:
        """`namespace a::b { ... }` opens `a`, then `b` inside it."""
        opened = 0
        try:
            for segment in node.ident.components():
                ident = IdentPath(segment)
                path = self.unit.resolve(ident, False, node.range)
                declared = self.unit.find_declared(path)
                if declared is None:
                    self.unit.push_namespace(Namespace(path))
                elif not isinstance(declared, Namespace):
                    raise DuplicateEntity(
                        f'Cannot open namespace "{path}"',
                        node.range,
                        note=f"`{path}` is already declared as a {entity_kind(declared)}",
                    )
                self.unit.push_scope(ident, namespace=True)
                opened += 1
            for expr in node.exprs:
                self.check(expr)
        finally:
            for _ in range(opened):
                self.unit.pop_scope()
        return self.void()

    # Expressions

    def check_lit(self, node: LitExpr) -> Type:
        return Type.of(node.primitive)

    def check_ident(self, node: IdentExpr) -> Type:
        try:
            found = self.unit.get_entity(node.ident, range=node.range)
        except ResolutionError as e:
            raise UndefinedIdentifier(
                f'Unknown identifier "{node.ident}"', node.range, note=e.message
            ) from e
        if found is None:
            raise UndefinedIdentifier(f'Unknown identifier "{node.ident}"', node.range)

        path, entity = found
        node.resolved = path
        if isinstance(entity, (Var, Fun)):
            return entity.type
        raise TypeMismatch(
            f'"{node.ident}" is a {entity_kind(entity)}, not a value',
            node.range,
            hint="Construct a value of the type with a literal: Name { ... }"
            if isinstance(entity, Type) and entity.is_aggregate()
            else "",
        )

    def check_binop(self, node: BinOpExpr) -> Type:
        lhs = self.check(node.lhs)
        rhs = self.check(node.rhs)
        if not rhs.convertible(lhs):
            raise TypeMismatch(
                f"Cannot apply '{node.symbol}' to {lhs} and {rhs}",
                node.range,
                hint="There are no implicit conversions between types",
            )
        return lhs

    def check_unop(self, node: UnaryOpExpr) -> Type:
        operand = self.check(node.operand)
        if node.op == "AMP":
            return Type(RefType(operand), decl=node)
        return operand

    def check_list(self, node: ListExpr) -> Type:
        for expr in node.exprs:
            self.check(expr)
        return Type.unknown()

    def check_member(self, node: MemberExpr) -> Type:
        enum = self._enum_target(node.target)
        if enum is not None:
            return self._enum_variant(node, enum)

        target = self.check(node.target)
        if target.is_unknown():
            return target
        realized = target.realize()
        if isinstance(realized.kind, RefType):
            realized = realized.kind.type.realize()
        if not realized.is_aggregate():
            raise TypeMismatch(f"Type {target} has no members", node.range)

        member = target.get_member_type(node.member)
        if member is None:
            raise UnknownMember(
                f'{target} has no member "{node.member}"',
                node.range,
                note="Available members: " + ", ".join(realized.get_members()),
            )
        return member

    def _enum_target(self, target: ASTNode) -> Type | None:
        """The enum type named by `target` when it is a path to one."""
        if not isinstance(target, IdentExpr):
            return None
        try:
            found = self.unit.get_entity(target.ident, range=target.range)
        except ResolutionError:
            return None
        if found is None or not isinstance(found[1], Type):
            return None
        if not isinstance(found[1].realize().kind, EnumType):
            return None
        target.resolved = found[0]
        target.eval_type = found[1]
        return found[1]

    def _enum_variant(self, node: MemberExpr, enum: Type) -> Type:
        kind = enum.realize().kind
        assert isinstance(kind, EnumType)  # for mypy
        payload = kind.variants.get(node.member)
        if payload is None:
            raise UnknownMember(
                f'Enum {enum} has no variant "{node.member}"',
                node.range,
                note="Variants: " + ", ".join(kind.variants),
            )
        if payload.is_primitive(Primitive.VOID):
            return enum
        return Type(FunType(None, [ParamType("value", payload)], enum), decl=node)

    def check_call(self, node: CallExpr) -> Type:
        target = self.check(node.target)
        args = [self.check(arg) for arg in node.args]
        if target.is_unknown():
            return target

        kind = target.realize().kind
        if not isinstance(kind, FunType):
            raise TypeMismatch(f"{target} is not callable", node.target.range)
        if len(args) != len(kind.params):
            raise TypeMismatch(
                f"Expected {len(kind.params)} arguments, got {len(args)}",
                node.range,
                note=f"Function type is {target}",
            )
        for arg_node, arg, param in zip(node.args, args, kind.params):
            if not arg.convertible(param.type):
                raise TypeMismatch(
                    f'Argument "{param.name}" expects {param.type}, got {arg}',
                    arg_node.range,
                )
        return kind.ret_type if kind.ret_type is not None else self.void()

    def check_prop(self, node: PropExpr) -> Type:
        return self.check(node.value)

    def check_node(self, node: NodeExpr) -> Type:
        try:
            type_ = self._lookup_type(node.ident, node.range)
            if not type_.is_aggregate():
                raise TypeMismatch(f'"{node.ident}" is {type_}, not a node or struct', node.range)
        except TypecheckError:
            for child in [*node.props, *node.children_nodes]:
                self.check(child)
            raise

        members = type_.get_members()
        seen: set[str] = set()
        for prop in node.props:
            value = self.check(prop)
            if prop.prop in seen:
                self.report(DuplicateEntity(f'Prop "{prop.prop}" is set twice', prop.range))
                continue
            seen.add(prop.prop)
            expected = members.get(prop.prop)
            if expected is None:
                self.report(
                    UnknownMember(f'{type_} has no member "{prop.prop}"', prop.range)
                )
            elif not value.convertible(expected.type):
                self.report(
                    TypeMismatch(
                        f'Prop "{prop.prop}" expects {expected.type}, got {value}',
                        prop.value.range,
                    )
                )

        is_node = isinstance(type_.realize().kind, NodeType)
        for child in node.children_nodes:
            child_type = self.check(child)
            if not is_node:
                self.report(TypeMismatch(f"Struct {type_} cannot have children", child.range))
            elif not child_type.is_unknown() and not isinstance(
                child_type.realize().kind, NodeType
            ):
                self.report(TypeMismatch(f"Child {child_type} is not a node", child.range))

        missing = type_.get_required_members() - seen
        if missing:
            raise MissingRequiredProps(
                f"Missing required props for {type_}: " + ", ".join(sorted(missing)),
                node.range,
                hint="Props without a default or '?' must be given",
            )
        return type_

    # Type expressions

    def _lookup_type(self, ident: IdentPath, range: Range) -> Type:
        try:
            found = self.unit.get_entity(ident, range=range)
        except ResolutionError as e:
            raise UndefinedIdentifier(f'Unknown type "{ident}"', range, note=e.message) from e
        if found is None:
            raise UndefinedIdentifier(f'Unknown type "{ident}"', range)
        if not isinstance(found[1], Type):
            raise TypeMismatch(f'"{ident}" is a {entity_kind(found[1])}, not a type', range)
        return found[1]

    def check_type_ident(self, node: TypeIdentExpr) -> Type:
        return self._lookup_type(node.ident, node.range)

    def check_ref_type(self, node: RefTypeExpr) -> Type:
        return Type(RefType(self.check(node.inner)), decl=node)

    # Declarations

    def _declare(
        self, ident: IdentPath, range: Range, rest: Callable[[], object]
    ) -> FullIdentPath:
        """
        Resolves the path a declaration binds and checks it is free.

        When it is not, `rest` still checks the remainder of the declaration so
        errors inside it are reported before the declaration error.
        """
        try:
            return self.unit.verify_can_push(ident, range)
        except (TypecheckError, ResolutionError):
            rest()
            raise

    def check_struct_decl(self, node: StructDeclExpr) -> Type:
        path = (
            self._declare(
                node.ident, node.range, lambda: self._check_aggregate(node.ident, node.members)
            )
            if node.ident
            else None
        )
        props = self._check_aggregate(node.ident, node.members)
        type_ = Type(StructType(path, props, node.is_extern), decl=node)
        if path is not None:
            self.unit.push_type(type_, path)
            self.export(type_)
        return type_

    def check_node_decl(self, node: NodeDeclExpr) -> Type:
        path = self._declare(
            node.ident, node.range, lambda: self._check_aggregate(node.ident, node.members)
        )
        props = self._check_aggregate(node.ident, node.members)
        type_ = Type(NodeType(path, props), decl=node)
        self.unit.push_type(type_, path)
        self.export(type_)
        return type_

    def _check_aggregate(
        self, ident: IdentPath | None, members: list[MemberDeclExpr]
    ) -> dict[str, PropType]:
        aggregate = _Aggregate([m.name for m in members])
        self._aggregates.append(aggregate)
        try:
            with self.unit.scope(ident):
                for position, member in enumerate(members):
                    aggregate.position = position
                    self.check(member)
        finally:
            self._aggregates.pop()
        return aggregate.props

    def check_member_decl(self, node: MemberDeclExpr) -> Type:
        if not self._aggregates:
            raise InternalError(f'Member "{node.name}" checked outside of an aggregate')
        aggregate = self._aggregates[-1]

        declared = self.check(node.type) if node.type is not None else None
        path = self._declare(
            IdentPath(node.name),
            node.range,
            lambda: [self.check(d) for d in (node.default,) if d is not None],
        )
        prop = PropType(declared or Type.unknown(), required=node.required)
        var = Var(path, prop.type)
        aggregate.props[node.name] = prop
        self.unit.push_var(var)

        if node.default is None:
            return prop.type

        prop.dependencies = self._member_dependencies(node, aggregate)
        default = self.check(node.default)
        if declared is None:
            prop.type = var.type = default
        elif not default.convertible(declared):
            raise TypeMismatch(
                f'Default for "{node.name}" is {default}, expected {declared}',
                node.default.range,
            )
        prop.default = self.evaluate(node.default)
        return prop.type

    def _member_dependencies(self, node: MemberDeclExpr, aggregate: _Aggregate) -> list[str]:
        """Earlier members read by the default of `node`, in order of first use."""
        assert node.default is not None  # for mypy
        dependencies: list[str] = []
        for expr in node.default.walk():
            if not isinstance(expr, IdentExpr) or not expr.ident.is_single():
                continue
            name = expr.ident.name
            if name not in aggregate.names:
                continue
            if aggregate.names.index(name) >= aggregate.position:
                raise CyclicDependency(
                    f'Default for "{node.name}" depends on "{name}", '
                    "which is not declared before it",
                    expr.range,
                    hint="A default may only use members declared above it",
                )
            if name not in dependencies:
                dependencies.append(name)
        return dependencies

    def check_variant_decl(self, node: VariantDeclExpr) -> Type:
        return self.check(node.type) if node.type is not None else self.void()

    def check_enum_decl(self, node: EnumDeclExpr) -> Type:
        path = (
            self._declare(
                node.ident, node.range, lambda: [self.check(v) for v in node.variants]
            )
            if node.ident
            else None
        )
        variants: dict[str, Type] = {}
        for variant in node.variants:
            payload = self.check(variant)
            if variant.name in variants:
                self.report(
                    DuplicateEntity(f'Variant "{variant.name}" is declared twice', variant.range)
                )
                continue
            variants[variant.name] = payload
        type_ = Type(EnumType(path, variants, node.is_extern), decl=node)
        if path is not None:
            self.unit.push_type(type_, path)
            self.export(type_)
        return type_

    def check_alias_decl(self, node: AliasDeclExpr) -> Type:
        path = self._declare(node.ident, node.range, lambda: self.check(node.type))
        target = self.check(node.type)
        type_ = Type(AliasType(path, target), decl=node)
        type_.realize()
        self.unit.push_type(type_, path)
        self.export(type_)
        return type_

    def check_let(self, node: VarDeclExpr) -> Type:
        path = self._declare(
            node.ident,
            node.range,
            lambda: [self.check(n) for n in (node.type, node.value) if n is not None],
        )
        declared = self.check(node.type) if node.type is not None else None
        value = self.check(node.value)
        self.unit.push_var(Var(path, declared or value))
        if declared is not None and not value.convertible(declared):
            raise TypeMismatch(
                f'Cannot assign {value} to "{node.ident}" of type {declared}',
                node.value.range,
                hint="There are no implicit conversions between types",
            )
        return declared or value

    def check_param(self, node: ParamDeclExpr) -> Type:
        return self.check(node.type) if node.type is not None else Type.unknown()

    def check_fun_decl(self, node: FunDeclExpr) -> Type:
        declaration_error: TypecheckError | ResolutionError | None = None
        try:
            path: FullIdentPath | None = self.unit.verify_can_push(node.ident, node.range)
        except (TypecheckError, ResolutionError) as e:
            declaration_error, path = e, None
        params = [ParamType(p.name, self.check(p)) for p in node.params]
        ret_type = self.check(node.ret_type) if node.ret_type is not None else None
        type_ = Type(FunType(path, params, ret_type, node.is_extern), decl=node)
        if path is not None:
            self.unit.push_fun(Fun(path, type_))

        if node.body is not None:
            untyped = [p.name for p in node.params if p.type is None]
            if untyped:
                self.report(
                    UnresolvedType(
                        f'Parameters of "{node.ident}" have no type: ' + ", ".join(untyped),
                        node.range,
                        hint="Only extern functions without a body may leave parameters untyped",
                    )
                )
            self._check_body(node, params, ret_type, named=path is not None)

        if declaration_error is not None:
            raise declaration_error
        return type_

    def _check_body(
        self, node: FunDeclExpr, params: list[ParamType], ret_type: Type | None, named: bool
    ) -> None:
        assert node.body is not None  # for mypy
        name = node.ident if named else None
        with self.unit.scope(name, function=True, return_type=ret_type or self.void()):
            for decl, param in zip(node.params, params):
                try:
                    param_path = self.unit.verify_can_push(IdentPath(decl.name), decl.range)
                except DuplicateEntity as e:
                    self.report(e)
                    continue
                self.unit.push_var(Var(param_path, param.type))
            for expr in node.body.exprs:
                self.check(expr)
        node.body.eval_type = self.void()

    def check_return(self, node: ReturnExpr) -> Type:
        scope = self.unit.function_scope()
        if scope is None:
            raise TypecheckError("'return' outside of a function", node.range)
        value = self.check(node.value) if node.value is not None else self.void()
        expected = scope.return_type or self.void()
        if not value.convertible(expected):
            raise TypeMismatch(
                f"Function returns {expected}, but this returns {value}",
                node.range,
            )
        return value

    # Constant evaluation

    def evaluate(self, expr: ASTNode) -> Value | None:
        """
        Evaluates a typechecked member default to a constant, or returns None
        when it is not a compile-time constant.
        """
        if isinstance(expr, LitExpr):
            return PrimitiveValue(expr.primitive, expr.value)

        if isinstance(expr, IdentExpr) and self._aggregates and expr.ident.is_single():
            earlier = self._aggregates[-1].props.get(expr.ident.name)
            return earlier.default if earlier is not None else None

        if isinstance(expr, UnaryOpExpr):
            operand = self.evaluate(expr.operand)
            if not isinstance(operand, PrimitiveValue):
                return None
            if expr.op == "SUB" and operand.primitive in (Primitive.INT, Primitive.FLOAT):
                return PrimitiveValue(operand.primitive, -operand.value)  # type: ignore[operator]
            if expr.op == "NOT" and operand.primitive is Primitive.BOOL:
                return PrimitiveValue(Primitive.BOOL, not operand.value)
            return None

        if isinstance(expr, BinOpExpr):
            return self._evaluate_binop(expr)

        if isinstance(expr, NodeExpr) and expr.eval_type is not None:
            kind = expr.eval_type.realize().kind
            if not isinstance(kind, (StructType, NodeType)) or expr.children_nodes:
                return None
            values: dict[str, PropValue] = {}
            for prop in expr.props:
                value = self.evaluate(prop.value)
                if value is None:
                    return None
                values[prop.prop] = PropValue(value)
            if isinstance(kind, StructType):
                return StructValue(kind, values)
            return NodeValue(kind, values)

        return None

    def _evaluate_binop(self, expr: BinOpExpr) -> Value | None:
        lhs = self.evaluate(expr.lhs)
        rhs = self.evaluate(expr.rhs)
        if not isinstance(lhs, PrimitiveValue) or not isinstance(rhs, PrimitiveValue):
            return None
        if lhs.primitive is not rhs.primitive:
            return None

        primitive = lhs.primitive
        if expr.op == "DIV":
            if primitive not in (Primitive.INT, Primitive.FLOAT) or not rhs.value:
                return None
            if primitive is Primitive.INT:
                quotient = truncated_div(lhs.value, rhs.value)  # type: ignore[arg-type]
                return PrimitiveValue(primitive, quotient)
            return PrimitiveValue(primitive, lhs.value / rhs.value)  # type: ignore[operator]

        op = CONSTANT_OPS.get(expr.op)
        if op is None:
            return None
        if expr.op in ("AND", "OR") and primitive is not Primitive.BOOL:
            return None
        if expr.op == "MOD" and (primitive is not Primitive.INT or not rhs.value):
            return None
        if primitive is Primitive.BOOL and expr.op not in ("AND", "OR"):
            return None
        if primitive is Primitive.STR and expr.op != "PLUS":
            return None
        return PrimitiveValue(primitive, op(lhs.value, rhs.value))

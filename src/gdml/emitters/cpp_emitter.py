"""
Translates typechecked GDML AST nodes into C++ source code.

This module defines the `CppEmitter` class used by the `Transpiler` during the
backend phase. Declarations become C++ declarations and node literals become
nested aggregate initializers, so a GDML UI description compiles into a header
that builds the same tree.

Supported Features:
    - Namespaces: `namespace a::b { ... }`
    - Structs and nodes: `struct` definitions with member defaults; nodes also
      carry a `children` vector
    - Enums: `enum class` for plain variants, a tagged struct when any
      variant carries a payload
    - Aliases: `using Name = T;`
    - Variables: `T name = value;` (`auto` when the type is unknown)
    - Functions: signatures and bodies; `extern` functions as declarations
    - Expressions: literals, paths, operators, calls, member access, lists and
      node literals (designated initializers)

Behavior:
    - Emits into a line buffer (`lines`) retrieved with `get_output()`.
    - Pretty mode indents nested blocks and keeps one statement per line;
      compact mode joins everything onto a single line.

Raises:
    - `NotImplementedError`: If a node kind has no corresponding emitter.
"""

from gdml.gdml_ast import (
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
    ReturnExpr,
    StructDeclExpr,
    UnaryOpExpr,
    VarDeclExpr,
)
from gdml.gdml_types import (
    AliasType,
    EnumType,
    FunType,
    Primitive,
    RefType,
    Type,
)

INCLUDES = ("<any>", "<functional>", "<string>", "<variant>", "<vector>")

PRIMITIVE_CPP = {
    Primitive.UNK: "auto",
    Primitive.VOID: "void",
    Primitive.BOOL: "bool",
    Primitive.INT: "int",
    Primitive.FLOAT: "float",
    Primitive.STR: "std::string",
}


def cpp_type(type_: Type | None) -> str:
    """Spells a GDML type in C++."""
    if type_ is None:
        return "void"
    kind = type_.kind
    if isinstance(kind, Primitive):
        return PRIMITIVE_CPP[kind]
    if isinstance(kind, RefType):
        return f"{cpp_type(kind.type)}&"
    if isinstance(kind, AliasType):
        return str(kind.alias)
    if isinstance(kind, FunType):
        params = ", ".join(cpp_type(p.type) for p in kind.params)
        return f"std::function<{cpp_type(kind.ret_type)}({params})>"
    name = type_.get_name()
    if name is not None:
        return str(name)
    if isinstance(kind, EnumType):
        return "int"
    members = " ".join(f"{cpp_type(p.type)} {m};" for m, p in type_.get_members().items())
    return f"struct {{ {members} }}"


def has_payloads(kind: EnumType) -> bool:
    return any(not t.is_primitive(Primitive.VOID) for t in kind.variants.values())


def cpp_string(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
        .replace("\0", "\\0")
    )
    return f'"{escaped}"'


class CppEmitter:
    """Emits C++ code from typechecked GDML AST nodes.

    Attributes:
        lines (list[str]): Accumulated lines of emitted C++ code.
        indent (int): Current indentation level.
        pretty (bool): Whether to keep one statement per indented line.
        in_function (int): Depth of function bodies being emitted.
    """

    def __init__(self, pretty: bool = True) -> None:
        self.lines: list[str] = []
        self.indent = 0
        self.pretty = pretty
        self.in_function = 0
        self._anonymous = 0

    def indent_str(self) -> str:
        return "    " * self.indent if self.pretty else ""

    def line(self, text: str) -> None:
        self.lines.append(f"{self.indent_str()}{text}")

    def get_output(self) -> str:
        """
        Returns the full emitted C++ code as a single string.

        Returns
        -------
        str
            The include preamble followed by the emitted declarations.
        """
        header = ["#pragma once"] + [f"#include {inc}" for inc in INCLUDES]
        if not self.pretty:
            return "\n".join(header) + "\n" + " ".join(line.strip() for line in self.lines)
        return "\n".join(header + [""] + self.lines)

    # Expressions

    def emit_expr(self, node: ASTNode) -> str:
        """
        Dispatches expression emission based on node kind.

        Raises
        ------
        NotImplementedError
            If no emitter exists for the node kind.
        """
        method = getattr(self, f"emit_expr_{node.kind}", None)
        if not callable(method):
            raise NotImplementedError(f"No expression emitter for kind '{node.kind}'")
        # pylint: disable=not-callable
        return str(method(node))

    def emit_expr_lit(self, node: LitExpr) -> str:
        if node.primitive is Primitive.BOOL:
            return "true" if node.value else "false"
        if node.primitive is Primitive.STR:
            return f"std::string({cpp_string(str(node.value))})"
        if node.primitive is Primitive.FLOAT:
            return f"{float(node.value)!r}f"
        return str(node.value)

    def emit_expr_ident(self, node: IdentExpr) -> str:
        return str(node.ident)

    def emit_expr_binop(self, node: BinOpExpr) -> str:
        left = self.emit_expr(node.lhs)
        right = self.emit_expr(node.rhs)
        return f"({left} {node.symbol} {right})"

    def emit_expr_unop(self, node: UnaryOpExpr) -> str:
        operand = self.emit_expr(node.operand)
        if node.op == "AMP":
            # C++ references bind to the operand itself.
            return operand
        return f"{node.symbol}{operand}"

    def _variant_of(self, node: ASTNode) -> tuple[str, EnumType] | None:
        """The enum spelling and type when `node` is `Enum.Variant`."""
        if not isinstance(node, MemberExpr) or not isinstance(node.target, IdentExpr):
            return None
        target_type = node.target.eval_type
        if target_type is None:
            return None
        kind = target_type.realize().kind
        if not isinstance(kind, EnumType):
            return None
        return self.emit_expr(node.target), kind

    def emit_expr_member(self, node: MemberExpr) -> str:
        """
        Emits member access. Enum variants become `Enum::Variant`, or a
        tagged value for enums carrying payloads; access through a reference
        uses the plain `.` since references are aliases.
        """
        variant = self._variant_of(node)
        if variant is not None:
            name, kind = variant
            if has_payloads(kind):
                return f"{name}{{{name}::Tag::{node.member}}}"
            return f"{name}::{node.member}"
        return f"{self.emit_expr(node.target)}.{node.member}"

    def emit_expr_call(self, node: CallExpr) -> str:
        args = ", ".join(self.emit_expr(arg) for arg in node.args)
        variant = self._variant_of(node.target)
        if variant is not None:
            name = variant[0]
            assert isinstance(node.target, MemberExpr)  # for mypy
            return f"{name}{{{name}::Tag::{node.target.member}, {args}}}"
        return f"{self.emit_expr(node.target)}({args})"

    def emit_expr_list(self, node: ListExpr) -> str:
        return "{" + ", ".join(self.emit_expr(e) for e in node.exprs) + "}"

    def emit_expr_node(self, node: NodeExpr) -> str:
        """
        Emits a node or struct literal as a designated initializer.

        Props are emitted in declaration order of the type when it is known,
        since C++ requires designators in member order.
        """
        props = {prop.prop: prop for prop in node.props}
        order = list(props)
        if node.eval_type is not None and node.eval_type.is_aggregate():
            declared = list(node.eval_type.get_members())
            order = [m for m in declared if m in props] + [m for m in order if m not in declared]
        fields = [f".{name} = {self.emit_expr(props[name].value)}" for name in order]
        if node.children_nodes:
            children = ", ".join(self.emit_expr(c) for c in node.children_nodes)
            fields.append(f".children = {{{children}}}")
        return f"{node.ident}{{{', '.join(fields)}}}"

    # Declarations and statements

    def _visit(self, node: ASTNode) -> None:
        """
        Dispatches a statement node to the appropriate emit method.

        Raises
        ------
        NotImplementedError
            If no emitter is defined for the node kind.
        """
        meth = getattr(self, f"emit_{node.kind}", None)
        if not meth:
            raise NotImplementedError(f"CppEmitter: no emitter for {node.kind}")
        # pylint: disable=not-callable
        meth(node)

    def emit_expr_stmt(self, node: ASTNode) -> None:
        """
        Emits an expression used as a statement.

        Inside a function this is a plain `expr;`. At namespace scope C++ only
        allows declarations, so the value is bound to a generated variable.
        """
        code = self.emit_expr(node)
        if self.in_function:
            self.line(f"{code};")
            return
        name = f"gdml_root_{self._anonymous}"
        self._anonymous += 1
        self.line(f"inline auto {name} = {code};")

    emit_lit = emit_expr_stmt
    emit_ident = emit_expr_stmt
    emit_binop = emit_expr_stmt
    emit_unop = emit_expr_stmt
    emit_member = emit_expr_stmt
    emit_call = emit_expr_stmt
    emit_list = emit_expr_stmt
    emit_node = emit_expr_stmt

    def emit_namespace(self, node: NamespaceExpr) -> None:
        self.line(f"namespace {node.ident} {{")
        self.indent += 1
        for expr in node.exprs:
            self._visit(expr)
        self.indent -= 1
        self.line("}")

    def emit_block(self, node: BlockExpr) -> None:
        self.line("{")
        self.indent += 1
        for expr in node.exprs:
            self._visit(expr)
        self.indent -= 1
        self.line("}")

    def _emit_members(self, members: list[MemberDeclExpr]) -> None:
        for member in members:
            type_ = member.eval_type
            spelled = cpp_type(type_) if type_ is not None and not type_.is_unknown() else "auto"
            if member.default is not None:
                self.line(f"{spelled} {member.name} = {self.emit_expr(member.default)};")
            else:
                self.line(f"{spelled} {member.name}{{}};")

    def emit_struct_decl(self, node: StructDeclExpr) -> None:
        if node.ident is None:
            return
        if node.is_extern:
            self.line(f"struct {node.ident.name};")
            return
        self.line(f"struct {node.ident.name} {{")
        self.indent += 1
        self._emit_members(node.members)
        self.indent -= 1
        self.line("};")

    def emit_node_decl(self, node: NodeDeclExpr) -> None:
        self.line(f"struct {node.ident.name} {{")
        self.indent += 1
        self._emit_members(node.members)
        self.line("std::vector<std::any> children{};")
        self.indent -= 1
        self.line("};")

    def emit_enum_decl(self, node: EnumDeclExpr) -> None:
        """
        Emits an enum. Plain variants map onto `enum class`; when any variant
        has a payload the enum becomes a struct holding a tag and a variant.
        """
        if node.ident is None:
            return
        name = node.ident.name
        tags = ", ".join(v.name for v in node.variants)
        if node.is_extern:
            self.line(f"enum class {name};")
            return
        if all(v.type is None for v in node.variants):
            self.line(f"enum class {name} {{ {tags} }};")
            return

        payloads = ["std::monostate"]
        for variant in node.variants:
            if variant.eval_type is not None and not variant.eval_type.is_primitive(
                Primitive.VOID
            ):
                spelled = cpp_type(variant.eval_type)
                if spelled not in payloads:
                    payloads.append(spelled)
        self.line(f"struct {name} {{")
        self.indent += 1
        self.line(f"enum class Tag {{ {tags} }};")
        self.line("Tag tag;")
        self.line(f"std::variant<{', '.join(payloads)}> value;")
        self.indent -= 1
        self.line("};")

    def emit_alias_decl(self, node: AliasDeclExpr) -> None:
        target = node.type.eval_type
        self.line(f"using {node.ident.name} = {cpp_type(target)};")

    def emit_let(self, node: VarDeclExpr) -> None:
        type_ = node.eval_type
        spelled = cpp_type(type_) if type_ is not None else "auto"
        prefix = "" if self.in_function else "inline "
        self.line(f"{prefix}{spelled} {node.ident.name} = {self.emit_expr(node.value)};")

    def emit_fun_decl(self, node: FunDeclExpr) -> None:
        fun = node.eval_type.kind if node.eval_type is not None else None
        params = []
        for i, param in enumerate(node.params):
            type_ = fun.params[i].type if isinstance(fun, FunType) else param.eval_type
            params.append(f"{cpp_type(type_)} {param.name}")
        ret = cpp_type(fun.ret_type) if isinstance(fun, FunType) else "void"
        signature = f"{ret} {node.ident.name}({', '.join(params)})"

        if node.body is None:
            prefix = "extern " if node.is_extern else ""
            self.line(f"{prefix}{signature};")
            return

        self.line(f"inline {signature} {{")
        self.indent += 1
        self.in_function += 1
        for stmt in node.body.exprs:
            self._visit(stmt)
        self.in_function -= 1
        self.indent -= 1
        self.line("}")

    def emit_return(self, node: ReturnExpr) -> None:
        if node.value is None:
            self.line("return;")
        else:
            self.line(f"return {self.emit_expr(node.value)};")


__all__ = ["CppEmitter", "cpp_type"]

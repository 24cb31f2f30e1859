"""
GDML Language Parser

Parses GDML tokens into the abstract syntax tree defined in `gdml_ast`.

The parser is hand-written recursive descent. Binary expressions use
precedence climbing; node literals (`Label { text: "hi" }`) are told apart
from plain identifiers by a speculative parse that is rolled back, together
with any diagnostics it logged, when it fails.

Supported Constructs
--------------------
- Declarations:
    * `struct Name { x: int, y?: float, z = 1 }` (optionally `extern`)
    * `node Label { text: string }`
    * `enum Align { Start, End, Custom(int) }` (optionally `extern`)
    * `alias Meters = float`
    * `fun name(a: int, b) -> int { ... }` (optionally `extern`, body optional)
    * `let x: int = 1`
- Statements:
    * `namespace a::b { ... }`
    * `return [expr]`
    * `{ ... }` blocks
    * Expression statements; `;` separators are optional
- Expressions:
    * Literals: integers, floats, strings, `true` / `false`
    * Paths: `x`, `ui::Label`, `::root`
    * Lists: `[a, b, c]`
    * Node literals with props and child nodes
    * Unary `-`, `!`, `&`; binary `|| && == != < <= > >= + - * / %`
    * Calls `f(a, b)` and member access `a.b`

Parser Behavior
---------------
- A syntax error inside a statement is logged and the parser skips to the
  next `;`, closing brace or statement keyword, so one run reports every
  broken statement.
- If any statement failed, `parse()` returns None and the unit is not
  typechecked.
- Grammar recursion deeper than MAX_NESTING_DEPTH is a syntax error, and so
  is a statement whose tree is deeper than that, such as a long operator chain.

Entry Points
------------
- `parse()`: Parse a whole unit into an `AST`.
- `parse_statement()`: Parse a single statement.
- `parse_expression()`: Parse a single expression.
- `parse_type()`: Parse a type expression.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

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
    TypeExpr,
    TypeIdentExpr,
    UnaryOpExpr,
    VarDeclExpr,
    VariantDeclExpr,
)
from gdml.gdml_constants import (
    BINARY_PRECEDENCE,
    MAX_NESTING_DEPTH,
    STATEMENT_TOKENS,
    UNARY_OPS,
)
from gdml.gdml_diagnostics import GdmlSyntaxError, Range
from gdml.gdml_lexer import Token
from gdml.gdml_paths import IdentPath
from gdml.gdml_types import Primitive

if TYPE_CHECKING:
    from gdml.gdml_state import UnitParser

logger = logging.getLogger(__name__)


class TokenStream:
    """
    A cursor over a token list.

    The list must end with an EOF token; reading past it keeps returning EOF.
    `checkpoint()` and `rewind()` let a speculative parse give tokens back.
    """

    def __init__(self, tokens: list[Token]) -> None:
        if not tokens or tokens[-1].type != "EOF":
            tokens = list(tokens) + [Token("EOF", "EOF")]
        self.tokens = tokens
        self.position = 0

    def current(self) -> Token:
        return self.tokens[min(self.position, len(self.tokens) - 1)]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.position + offset, len(self.tokens) - 1)]

    def previous(self) -> Token:
        return self.tokens[max(self.position - 1, 0)]

    def advance(self) -> Token:
        """Consumes the current token and returns it."""
        tok = self.current()
        if self.position < len(self.tokens) - 1:
            self.position += 1
        return tok

    def at_end(self) -> bool:
        return self.current().type == "EOF"

    def checkpoint(self) -> int:
        return self.position

    def rewind(self, checkpoint: int) -> None:
        self.position = checkpoint


class Parser:
    """
    GDML Parser Class

    Attributes
    ----------
    stream : TokenStream
        The tokens being parsed.
    unit : UnitParser
        Compilation state; receives diagnostics and runs speculative parses.
    failed : bool
        Set once any statement failed to parse.
    depth : int
        Current grammar nesting depth.
    """

    def __init__(self, tokens: list[Token] | TokenStream, unit: UnitParser) -> None:
        self.stream = tokens if isinstance(tokens, TokenStream) else TokenStream(tokens)
        self.unit = unit
        self.failed = False
        self.depth = 0

    # Token helpers

    def current(self) -> Token:
        return self.stream.current()

    def peek(self, offset: int = 1) -> Token:
        return self.stream.peek(offset)

    def advance(self) -> Token:
        return self.stream.advance()

    def check(self, *types: str) -> bool:
        return self.current().type in types

    def match(self, *types: str) -> Token | None:
        if self.check(*types):
            return self.advance()
        return None

    def expect(self, type_: str, what: str) -> Token:
        tok = self.current()
        if tok.type == type_:
            return self.advance()
        raise self.error(f"Expected {what}", tok)

    def error(self, message: str, tok: Token | None = None) -> GdmlSyntaxError:
        tok = tok or self.current()
        if tok.type == "EOF":
            found = "end of file"
        elif tok.type == "ERROR":
            found = f"unexpected character '{tok.value}'"
        else:
            found = f"'{tok.value}'"
        return GdmlSyntaxError(f"{message}, got {found}", tok.range)

    def span(self, start: Token | Range) -> Range:
        """Range from `start` to the last consumed token."""
        begin = start.range if isinstance(start, Token) else start
        return begin.to(self.stream.previous().range)

    @contextmanager
    def nested(self) -> Iterator[None]:
        self.depth += 1
        try:
            if self.depth > MAX_NESTING_DEPTH:
                raise GdmlSyntaxError(
                    f"Nesting exceeds the maximum depth of {MAX_NESTING_DEPTH}",
                    self.current().range,
                )
            yield
        finally:
            self.depth -= 1

    # Program structure

    def parse(self) -> AST | None:
        """Parse a whole unit. Returns None if any statement failed to parse."""
        start = self.current()
        exprs = self.parse_statements("EOF")
        for expr in exprs:
            if expr.height() > MAX_NESTING_DEPTH:
                self.unit.log_error(
                    GdmlSyntaxError(
                        f"Expression nesting exceeds the maximum depth of {MAX_NESTING_DEPTH}",
                        expr.range,
                        hint="Split long operator chains with intermediate `let` bindings",
                    )
                )
                self.failed = True
        if self.failed:
            logger.debug("Parsing %s failed; skipping typecheck", self.unit.src.name)
            return None
        return AST(exprs, range=start.range.to(self.current().range))

    def parse_statements(self, terminator: str) -> list[ASTNode]:
        """Parse statements up to (not including) `terminator`, recovering from errors."""
        exprs: list[ASTNode] = []
        while not self.check(terminator, "EOF"):
            before = self.stream.checkpoint()
            try:
                exprs.append(self.parse_statement())
            except GdmlSyntaxError as e:
                self.unit.log_error(e)
                self.failed = True
                self.synchronize(self.open_braces(before))
                if self.stream.checkpoint() == before:
                    self.advance()
                continue
            self.match("SEMI")
        return exprs

    def open_braces(self, since: int) -> int:
        """Number of `{` consumed since `since` that are still unclosed."""
        depth = 0
        for tok in self.stream.tokens[since : self.stream.checkpoint()]:
            if tok.type == "LBRACE":
                depth += 1
            elif tok.type == "RBRACE":
                depth = max(depth - 1, 0)
        return depth

    def synchronize(self, depth: int = 0) -> None:
        """Skip to just past the next `;`, to the `}` closing the current body,
        or to the next keyword that starts a statement.

        `depth` counts braces the failed statement already opened, so their
        closing braces are skipped as well.
        """
        skipped = False
        while not self.stream.at_end():
            tok = self.current()
            if tok.type in STATEMENT_TOKENS and depth == 0 and skipped:
                return
            skipped = True
            if tok.type == "LBRACE":
                depth += 1
            elif tok.type == "RBRACE":
                if depth == 0:
                    return
                depth -= 1
                if depth == 0:
                    self.advance()
                    return
            elif tok.type == "SEMI" and depth == 0:
                self.advance()
                return
            self.advance()

    def parse_statement(self) -> ASTNode:
        tok = self.current()
        with self.nested():
            if tok.type == "NAMESPACE":
                return self.parse_namespace()
            if tok.type == "EXTERN":
                return self.parse_extern()
            if tok.type == "STRUCT":
                return self.parse_struct()
            if tok.type == "NODE":
                return self.parse_node_decl()
            if tok.type == "ENUM":
                return self.parse_enum()
            if tok.type == "ALIAS":
                return self.parse_alias()
            if tok.type == "FUN":
                return self.parse_function()
            if tok.type == "LET":
                return self.parse_let()
            if tok.type == "RETURN":
                return self.parse_return()
            if tok.type == "LBRACE":
                return self.parse_block()
            return self.parse_expression()

    def parse_block(self) -> BlockExpr:
        start = self.expect("LBRACE", "'{'")
        exprs = self.parse_statements("RBRACE")
        self.expect("RBRACE", "'}' to close block")
        return BlockExpr(exprs, range=self.span(start))

    def parse_namespace(self) -> NamespaceExpr:
        start = self.expect("NAMESPACE", "'namespace'")
        ident = self.parse_path()
        if ident.absolute:
            raise self.error("Namespace names cannot be absolute", start)
        self.expect("LBRACE", "'{' after namespace name")
        exprs = self.parse_statements("RBRACE")
        self.expect("RBRACE", "'}' to close namespace")
        return NamespaceExpr(ident, exprs, range=self.span(start))

    def parse_extern(self) -> ASTNode:
        start = self.expect("EXTERN", "'extern'")
        if self.check("STRUCT"):
            return self.parse_struct(extern=start)
        if self.check("ENUM"):
            return self.parse_enum(extern=start)
        if self.check("FUN"):
            return self.parse_function(extern=start)
        raise self.error("Expected 'struct', 'enum' or 'fun' after 'extern'")

    # Declarations

    def parse_path(self) -> IdentPath:
        """Parse `['::'] IDENT { '::' IDENT }`."""
        absolute = self.match("SCOPE") is not None
        parts = [self.expect("IDENT", "identifier").value]
        while self.check("SCOPE") and self.peek().type == "IDENT":
            self.advance()
            parts.append(self.advance().value)
        return IdentPath(parts[-1], tuple(parts[:-1]), absolute)

    def parse_struct(self, extern: Token | None = None) -> StructDeclExpr:
        start = self.expect("STRUCT", "'struct'")
        name = self.match("IDENT")
        ident = IdentPath(name.value) if name else None
        members = self.parse_members()
        return StructDeclExpr(ident, members, extern is not None, range=self.span(extern or start))

    def parse_node_decl(self) -> NodeDeclExpr:
        start = self.expect("NODE", "'node'")
        name = self.expect("IDENT", "node name")
        members = self.parse_members()
        return NodeDeclExpr(IdentPath(name.value), members, range=self.span(start))

    def parse_members(self) -> list[MemberDeclExpr]:
        """Parse `'{' [member {',' member} [',']] '}'`."""
        self.expect("LBRACE", "'{' to open member list")
        members: list[MemberDeclExpr] = []
        while not self.check("RBRACE"):
            members.append(self.parse_member())
            if not self.match("COMMA"):
                break
        self.expect("RBRACE", "',' or '}' after member")
        return members

    def parse_member(self) -> MemberDeclExpr:
        name = self.expect("IDENT", "member name")
        optional = self.match("QUESTION") is not None
        type_ = self.parse_type() if self.match("COLON") else None
        default = self.parse_expression() if self.match("ASSIGN") else None
        if type_ is None and default is None:
            raise GdmlSyntaxError(
                f"Member '{name.value}' needs a type or a default value",
                name.range,
                hint=f"Write '{name.value}: <type>' or '{name.value} = <value>'",
            )
        return MemberDeclExpr(name.value, type_, default, optional, range=self.span(name))

    def parse_enum(self, extern: Token | None = None) -> EnumDeclExpr:
        start = self.expect("ENUM", "'enum'")
        name = self.match("IDENT")
        self.expect("LBRACE", "'{' to open variant list")
        variants: list[VariantDeclExpr] = []
        while not self.check("RBRACE"):
            variant = self.expect("IDENT", "variant name")
            payload = None
            if self.match("LPAREN"):
                payload = self.parse_type()
                self.expect("RPAREN", "')' after variant payload")
            variants.append(VariantDeclExpr(variant.value, payload, range=self.span(variant)))
            if not self.match("COMMA"):
                break
        self.expect("RBRACE", "',' or '}' after variant")
        ident = IdentPath(name.value) if name else None
        return EnumDeclExpr(ident, variants, extern is not None, range=self.span(extern or start))

    def parse_alias(self) -> AliasDeclExpr:
        start = self.expect("ALIAS", "'alias'")
        name = self.expect("IDENT", "alias name")
        self.expect("ASSIGN", "'=' after alias name")
        type_ = self.parse_type()
        return AliasDeclExpr(IdentPath(name.value), type_, range=self.span(start))

    def parse_function(self, extern: Token | None = None) -> FunDeclExpr:
        start = self.expect("FUN", "'fun'")
        name = self.expect("IDENT", "function name")
        self.expect("LPAREN", "'(' after function name")
        params: list[ParamDeclExpr] = []
        while not self.check("RPAREN"):
            param = self.expect("IDENT", "parameter name")
            type_ = self.parse_type() if self.match("COLON") else None
            params.append(ParamDeclExpr(param.value, type_, range=self.span(param)))
            if not self.match("COMMA"):
                break
        self.expect("RPAREN", "',' or ')' after parameter")
        ret_type = self.parse_type() if self.match("ARROW") else None
        body = None
        if self.check("LBRACE"):
            if extern is not None:
                raise self.error("Extern functions cannot have a body")
            body = self.parse_block()
        return FunDeclExpr(
            IdentPath(name.value),
            params,
            ret_type,
            body,
            extern is not None,
            range=self.span(extern or start),
        )

    def parse_let(self) -> VarDeclExpr:
        start = self.expect("LET", "'let'")
        name = self.expect("IDENT", "variable name")
        type_ = self.parse_type() if self.match("COLON") else None
        self.expect("ASSIGN", "'=' in variable declaration")
        value = self.parse_expression()
        return VarDeclExpr(IdentPath(name.value), type_, value, range=self.span(start))

    def parse_return(self) -> ReturnExpr:
        start = self.expect("RETURN", "'return'")
        value = None
        if not self.check("SEMI", "RBRACE", "EOF"):
            value = self.parse_expression()
        return ReturnExpr(value, range=self.span(start))

    def parse_type(self) -> TypeExpr | StructDeclExpr:
        """Parse `'&' type | 'struct' '{' members '}' | path`."""
        tok = self.current()
        with self.nested():
            if tok.type == "AMP":
                self.advance()
                inner = self.parse_type()
                return RefTypeExpr(inner, range=self.span(tok))
            if tok.type == "STRUCT":
                self.advance()
                members = self.parse_members()
                return StructDeclExpr(None, members, range=self.span(tok))
            if tok.type in ("IDENT", "SCOPE"):
                ident = self.parse_path()
                return TypeIdentExpr(ident, range=self.span(tok))
            raise self.error("Expected a type")

    # Expressions

    def parse_expression(self) -> ASTNode:
        return self.parse_binary(self.parse_unary(), 1)

    def parse_binary(self, lhs: ASTNode, min_prec: int) -> ASTNode:
        """
        Precedence climbing over BINARY_PRECEDENCE.

        Each right-hand side absorbs only operators that bind tighter than the
        one just consumed, which makes every operator left associative.
        """
        while True:
            op = self.current()
            prec = BINARY_PRECEDENCE.get(op.type)
            if prec is None or prec < min_prec:
                return lhs
            self.advance()
            rhs = self.parse_binary(self.parse_unary(), prec + 1)
            lhs = BinOpExpr(lhs, rhs, op.type, range=lhs.range.to(rhs.range))

    def parse_unary(self) -> ASTNode:
        tok = self.current()
        with self.nested():
            if tok.type in UNARY_OPS:
                self.advance()
                operand = self.parse_unary()
                return UnaryOpExpr(tok.type, operand, range=tok.range.to(operand.range))
            return self.parse_primary()

    def parse_primary(self) -> ASTNode:
        """A primary expression followed by any number of call and member suffixes."""
        expr = self.parse_primary_non_call()
        while True:
            if self.match("LPAREN"):
                args = self.parse_arguments("RPAREN", "')' after arguments")
                expr = CallExpr(expr, args, range=self.span(expr.range))
            elif self.match("DOT"):
                member = self.expect("IDENT", "member name after '.'")
                expr = MemberExpr(expr, member.value, range=expr.range.to(member.range))
            else:
                return expr

    def parse_arguments(self, closing: str, what: str) -> list[ASTNode]:
        args: list[ASTNode] = []
        while not self.check(closing):
            args.append(self.parse_expression())
            if not self.match("COMMA"):
                break
        self.expect(closing, what)
        return args

    def parse_primary_non_call(self) -> ASTNode:
        tok = self.current()

        if tok.type == "NUMBER":
            self.advance()
            return LitExpr(int(tok.value), Primitive.INT, range=tok.range)
        if tok.type == "FLOAT":
            self.advance()
            return LitExpr(float(tok.value), Primitive.FLOAT, range=tok.range)
        if tok.type == "STRING":
            self.advance()
            return LitExpr(tok.value, Primitive.STR, range=tok.range)
        if tok.type == "BOOL":
            self.advance()
            return LitExpr(tok.value == "true", Primitive.BOOL, range=tok.range)

        if tok.type == "LPAREN":
            self.advance()
            expr = self.parse_expression()
            self.expect("RPAREN", "')'")
            expr.range = self.span(tok)
            return expr

        if tok.type == "LBRACK":
            self.advance()
            exprs = self.parse_arguments("RBRACK", "']' to close list")
            return ListExpr(exprs, range=self.span(tok))

        if tok.type in ("IDENT", "SCOPE"):
            ident = self.parse_path()
            if self.check("LBRACE"):
                with self.unit.speculate(self.stream) as attempt:
                    attempt.value = self.parse_node_body(ident, tok)
                if not attempt.failed:
                    return attempt.value
            return IdentExpr(ident, range=self.span(tok))

        raise self.error("Expected an expression")

    def parse_node_literal(self) -> NodeExpr:
        start = self.current()
        ident = self.parse_path()
        if not self.check("LBRACE"):
            raise self.error(f"Expected '{{' after node name '{ident}'")
        return self.parse_node_body(ident, start)

    def parse_node_body(self, ident: IdentPath, start: Token) -> NodeExpr:
        """Parse `'{' { (IDENT ':' expr | node_literal) [',' | ';'] } '}'`."""
        with self.nested():
            self.expect("LBRACE", "'{'")
            props: list[PropExpr] = []
            children: list[NodeExpr] = []
            while not self.check("RBRACE"):
                if self.check("IDENT") and self.peek().type == "COLON":
                    name = self.advance()
                    self.advance()
                    value = self.parse_expression()
                    props.append(
                        PropExpr(name.value, value, str(ident), range=name.range.to(value.range))
                    )
                elif self.check("IDENT", "SCOPE"):
                    children.append(self.parse_node_literal())
                else:
                    raise self.error("Expected a prop or child node")
                self.match("COMMA", "SEMI")
            self.expect("RBRACE", "'}' to close node")
            return NodeExpr(ident, props, children, range=self.span(start))


__all__ = ["Parser", "TokenStream"]

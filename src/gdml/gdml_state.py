"""
Compilation state for one GDML unit.

`UnitParser` is threaded through parsing and typechecking. It owns the scope
stack (each `Scope` an entity table keyed by `FullIdentPath`), resolves
identifiers against it, and opens diagnostic checkpoints for speculative
parsing. `ParsedSrc` is the result of a compilation: the AST plus the types
the unit exports to other units.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Union

from gdml.gdml_ast import AST
from gdml.gdml_diagnostics import (
    DuplicateEntity,
    GdmlSyntaxError,
    InternalError,
    Level,
    Message,
    Range,
    ResolutionError,
    UnknownNamespace,
)
from gdml.gdml_paths import FullIdentPath, IdentPath
from gdml.gdml_types import Primitive, Type

if TYPE_CHECKING:
    from gdml.gdml_compiler import Compiler
    from gdml.gdml_parser import TokenStream

logger = logging.getLogger(__name__)


@dataclass
class Src:
    """One source input: a display name and its text."""

    name: str
    text: str


@dataclass
class Var:
    name: FullIdentPath
    type: Type


@dataclass
class Fun:
    name: FullIdentPath
    type: Type


@dataclass
class Namespace:
    name: FullIdentPath


Entity = Union[Type, Var, Fun, Namespace]


def entity_kind(entity: Entity) -> str:
    if isinstance(entity, Type):
        return "type"
    if isinstance(entity, Var):
        return "variable"
    if isinstance(entity, Fun):
        return "function"
    return "namespace"


class Scope:
    """
    One lexical scope.

    Args:
        name (FullIdentPath | None): Bound name of a namespace, function or aggregate scope.
        function (bool): True for function bodies.
        namespace (bool): True for namespace bodies; their entities outlive the scope.
        return_type (Type | None): Declared return type of the enclosing function body.
    """

    def __init__(
        self,
        name: FullIdentPath | None = None,
        function: bool = False,
        namespace: bool = False,
        return_type: Type | None = None,
    ) -> None:
        self.name = name
        self.function = function
        self.namespace = namespace
        self.return_type = return_type
        self.entities: dict[FullIdentPath, Entity] = {}

    def push(self, path: FullIdentPath, entity: Entity) -> None:
        self.entities[path] = entity

    def __contains__(self, path: object) -> bool:
        return path in self.entities

    def __repr__(self) -> str:
        return f"Scope(name={self.name}, entities={len(self.entities)})"


@dataclass
class Attempt:
    """Outcome of a speculative parse opened with `UnitParser.speculate`."""

    value: Any = None
    failed: bool = False
    error: GdmlSyntaxError | None = field(default=None, repr=False)


class ParsedSrc:
    """
    A compiled unit: its source, root AST and exported types.

    Exported types are keyed by their fully qualified path and kept in
    declaration order. Once `publish()` has been called the export table is
    read-only.
    """

    def __init__(self, src: Src, ast: AST | None) -> None:
        self.src = src
        self.ast = ast
        self._exported: dict[FullIdentPath, Type] = {}
        self._published = False

    def add_exported_type(self, type_: Type) -> bool:
        """Registers a named type; returns False for anonymous or already exported types."""
        if self._published:
            raise InternalError(f"Cannot export `{type_}` from an already published unit")
        name = type_.get_name()
        if name is None or not type_.is_exportable() or name in self._exported:
            return False
        self._exported[name] = type_
        return True

    def get_exported_type(self, name: FullIdentPath) -> Type | None:
        return self._exported.get(name)

    def get_exported_types(self) -> list[Type]:
        return list(self._exported.values())

    @property
    def exported_types(self) -> Mapping[FullIdentPath, Type]:
        return MappingProxyType(self._exported)

    def publish(self) -> None:
        self._published = True

    @property
    def published(self) -> bool:
        return self._published


class UnitParser:
    """
    Mutable state for compiling one unit.

    The scope stack starts with a root scope seeded with the primitive types
    and with the exports of every dependency unit.

    Args:
        compiler (Compiler): The driver owning the diagnostic log.
        src (Src): The source being compiled.
        dependencies (Iterable[ParsedSrc]): Already compiled units to import types from.
    """

    def __init__(
        self,
        compiler: Compiler,
        src: Src,
        dependencies: Iterable[ParsedSrc] = (),
    ) -> None:
        self.compiler = compiler
        self.src = src
        self.parsed: ParsedSrc | None = None
        self.scopes: list[Scope] = [Scope()]
        for primitive in Primitive:
            if primitive is not Primitive.UNK:
                self.push_type(Type.of(primitive))
        for dep in dependencies:
            for path, type_ in dep.exported_types.items():
                self._seed_namespaces(path.parent())
                self.scopes[0].push(path, type_)

    def _seed_namespaces(self, path: FullIdentPath) -> None:
        for depth in range(1, len(path.segments) + 1):
            prefix = FullIdentPath(path.segments[:depth])
            if prefix not in self.scopes[0]:
                self.scopes[0].push(prefix, Namespace(prefix))

    @classmethod
    def parse(
        cls,
        compiler: Compiler,
        src: Src,
        dependencies: Iterable[ParsedSrc] = (),
    ) -> ParsedSrc:
        """Parses `src` and, when the whole unit parsed, typechecks it."""
        from gdml.gdml_lexer import tokenize
        from gdml.gdml_parser import Parser
        from gdml.gdml_typecheck import TypeChecker

        unit = cls(compiler, src, dependencies)
        try:
            tokens = tokenize(src.text)
        except GdmlSyntaxError as e:
            unit.log_error(e)
            return ParsedSrc(src, None)

        ast = Parser(tokens, unit).parse()
        parsed = ParsedSrc(src, ast)
        if ast is not None:
            logger.debug("Successfully parsed AST for %s", src.name)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("%s", ast.debug())
            unit.parsed = parsed
            TypeChecker(unit).check(ast)
        return parsed

    # Diagnostics

    def log(self, message: Message) -> None:
        if message.range.src is None:
            message.range = Range(message.range.start, message.range.end, self.src.name)
        self.compiler.log(message)

    def log_error(self, error: Exception) -> None:
        if hasattr(error, "to_message"):
            self.log(error.to_message())
        else:
            self.log(Message(Level.ERROR, str(error)))

    def error(self, range: Range, info: str, hint: str = "", note: str = "") -> None:
        self.log(Message(Level.ERROR, info, range, hint, note))

    def warn(self, range: Range, info: str, hint: str = "") -> None:
        self.log(Message(Level.WARNING, info, range, hint))

    @contextmanager
    def speculate(self, stream: TokenStream) -> Iterator[Attempt]:
        """
        Runs a parse attempt that may be discarded.

        If the body raises GdmlSyntaxError, every diagnostic logged since the
        attempt began is dropped and the stream is rewound, so the failure is
        invisible; the attempt is marked failed instead.
        """
        attempt = Attempt()
        level = self.compiler.push_log_level()
        checkpoint = stream.checkpoint()
        try:
            yield attempt
        except GdmlSyntaxError as e:
            logger.debug("Speculative parse failed at %s: %s", e.range, e.message)
            self.compiler.pop_messages(level)
            stream.rewind(checkpoint)
            attempt.failed = True
            attempt.error = e
        finally:
            self.compiler.pop_log_level(level)

    # Resolution

    def exists(self, path: FullIdentPath) -> bool:
        return any(path in scope for scope in self.scopes)

    def resolve(self, name: IdentPath, existing: bool, range: Range | None = None) -> FullIdentPath:
        """
        Resolves an identifier as written into its fully qualified path.

        Declarations (`existing=False`) of a single name land in the innermost
        named scope. Everything else walks the scope stack outward, trying each
        scope's own name, then every namespace or function entity declared
        directly in it.

        Raises:
            ResolutionError: If the path walks into an entity that cannot have members.
            UnknownNamespace: If no scope produces a match.
        """
        if name.is_single() and not existing:
            for scope in reversed(self.scopes):
                if scope.name is not None:
                    return scope.name.join(name.name)
            return FullIdentPath.of(name)

        if name.absolute:
            return FullIdentPath.of(name)

        for scope, base in reversed(list(zip(self.scopes, self.scope_bases()))):
            if scope.name is not None:
                resolved = scope.name.resolve(name, existing, self.exists)
                if resolved is not None:
                    logger.debug("Scope resolved %s -> %s", name, resolved)
                    return resolved
            for path, entity in scope.entities.items():
                resolved = path.anchor(name) if path.parent() == base else None
                if resolved is None:
                    continue
                if isinstance(entity, (Namespace, Fun)):
                    logger.debug("Entity resolved %s -> %s", name, resolved)
                    return resolved
                raise ResolutionError(
                    "Cannot add sub-entities to a non-namespace or function",
                    range,
                    note=f"`{path}` is a {entity_kind(entity)}",
                )

        if existing:
            root = FullIdentPath.of(name)
            if self.exists(root):
                return root

        where = "::".join(name.path) if name.path else name.name
        raise UnknownNamespace(f'Unknown namespace "{where}"', range)

    def verify_can_push(self, name: IdentPath, range: Range | None = None) -> FullIdentPath:
        """
        Resolves a declaration path and checks it is free in the current scope.

        Shadowing an entity from an outer scope is allowed; redeclaring one in
        the same scope is not. A namespace body shares its table with the scope
        it merges into, so both are checked.

        Raises:
            DuplicateEntity: If the path is already declared in the current scope.
        """
        path = self.resolve(name, False, range)
        for scope in self._declaration_scopes():
            if path in scope:
                raise DuplicateEntity(
                    f'Type or variable "{name}" already exists in this scope',
                    range,
                    note=f"Previously declared as a {entity_kind(scope.entities[path])}",
                )
        return path

    def find_declared(self, path: FullIdentPath) -> Entity | None:
        """The entity `verify_can_push` would collide with at `path`, if any."""
        for scope in self._declaration_scopes():
            if path in scope:
                return scope.entities[path]
        return None

    def _declaration_scopes(self) -> Iterator[Scope]:
        for scope in reversed(self.scopes):
            yield scope
            if not scope.namespace:
                return

    # Entities

    def push_type(self, type_: Type, path: FullIdentPath | None = None) -> None:
        path = path or type_.get_name()
        if path is None:
            raise InternalError(f"Cannot register anonymous type `{type_}`")
        self.scopes[-1].push(path, type_)

    def push_var(self, var: Var) -> None:
        self.scopes[-1].push(var.name, var)

    def push_fun(self, fun: Fun) -> None:
        self.scopes[-1].push(fun.name, fun)

    def push_namespace(self, ns: Namespace) -> None:
        self.scopes[-1].push(ns.name, ns)

    def get_entity(
        self, name: IdentPath, top_only: bool = False, range: Range | None = None
    ) -> tuple[FullIdentPath, Entity] | None:
        """Looks an existing entity up, preferring the innermost scope.

        Raises:
            ResolutionError: If the path cannot be resolved at all.
        """
        path = self.resolve(name, True, range)
        for scope in reversed(self.scopes):
            if path in scope:
                return path, scope.entities[path]
            if top_only:
                break
        return None

    def _lookup(self, name: IdentPath, top_only: bool) -> Entity | None:
        try:
            found = self.get_entity(name, top_only)
        except ResolutionError:
            return None
        return found[1] if found is not None else None

    def get_type(self, name: IdentPath, top_only: bool = False) -> Type | None:
        """The type declared at `name`, or None if it is unknown or not a type."""
        found = self._lookup(name, top_only)
        return found if isinstance(found, Type) else None

    def get_var(self, name: IdentPath, top_only: bool = False) -> Var | None:
        found = self._lookup(name, top_only)
        return found if isinstance(found, Var) else None

    # Scopes

    def push_scope(
        self,
        name: IdentPath | None = None,
        function: bool = False,
        namespace: bool = False,
        return_type: Type | None = None,
    ) -> Scope:
        bound = self.resolve(name, False) if name is not None else None
        scope = Scope(bound, function, namespace, return_type)
        self.scopes.append(scope)
        logger.debug("Pushed scope %s (depth %d)", bound, len(self.scopes))
        return scope

    def pop_scope(self) -> Scope:
        """
        Pops the innermost scope; a namespace scope hands its entities to its parent.

        Raises:
            InternalError: If this would pop the root scope.
        """
        if len(self.scopes) <= 1:
            raise InternalError("Scope stack is empty (tried to pop the root scope)")
        scope = self.scopes.pop()
        if scope.namespace:
            self.scopes[-1].entities.update(scope.entities)
        logger.debug("Popped scope %s (depth %d)", scope.name, len(self.scopes))
        return scope

    @contextmanager
    def scope(
        self,
        name: IdentPath | None = None,
        function: bool = False,
        namespace: bool = False,
        return_type: Type | None = None,
    ) -> Iterator[Scope]:
        pushed = self.push_scope(name, function, namespace, return_type)
        try:
            yield pushed
        finally:
            self.pop_scope()

    def is_root_scope(self) -> bool:
        return len(self.scopes) == 1

    def scope_bases(self) -> list[FullIdentPath]:
        """For each scope, its own name or else that of the nearest named scope below it."""
        bases: list[FullIdentPath] = []
        base = FullIdentPath(())
        for scope in self.scopes:
            if scope.name is not None:
                base = scope.name
            bases.append(base)
        return bases

    def function_scope(self) -> Scope | None:
        for scope in reversed(self.scopes):
            if scope.function:
                return scope
        return None

    def is_export_level(self) -> bool:
        """True when every open scope is the root or a namespace body."""
        return all(scope.namespace for scope in self.scopes[1:])

"""
Identifier paths for GDML.

`IdentPath` is an identifier as written in source (`x`, `a::b::x`, `::x`).
`FullIdentPath` is the root-anchored, fully qualified form used as the key of
every entity table. Converting one into the other depends on the scope the
identifier appears in; the path-level half of that algorithm lives here, the
scope-walking half in `gdml_state.UnitParser.resolve`.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

SEPARATOR = "::"


@dataclass(frozen=True)
class IdentPath:
    """An identifier as written.

    Attributes:
        name (str): The final segment.
        path (tuple[str, ...]): Preceding segments, outermost first.
        absolute (bool): True when written with a leading `::`.
    """

    name: str
    path: tuple[str, ...] = ()
    absolute: bool = False

    @classmethod
    def parse(cls, text: str) -> IdentPath:
        """Builds a path from its `::`-separated spelling."""
        absolute = text.startswith(SEPARATOR)
        parts = text[len(SEPARATOR):].split(SEPARATOR) if absolute else text.split(SEPARATOR)
        return cls(parts[-1], tuple(parts[:-1]), absolute)

    def is_single(self) -> bool:
        return not self.path and not self.absolute

    def components(self) -> tuple[str, ...]:
        return self.path + (self.name,)

    def __str__(self) -> str:
        text = SEPARATOR.join(self.components())
        return SEPARATOR + text if self.absolute else text


@dataclass(frozen=True, init=False)
class FullIdentPath:
    """A fully qualified path; structural equality and hashing."""

    segments: tuple[str, ...]

    def __init__(self, segments: Iterable[str]) -> None:
        object.__setattr__(self, "segments", tuple(segments))

    @classmethod
    def of(cls, path: IdentPath) -> FullIdentPath:
        return cls(path.components())

    @property
    def name(self) -> str:
        return self.segments[-1] if self.segments else ""

    def parent(self) -> FullIdentPath:
        return FullIdentPath(self.segments[:-1])

    def join(self, segment: str) -> FullIdentPath:
        return FullIdentPath(self.segments + (segment,))

    def resolve(
        self,
        path: IdentPath,
        existing: bool,
        exists: Callable[[FullIdentPath], bool] | None = None,
    ) -> FullIdentPath | None:
        """
        Resolves `path` relative to this path.

        A declaration (`existing=False`) appends the path textually. A lookup
        (`existing=True`) walks upward from this path towards the root and
        returns the first candidate `exists` accepts, so a name declared in an
        enclosing namespace is found from inside a nested one.

        Args:
            path: The identifier as written.
            existing: Whether the path must denote an already declared entity.
            exists: Predicate telling whether an entity is declared at a path.
                Without one every candidate is accepted.

        Returns:
            The resolved path, or None when no candidate matches.
        """
        accept = exists or (lambda _: True)
        if path.absolute:
            candidate = FullIdentPath.of(path)
            return candidate if not existing or accept(candidate) else None
        if not existing:
            return FullIdentPath(self.segments + path.components())
        for depth in range(len(self.segments), -1, -1):
            candidate = FullIdentPath(self.segments[:depth] + path.components())
            if accept(candidate):
                return candidate
        return None

    def anchor(self, path: IdentPath) -> FullIdentPath | None:
        """
        Resolves a qualified `path` whose first segment names this entity.

        `ui::widgets` anchors `widgets::Button` to `ui::widgets::Button`.
        """
        if path.absolute or not path.path or not self.segments:
            return None
        if path.path[0] != self.segments[-1]:
            return None
        return FullIdentPath(self.segments[:-1] + path.components())

    def __str__(self) -> str:
        return SEPARATOR.join(self.segments)

    def __repr__(self) -> str:
        return f"FullIdentPath({str(self)!r})"

"""
Diagnostics for the GDML front end.

Source locations, diagnostic records and the exception taxonomy shared by the
lexer, parser, scope machinery and typechecker.

Classes:
    Position, Range: 1-based source locations.
    Level: Diagnostic severity (Info, Warning, Error).
    Message: One recorded diagnostic.
    GdmlError: Root of every error raised by the front end.

Error taxonomy:
    GdmlSyntaxError            token stream did not match the grammar
    ResolutionError            a path could not be resolved
        UnknownNamespace       no scope produced a match
    TypecheckError             semantic failure while typechecking a node
        UndefinedIdentifier
        DuplicateEntity
        TypeMismatch
        MissingRequiredProps
        UnknownMember
        CyclicAlias
        CyclicDependency
        UnresolvedType
    InternalError              invariant violation inside the compiler
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Position:
    line: int = 0
    col: int = 0

    def __str__(self) -> str:
        return f"{self.line}:{self.col}"


@dataclass(frozen=True)
class Range:
    """A half-open span of source text, optionally tagged with its source name."""

    start: Position = Position()
    end: Position = Position()
    src: str | None = None

    @classmethod
    def at(cls, line: int, col: int, src: str | None = None) -> Range:
        pos = Position(line, col)
        return cls(pos, pos, src)

    def to(self, other: Range) -> Range:
        """Returns the span covering this range and `other`."""
        return Range(self.start, other.end, self.src or other.src)

    def __str__(self) -> str:
        prefix = f"{self.src}:" if self.src else ""
        return f"{prefix}{self.start}"


class Level(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Message:
    """A single diagnostic.

    Attributes:
        level (Level): Severity.
        info (str): The main message.
        range (Range): Where the problem is.
        hint (str): Optional suggestion for fixing it.
        note (str): Optional extra context.
        code (str): Error class name, e.g. "TypeMismatch"; empty for plain logs.
    """

    level: Level
    info: str
    range: Range = Range()
    hint: str = ""
    note: str = ""
    code: str = ""

    def __str__(self) -> str:
        text = f"{self.range}: {self.level.value}: {self.info}"
        if self.hint:
            text += f"\n  hint: {self.hint}"
        if self.note:
            text += f"\n  note: {self.note}"
        return text


class GdmlError(Exception):
    """Base class for all front-end errors.

    Args:
        message (str): Description of the problem.
        range (Range, optional): Source range the error refers to.
        hint (str, optional): Suggested fix.
        note (str, optional): Additional context.
    """

    def __init__(
        self,
        message: str,
        range: Range | None = None,
        hint: str = "",
        note: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.range = range or Range()
        self.hint = hint
        self.note = note

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_message(self, level: Level = Level.ERROR) -> Message:
        return Message(level, self.message, self.range, self.hint, self.note, self.code)


class GdmlSyntaxError(GdmlError):
    pass


class ResolutionError(GdmlError):
    pass


class UnknownNamespace(ResolutionError):
    pass


class TypecheckError(GdmlError):
    pass


class UndefinedIdentifier(TypecheckError):
    pass


class DuplicateEntity(TypecheckError):
    pass


class TypeMismatch(TypecheckError):
    pass


class MissingRequiredProps(TypecheckError):
    pass


class UnknownMember(TypecheckError):
    pass


class CyclicAlias(TypecheckError):
    pass


class CyclicDependency(TypecheckError):
    pass


class UnresolvedType(TypecheckError):
    pass


class InternalError(GdmlError):
    pass

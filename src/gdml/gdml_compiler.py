"""
Top-level driver for compiling one GDML unit.

`Compiler` owns the source, the diagnostic log and the list of dependency
units. `compile()` runs lexing, parsing and typechecking through a
`UnitParser`, turns any unexpected exception into a single "Internal Compiler
Error" diagnostic, and publishes the resulting `ParsedSrc`.

The log supports nested checkpoints: `push_log_level()` records the current
log length and returns a token, `pop_messages(token)` drops everything logged
since, and `pop_log_level()` retires the most recent checkpoint.

Example:
    >>> compiler = Compiler.from_string("let x: int = 1")
    >>> compiler.compile().get_exported_types()
    []
    >>> compiler.success
    True
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from gdml.gdml_diagnostics import InternalError, Level, Message, Range
from gdml.gdml_state import ParsedSrc, Src, UnitParser

logger = logging.getLogger(__name__)

LOG_METHODS = {
    Level.INFO: logger.info,
    Level.WARNING: logger.warning,
    Level.ERROR: logger.error,
}


class Compiler:
    """
    Compiles a single source unit.

    Args:
        src (Src): The source to compile.
        dependencies (Iterable[ParsedSrc]): Compiled units whose exported types are visible.
    """

    def __init__(self, src: Src, dependencies: Iterable[ParsedSrc] = ()) -> None:
        self.src = src
        self.dependencies = list(dependencies)
        self.parsed: ParsedSrc | None = None
        self.messages: list[Message] = []
        self._levels: list[tuple[int, int]] = []
        self._next_level = 0

    @classmethod
    def from_string(
        cls, text: str, name: str = "<string>", dependencies: Iterable[ParsedSrc] = ()
    ) -> Compiler:
        return cls(Src(name, text), dependencies)

    @classmethod
    def from_file(cls, path: str | Path, dependencies: Iterable[ParsedSrc] = ()) -> Compiler:
        """
        Loads a source file. A file that cannot be read yields a compiler with
        an empty source and an error diagnostic already logged.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            compiler = cls(Src(str(path), ""), dependencies)
            compiler.log(
                Message(
                    Level.ERROR,
                    f"Unable to read file: {e}",
                    Range(src=str(path)),
                    code="FileError",
                )
            )
            return compiler
        return cls(Src(str(path), text), dependencies)

    def compile(self) -> ParsedSrc:
        """Parses and typechecks the unit, collecting diagnostics instead of raising."""
        if self.parsed is not None:
            return self.parsed
        if self.get_errors():
            self.parsed = ParsedSrc(self.src, None)
            self.parsed.publish()
            return self.parsed

        logger.debug("Compiling %s", self.src.name)
        try:
            self.parsed = UnitParser.parse(self, self.src, self.dependencies)
        except Exception as e:
            logger.debug("Internal compiler error in %s", self.src.name, exc_info=True)
            self._levels.clear()
            self.log(
                Message(
                    Level.ERROR,
                    f"Internal Compiler Error: {e}",
                    getattr(e, "range", None) or Range(src=self.src.name),
                    code=InternalError.__name__,
                )
            )
            self.parsed = ParsedSrc(self.src, None)
        self.parsed.publish()
        return self.parsed

    @property
    def success(self) -> bool:
        return not self.get_errors()

    # Diagnostic log

    def log(self, message: Message) -> None:
        self.messages.append(message)

    def push_log_level(self) -> int:
        """Opens a checkpoint at the current end of the log and returns its token."""
        token = self._next_level
        self._next_level += 1
        self._levels.append((token, len(self.messages)))
        return token

    def pop_log_level(self, level: int | None = None) -> None:
        """Retires the most recent checkpoint, keeping its messages.

        Raises:
            InternalError: If no checkpoint is open, or `level` is given and is
                not the most recent one.
        """
        if not self._levels:
            raise InternalError("pop_log_level called without an open checkpoint")
        if level is not None and self._levels[-1][0] != level:
            raise InternalError(
                f"Log checkpoint {level} retired out of order "
                f"(innermost is {self._levels[-1][0]})"
            )
        self._levels.pop()

    def pop_messages(self, level: int) -> list[Message]:
        """Discards and returns every message logged since checkpoint `level`."""
        for token, length in reversed(self._levels):
            if token == level:
                dropped = self.messages[length:]
                del self.messages[length:]
                return dropped
        raise InternalError(f"Log checkpoint {level} is not open")

    def get_messages(self) -> list[Message]:
        return list(self.messages)

    def get_errors(self) -> list[Message]:
        return [m for m in self.messages if m.level is Level.ERROR]

    def get_warnings(self) -> list[Message]:
        return [m for m in self.messages if m.level is Level.WARNING]

    def dispatch_logs(self) -> None:
        """Emits every recorded diagnostic through `logging`, then a summary line."""
        for message in self.messages:
            LOG_METHODS[message.level]("%s", message)
        errors = len(self.get_errors())
        warnings = len(self.get_warnings())
        summary = LOG_METHODS[Level.ERROR] if errors else LOG_METHODS[Level.INFO]
        summary("Finished with %d errors and %d warnings", errors, warnings)

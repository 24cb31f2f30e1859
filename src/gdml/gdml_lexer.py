"""
Lexical analyzer for the GDML language.

Converts raw source text into the positioned token stream consumed by the
parser.

Classes:
    CharacterStream: Stream abstraction for reading characters with line/column tracking.
    Token: A single token with type, value and source range.
    Lexer: Converts a CharacterStream into a sequence of tokens.

Features:
    - Skips whitespace, `//` line comments and `/* */` block comments
    - Longest-match recognition of operators and punctuation (`::`, `->`, `<=`, ...)
    - Recognizes:
        * Identifiers and keywords
        * Numbers (integer and float)
        * Strings (single or double quoted, with escape sequences)

Raises:
    GdmlSyntaxError: On malformed floats, unterminated strings or unterminated comments.

Example:
    >>> lexer = Lexer(CharacterStream("let x = 42"))
    >>> lexer.next_token()
    Token(LET, let)
"""

from typing import Any

from gdml.gdml_constants import token_hashmap
from gdml.gdml_diagnostics import GdmlSyntaxError, Position, Range

ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\", '"': '"', "'": "'"}


class CharacterStream:
    """
    Reads characters from a source string while tracking line and column.

    Attributes:
        source (str): The input source string.
        position (int): Current index in the source.
        line (int): Current line number (1-indexed).
        column (int): Current column number (1-indexed).
    """

    def __init__(self, source: str, position: int = 0, line: int = 1, column: int = 1):
        self.source = source
        self.position = position
        self.line = line
        self.column = column

    def next(self) -> str:
        """
        Consumes and returns the next character in the stream.

        Raises:
            EOFError: If reading past the end of the source.
        """
        if self.position >= len(self.source):
            raise EOFError(
                f"Attempted to read past end of source at position={self.position}, line={self.line}"
            )
        char = self.source[self.position]
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.position += 1
        return char

    def peek(self, offset: int = 0) -> str:
        """Returns the character `offset` places ahead, or "" when out of bounds."""
        index = self.position + offset
        if index < 0 or index >= len(self.source):
            return ""
        return self.source[index]

    def end_of_file(self) -> bool:
        return self.position >= len(self.source)

    def location(self) -> Position:
        return Position(self.line, self.column)


class Token:
    """A single lexical token.

    Attributes:
        type (str): The canonical token type (e.g. 'IDENT', 'NUMBER', 'EOF').
        value (str): The token text (string literals are unescaped).
        line (int): 1-based line where the token starts.
        col (int): 1-based column where the token starts.
        end_line (int): Line just past the token.
        end_col (int): Column just past the token.
    """

    def __init__(
        self,
        type_: str,
        value: str,
        line: int = 0,
        col: int = 0,
        end_line: int | None = None,
        end_col: int | None = None,
    ):
        self.type = type_
        self.value = value
        self.line = line
        self.col = col
        self.end_line = line if end_line is None else end_line
        self.end_col = col + len(value) if end_col is None else end_col

    @property
    def range(self) -> Range:
        return Range(Position(self.line, self.col), Position(self.end_line, self.end_col))

    def __repr__(self) -> str:
        return f"Token({self.type}, {self.value})"

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, Token)
            and self.type == other.type
            and self.value == other.value
            and self.line == other.line
            and self.col == other.col
        )

    def __hash__(self) -> int:
        return hash((self.type, self.value, self.line, self.col))


class Lexer:
    """Lexical analyzer for GDML.

    Attributes:
        stream (CharacterStream): The source stream to tokenize.
    """

    def __init__(self, stream: CharacterStream) -> None:
        self.stream = stream

    def peek(self, offset: int = 0) -> str:
        return self.stream.peek(offset)

    def advance(self) -> str:
        return self.stream.next()

    def _error(self, message: str, start: Position) -> GdmlSyntaxError:
        return GdmlSyntaxError(message, Range(start, self.stream.location()))

    def skip_whitespace(self) -> None:
        """Skips whitespace and both comment styles."""
        while not self.stream.end_of_file():
            ch = self.peek()
            if ch in " \t\r\n":
                self.advance()
            elif ch == "/" and self.peek(1) == "/":
                while not self.stream.end_of_file() and self.peek() != "\n":
                    self.advance()
            elif ch == "/" and self.peek(1) == "*":
                start = self.stream.location()
                self.advance()
                self.advance()
                while not (self.peek() == "*" and self.peek(1) == "/"):
                    if self.stream.end_of_file():
                        raise self._error("Unterminated block comment", start)
                    self.advance()
                self.advance()
                self.advance()
            else:
                break

    def match_operator(self) -> Token | None:
        """Attempts to match the longest operator at the current position."""
        line, col = self.stream.line, self.stream.column
        max_token = None
        candidate = ""

        for i in range(3):
            ch = self.stream.peek(i)
            if ch == "":
                break
            candidate += ch
            if candidate in token_hashmap:
                max_token = candidate

        if max_token:
            for _ in range(len(max_token)):
                self.advance()
            return Token(token_hashmap[max_token], max_token, line, col)

        return None

    def read_string(self, start: Position) -> str:
        quote = self.advance()
        val = ""
        while not self.stream.end_of_file() and self.peek() != quote:
            ch = self.advance()
            if ch == "\\":
                if self.stream.end_of_file():
                    break
                esc = self.advance()
                val += ESCAPES.get(esc, esc)
            elif ch == "\n":
                raise self._error("Unterminated string", start)
            else:
                val += ch
        if self.peek() != quote:
            raise self._error("Unterminated string", start)
        self.advance()
        return val

    def next_token(self) -> Token:
        """Consumes and returns the next Token from the stream.

        Raises:
            GdmlSyntaxError: On an unterminated string/comment or a malformed float.
        """
        self.skip_whitespace()

        start = self.stream.location()
        if self.stream.end_of_file():
            return Token("EOF", "EOF", start.line, start.col, start.line, start.col)

        ch = self.peek()

        if ch.isalpha() or ch == "_":
            ident = ""
            while self.peek().isalnum() or self.peek() == "_":
                ident += self.advance()
            type_ = token_hashmap.get(ident, "IDENT")
            return self._finish(type_, ident, start)

        if ch.isdigit():
            num = ""
            has_dot = False
            while self.peek().isdigit() or (self.peek() == "." and self.peek(1).isdigit()):
                if self.peek() == ".":
                    if has_dot:
                        raise self._error("Invalid float format", start)
                    has_dot = True
                num += self.advance()
            return self._finish("FLOAT" if has_dot else "NUMBER", num, start)

        if ch in ('"', "'"):
            return self._finish("STRING", self.read_string(start), start)

        token = self.match_operator()
        if token:
            token.end_line, token.end_col = self.stream.line, self.stream.column
            return token

        return self._finish("ERROR", self.advance(), start)

    def _finish(self, type_: str, value: str, start: Position) -> Token:
        end = self.stream.location()
        return Token(type_, value, start.line, start.col, end.line, end.col)

    def tokenize(self) -> list[Token]:
        """Lexes the whole stream; the returned list always ends with an EOF token."""
        tokens = []
        while True:
            tok = self.next_token()
            tokens.append(tok)
            if tok.type == "EOF":
                return tokens


def tokenize(source: str) -> list[Token]:
    return Lexer(CharacterStream(source)).tokenize()


__all__ = ["CharacterStream", "Lexer", "Token", "token_hashmap", "tokenize"]

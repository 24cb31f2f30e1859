import pytest
from hypothesis import given
from hypothesis import strategies as st

from gdml.gdml_constants import KEYWORDS
from gdml.gdml_diagnostics import GdmlSyntaxError
from gdml.gdml_lexer import CharacterStream, Lexer, Token, tokenize


def types_of(source: str) -> list[str]:
    return [tok.type for tok in tokenize(source)][:-1]


def test_single_char_tokens() -> None:
    code = "{ } ( ) [ ] , ; : . = ? & + - * / % < > !"
    expected = [
        "LBRACE",
        "RBRACE",
        "LPAREN",
        "RPAREN",
        "LBRACK",
        "RBRACK",
        "COMMA",
        "SEMI",
        "COLON",
        "DOT",
        "ASSIGN",
        "QUESTION",
        "AMP",
        "PLUS",
        "SUB",
        "MULT",
        "DIV",
        "MOD",
        "LT",
        "GT",
        "NOT",
    ]
    lexer = Lexer(CharacterStream(code))
    types = [lexer.next_token().type for _ in expected]
    assert types == expected


@pytest.mark.parametrize(  # type: ignore[misc]
    "code,expected",
    [
        ("::", "SCOPE"),
        ("->", "ARROW"),
        ("==", "EQ"),
        ("!=", "NE"),
        ("<=", "LE"),
        (">=", "GE"),
        ("&&", "AND"),
        ("||", "OR"),
    ],
)
def test_multi_char_operators_use_longest_match(code: str, expected: str) -> None:
    assert types_of(code) == [expected]


def test_scope_operator_between_identifiers() -> None:
    assert types_of("ui::Label") == ["IDENT", "SCOPE", "IDENT"]
    assert types_of("::root") == ["SCOPE", "IDENT"]


def test_keywords() -> None:
    assert types_of("struct node enum alias namespace fun extern let return") == [
        "STRUCT",
        "NODE",
        "ENUM",
        "ALIAS",
        "NAMESPACE",
        "FUN",
        "EXTERN",
        "LET",
        "RETURN",
    ]
    assert types_of("true false") == ["BOOL", "BOOL"]


def test_string_token() -> None:
    tok = Lexer(CharacterStream('"hello world"')).next_token()
    assert tok.type == "STRING"
    assert tok.value == "hello world"


def test_single_quoted_string_with_escapes() -> None:
    tok = tokenize(r"'a\n\'b\''")[0]
    assert tok.type == "STRING"
    assert tok.value == "a\n'b'"


def test_number_and_float_tokens() -> None:
    tokens = tokenize("123 4.5")
    assert (tokens[0].type, tokens[0].value) == ("NUMBER", "123")
    assert (tokens[1].type, tokens[1].value) == ("FLOAT", "4.5")


def test_trailing_dot_is_member_access() -> None:
    assert types_of("1.x") == ["NUMBER", "DOT", "IDENT"]


def test_comments_are_skipped() -> None:
    code = "let // line comment\n/* block\ncomment */ x"
    assert types_of(code) == ["LET", "IDENT"]


def test_unterminated_block_comment() -> None:
    with pytest.raises(GdmlSyntaxError, match="Unterminated block comment"):
        tokenize("/* never closed")


def test_unterminated_string() -> None:
    with pytest.raises(GdmlSyntaxError, match="Unterminated string"):
        tokenize('"oops')


def test_newline_in_string_is_unterminated() -> None:
    with pytest.raises(GdmlSyntaxError):
        tokenize('"line\nbreak"')


def test_unknown_character_becomes_error_token() -> None:
    tokens = tokenize("let @")
    assert tokens[1].type == "ERROR"
    assert tokens[1].value == "@"


def test_positions_and_ranges() -> None:
    tokens = tokenize("let x\n  = 10")
    assert (tokens[0].line, tokens[0].col) == (1, 1)
    assert (tokens[1].line, tokens[1].col) == (1, 5)
    assert (tokens[2].line, tokens[2].col) == (2, 3)
    assert (tokens[3].line, tokens[3].col, tokens[3].end_col) == (2, 5, 7)
    assert str(tokens[3].range.end) == "2:7"


def test_eof_is_always_last() -> None:
    assert tokenize("")[-1].type == "EOF"
    assert tokenize("x")[-1].type == "EOF"


def test_character_stream_next_past_end() -> None:
    stream = CharacterStream("a")
    assert stream.next() == "a"
    with pytest.raises(EOFError):
        stream.next()


def test_token_equality_and_hash() -> None:
    a = Token("IDENT", "x", 1, 1)
    b = Token("IDENT", "x", 1, 1)
    assert a == b
    assert hash(a) == hash(b)
    assert a != Token("IDENT", "x", 1, 2)
    assert repr(a) == "Token(IDENT, x)"


@given(st.integers(min_value=0, max_value=10**12))  # type: ignore[misc]
def test_integers_lex_as_numbers(n: int) -> None:
    tok = tokenize(str(n))[0]
    assert tok.type == "NUMBER"
    assert int(tok.value) == n


@given(st.from_regex(r"[A-Za-z_][A-Za-z0-9_]{0,12}", fullmatch=True))  # type: ignore[misc]
def test_identifiers_or_keywords(name: str) -> None:
    tok = tokenize(name)[0]
    if name in KEYWORDS:
        assert tok.type != "IDENT"
    else:
        assert tok.type == "IDENT"
        assert tok.value == name

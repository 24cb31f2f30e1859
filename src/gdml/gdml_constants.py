"""
Shared constants for the GDML front end.

Token tables used by the lexer and parser, the binary operator precedence
table, the names of the built-in primitive types, and the limits that keep
alias realization and grammar recursion bounded.

Exports:
    - token_hashmap: lexeme -> canonical token type
    - KEYWORDS: reserved words
    - LITERAL_TOKENS: token types that start a literal
    - STATEMENT_TOKENS: keyword token types that start a statement
    - BINARY_PRECEDENCE: operator token type -> binding strength
    - UNARY_OPS: operator token types usable as prefixes
    - PRIMITIVE_NAMES: source spelling of the primitive types
    - MAX_ALIAS_DEPTH, MAX_NESTING_DEPTH: recursion guards
"""

token_hashmap: dict[str, str] = {
    # Keywords
    "struct": "STRUCT",
    "node": "NODE",
    "enum": "ENUM",
    "alias": "ALIAS",
    "namespace": "NAMESPACE",
    "fun": "FUN",
    "extern": "EXTERN",
    "let": "LET",
    "return": "RETURN",
    "true": "BOOL",
    "false": "BOOL",
    # Punctuation
    "{": "LBRACE",
    "}": "RBRACE",
    "(": "LPAREN",
    ")": "RPAREN",
    "[": "LBRACK",
    "]": "RBRACK",
    ",": "COMMA",
    ";": "SEMI",
    ":": "COLON",
    "::": "SCOPE",
    ".": "DOT",
    "->": "ARROW",
    "=": "ASSIGN",
    "?": "QUESTION",
    "&": "AMP",
    # Operators
    "+": "PLUS",
    "-": "SUB",
    "*": "MULT",
    "/": "DIV",
    "%": "MOD",
    "==": "EQ",
    "!=": "NE",
    "<": "LT",
    "<=": "LE",
    ">": "GT",
    ">=": "GE",
    "&&": "AND",
    "||": "OR",
    "!": "NOT",
}

KEYWORDS: frozenset[str] = frozenset(
    k for k in token_hashmap if k.isalpha()
)

LITERAL_TOKENS: frozenset[str] = frozenset({"NUMBER", "FLOAT", "STRING", "BOOL"})

# Tokens that can only begin a statement; error recovery resumes at them.
STATEMENT_TOKENS: frozenset[str] = frozenset(
    {"STRUCT", "NODE", "ENUM", "ALIAS", "NAMESPACE", "FUN", "EXTERN", "LET", "RETURN"}
)

# Higher binds tighter; all binary operators are left associative.
BINARY_PRECEDENCE: dict[str, int] = {
    "OR": 1,
    "AND": 2,
    "EQ": 3,
    "NE": 3,
    "LT": 4,
    "LE": 4,
    "GT": 4,
    "GE": 4,
    "PLUS": 5,
    "SUB": 5,
    "MULT": 6,
    "DIV": 6,
    "MOD": 6,
}

UNARY_OPS: frozenset[str] = frozenset({"SUB", "NOT", "AMP"})

# Source spelling of each operator token, used by debug dumps and emitters.
OPERATOR_SYMBOLS: dict[str, str] = {
    v: k for k, v in token_hashmap.items() if v in BINARY_PRECEDENCE or v in UNARY_OPS
}

PRIMITIVE_NAMES: tuple[str, ...] = ("void", "bool", "int", "float", "string")

MAX_ALIAS_DEPTH = 64
MAX_NESTING_DEPTH = 128

SOURCE_EXTENSION = ".gdml"

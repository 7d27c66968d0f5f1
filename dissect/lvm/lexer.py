from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from dissect.lvm.exceptions import LexError

if TYPE_CHECKING:
    from collections.abc import Iterator


class TokenType(Enum):
    COMMENT = "Comment"
    NUMBER = "Number"
    IDENT = "Ident"
    STRING = "String"
    PUNCT = "Punct"
    WHITESPACE = "Whitespace"
    EOF = "EOF"


@dataclass(frozen=True)
class Position:
    offset: int
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    position: Position

    def __repr__(self) -> str:
        return f"<Token {self.type.value} {self.value!r} at {self.position}>"


# Order matters, the first rule that matches at a position wins
RULES = [
    (TokenType.COMMENT, r"(?:#|//)[^\n]*"),
    (TokenType.NUMBER, r"-?(?:\d*\.)?\d+(?![0-9a-zA-Z_-])"),
    (TokenType.IDENT, r"[0-9a-zA-Z_-]+"),
    (TokenType.STRING, r'"(?:\\.|[^"\\])*"'),
    (TokenType.PUNCT, r"""[\[\]!@#$%^&*()+_={}|:;"'<,>.?/]"""),
    (TokenType.WHITESPACE, r"[ \t\r\n\x00]+"),
]

RE_TOKEN = re.compile("|".join(f"(?P<{type_.name}>{pattern})" for type_, pattern in RULES))
RE_ESCAPE = re.compile(r"\\(.)", re.DOTALL)

ELIDED = (TokenType.COMMENT, TokenType.WHITESPACE)


def unquote(value: str) -> str:
    """Strip the surrounding quotes of a string token and resolve its escapes."""
    return RE_ESCAPE.sub(r"\1", value[1:-1])


def tokenize(text: str) -> Iterator[Token]:
    """Yield the tokens of an LVM metadata text.

    Comments and whitespace are consumed but not emitted. The stream always
    ends with a single ``EOF`` token. Every call starts a new pass over ``text``.

    Raises:
        LexError: If no token rule matches at a position that still has input left.
    """
    offset = 0
    line = 1
    line_start = 0

    while offset < len(text):
        match = RE_TOKEN.match(text, offset)
        if not match:
            position = Position(offset, line, offset - line_start + 1)
            raise LexError(f"Invalid character {text[offset]!r}", position)

        type_ = TokenType[match.lastgroup]
        value = match.group()
        if type_ not in ELIDED:
            yield Token(type_, value, Position(offset, line, offset - line_start + 1))

        if newlines := value.count("\n"):
            line += newlines
            line_start = offset + value.rindex("\n") + 1
        offset = match.end()

    yield Token(TokenType.EOF, "", Position(offset, line, offset - line_start + 1))

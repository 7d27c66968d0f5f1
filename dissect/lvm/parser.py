from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from itertools import islice
from typing import TYPE_CHECKING, Any, Union

from dissect.lvm.exceptions import ParseError
from dissect.lvm.lexer import Position, Token, TokenType, tokenize, unquote

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)
log.setLevel(os.getenv("DISSECT_LOG_LVM", "CRITICAL"))


@dataclass
class Scalar:
    value: int | float | str
    position: Position | None = field(default=None, compare=False, repr=False)

    def to_python(self) -> int | float | str:
        return self.value


@dataclass
class Array:
    values: list[Value]
    position: Position | None = field(default=None, compare=False, repr=False)

    def to_python(self) -> list:
        return [value.to_python() for value in self.values]


@dataclass
class Section:
    """A named scope in the metadata text, or the document root.

    Entries map a key to either a :class:`Scalar`/:class:`Array` (``key = value``)
    or to a nested :class:`Section` (``name { ... }``), in source order.
    """

    name: str | None
    entries: dict[str, Value] = field(default_factory=dict)
    position: Position | None = field(default=None, compare=False, repr=False)

    def __getitem__(self, key: str) -> Value:
        return self.entries[key]

    def __contains__(self, key: str) -> bool:
        return key in self.entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, key: str, default: Any = None) -> Value | Any:
        return self.entries.get(key, default)

    def items(self) -> Iterator[tuple[str, Value]]:
        return iter(self.entries.items())

    @property
    def sections(self) -> list[Section]:
        return [value for value in self.entries.values() if isinstance(value, Section)]

    def to_python(self) -> dict[str, Any]:
        return {key: value.to_python() for key, value in self.entries.items()}

    to_dict = to_python


Value = Union[Scalar, Array, Section]


class Parser:
    """Recursive descent parser for the LVM metadata text format.

    Grammar::

        Document := Section*
        Section  := Ident ( '=' Value | '{' Section* '}' )
        Value    := Number | String | Array
        Array    := '[' ( Value ( ',' Value )* )? ']'
    """

    def __init__(self, tokens: Iterator[Token]):
        self._tokens = tokens
        self._buffer: list[Token] = []

    def peek(self, n: int = 0) -> Token:
        """Look ahead ``n`` tokens without consuming them."""
        if len(self._buffer) <= n:
            self._buffer.extend(islice(self._tokens, n + 1 - len(self._buffer)))
        # The EOF token is sticky
        return self._buffer[min(n, len(self._buffer) - 1)]

    def next(self) -> Token:
        token = self.peek()
        if token.type != TokenType.EOF:
            self._buffer.pop(0)
        return token

    def expect(self, type_: TokenType, value: str | None = None, context: str | None = None) -> Token:
        token = self.next()
        if token.type != type_ or (value is not None and token.value != value):
            expected = repr(value) if value is not None else type_.value
            self._error(token, expected, context)
        return token

    def parse_document(self) -> Section:
        root = Section(None, position=self.peek().position)
        while self.peek().type != TokenType.EOF:
            self.parse_entry(root)
        return root

    def parse_entry(self, parent: Section) -> None:
        name = self.expect(TokenType.IDENT, context="section or key name")
        operator = self.peek()

        if operator.type == TokenType.PUNCT and operator.value == "=":
            self.next()
            value = self.parse_value()
        elif operator.type == TokenType.PUNCT and operator.value == "{":
            self.next()
            value = Section(name.value, position=name.position)
            while not self._at_punct("}"):
                if self.peek().type == TokenType.EOF:
                    self._error(self.peek(), "'}'", f"section {name.value!r}")
                self.parse_entry(value)
            self.next()
        else:
            self._error(operator, "'=' or '{'", f"after {name.value!r}")

        if name.value in parent.entries:
            log.debug("Duplicate key %r in section %r at %s, overwriting", name.value, parent.name, name.position)
        parent.entries[name.value] = value

    def parse_value(self) -> Scalar | Array:
        token = self.peek()

        if token.type == TokenType.NUMBER:
            self.next()
            number = float(token.value) if "." in token.value else int(token.value)
            return Scalar(number, position=token.position)

        if token.type == TokenType.STRING:
            self.next()
            return Scalar(unquote(token.value), position=token.position)

        if self._at_punct("["):
            return self.parse_array()

        self._error(token, "value")

    def parse_array(self) -> Array:
        start = self.expect(TokenType.PUNCT, "[")
        values = []

        if not self._at_punct("]"):
            values.append(self.parse_value())
            while self._at_punct(","):
                self.next()
                values.append(self.parse_value())

        self.expect(TokenType.PUNCT, "]", context="array")
        return Array(values, position=start.position)

    def _at_punct(self, value: str) -> bool:
        token = self.peek()
        return token.type == TokenType.PUNCT and token.value == value

    def _error(self, token: Token, expected: str, context: str | None = None) -> None:
        found = "end of input" if token.type == TokenType.EOF else repr(token.value)
        message = f"Unexpected {found}, expected {expected}"
        if context:
            message += f" ({context})"
        raise ParseError(message, token.position, found=token.value, expected=expected)


def parse_metadata(text: str) -> Section:
    """Parse LVM metadata text into a document tree.

    Raises:
        LexError: If the text contains characters that do not form a token.
        ParseError: If the tokens do not match the grammar.
    """
    return Parser(tokenize(text)).parse_document()

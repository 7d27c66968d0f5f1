from __future__ import annotations

import pytest

from dissect.lvm.exceptions import LexError
from dissect.lvm.lexer import Position, TokenType, tokenize, unquote


def _types_values(text: str) -> list[tuple[TokenType, str]]:
    return [(token.type, token.value) for token in tokenize(text)]


def test_tokenize() -> None:
    text = 'vg0 {\n\tid = "abc" # comment\n\textents = [1, 2.5]\n}'

    assert _types_values(text) == [
        (TokenType.IDENT, "vg0"),
        (TokenType.PUNCT, "{"),
        (TokenType.IDENT, "id"),
        (TokenType.PUNCT, "="),
        (TokenType.STRING, '"abc"'),
        (TokenType.IDENT, "extents"),
        (TokenType.PUNCT, "="),
        (TokenType.PUNCT, "["),
        (TokenType.NUMBER, "1"),
        (TokenType.PUNCT, ","),
        (TokenType.NUMBER, "2.5"),
        (TokenType.PUNCT, "]"),
        (TokenType.PUNCT, "}"),
        (TokenType.EOF, ""),
    ]


def test_tokenize_positions() -> None:
    tokens = list(tokenize('a = 1\n  b = "x"'))

    assert tokens[0].position == Position(0, 1, 1)
    assert tokens[2].position == Position(4, 1, 5)
    assert tokens[3].position == Position(8, 2, 3)
    assert tokens[5].position == Position(12, 2, 7)
    assert tokens[-1].type == TokenType.EOF
    assert tokens[-1].position == Position(15, 2, 10)
    assert str(tokens[3].position) == "2:3"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        pytest.param("123", [(TokenType.NUMBER, "123")], id="integer"),
        pytest.param(".5", [(TokenType.NUMBER, ".5")], id="fraction"),
        pytest.param("-1", [(TokenType.NUMBER, "-1")], id="negative"),
        pytest.param("lv_test", [(TokenType.IDENT, "lv_test")], id="ident"),
        pytest.param("thin-pool", [(TokenType.IDENT, "thin-pool")], id="ident-hyphen"),
        pytest.param("1vg", [(TokenType.IDENT, "1vg")], id="ident-leading-digit"),
        pytest.param("segment1", [(TokenType.IDENT, "segment1")], id="ident-trailing-digit"),
        pytest.param(r'"a \"quoted\" word"', [(TokenType.STRING, r'"a \"quoted\" word"')], id="string-escaped"),
        pytest.param('"# not a comment"', [(TokenType.STRING, '"# not a comment"')], id="string-hash"),
        pytest.param("// comment\nx", [(TokenType.IDENT, "x")], id="slash-comment"),
        pytest.param("# comment", [], id="comment-only"),
        pytest.param(" \t\r\n\x00", [], id="whitespace-only"),
        pytest.param("", [], id="empty"),
    ],
)
def test_tokenize_rules(text: str, expected: list[tuple[TokenType, str]]) -> None:
    assert _types_values(text) == [*expected, (TokenType.EOF, "")]


def test_tokenize_restart() -> None:
    text = "a = [1, 2]"
    assert list(tokenize(text)) == list(tokenize(text))


def test_tokenize_lazy() -> None:
    tokens = tokenize("a = 1 \x01")
    assert next(tokens).value == "a"
    assert next(tokens).value == "="
    assert next(tokens).value == "1"

    with pytest.raises(LexError) as exc:
        next(tokens)
    assert exc.value.position == Position(6, 1, 7)


def test_tokenize_invalid() -> None:
    with pytest.raises(LexError, match=r"Invalid character '~' at 2:5"):
        list(tokenize("a = 1\nb = ~"))


def test_tokenize_unterminated_string() -> None:
    # A lone quote is punctuation, the parser rejects it
    assert _types_values('a = "abc')[2:4] == [(TokenType.PUNCT, '"'), (TokenType.IDENT, "abc")]


def test_unquote() -> None:
    assert unquote('"abc"') == "abc"
    assert unquote(r'"a \"b\" \\ c"') == 'a "b" \\ c'
    assert unquote('""') == ""

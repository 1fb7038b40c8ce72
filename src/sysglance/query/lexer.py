"""Tokenizer for the process filter language."""

from dataclasses import dataclass
from enum import Enum

from sysglance.errors import ParseError


class TokenKind(Enum):
    WORD = "word"
    STRING = "string"  # Quoted; never a keyword
    OPERATOR = "operator"
    LPAREN = "("
    RPAREN = ")"
    OR = "or"
    AND = "and"
    END = "end"


@dataclass(slots=True, frozen=True)
class Token:
    kind: TokenKind
    text: str  # Unquoted text for STRING tokens
    position: int


_OPERATORS = (">=", "<=", "!=", "==", "=", ">", "<")
_QUOTES = "\"'"
_KEYWORDS = {
    "or": TokenKind.OR,
    "||": TokenKind.OR,
    "and": TokenKind.AND,
    "&&": TokenKind.AND,
}


def _operator_at(text: str, i: int) -> str | None:
    for op in _OPERATORS:
        if text.startswith(op, i):
            return op
    return None


def _read_string(text: str, start: int) -> tuple[str, int]:
    """Read a quoted string starting at text[start]; return (value, end index)."""
    quote = text[start]
    chars: list[str] = []
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text) and text[i + 1] in (quote, "\\"):
            chars.append(text[i + 1])
            i += 2
            continue
        if ch == quote:
            return "".join(chars), i + 1
        chars.append(ch)
        i += 1
    raise ParseError(start, "unterminated quoted string")


def _word_end(text: str, start: int) -> int:
    i = start
    while i < len(text):
        ch = text[i]
        if ch.isspace() or ch in "()" or ch in _QUOTES:
            break
        if _operator_at(text, i) is not None:
            break
        i += 1
    return i


def tokenize(text: str) -> list[Token]:
    """Split a query into tokens. The last token is always END."""
    tokens: list[Token] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch.isspace():
            i += 1
        elif ch == "(":
            tokens.append(Token(TokenKind.LPAREN, ch, i))
            i += 1
        elif ch == ")":
            tokens.append(Token(TokenKind.RPAREN, ch, i))
            i += 1
        elif ch in _QUOTES:
            value, end = _read_string(text, i)
            tokens.append(Token(TokenKind.STRING, value, i))
            i = end
        elif (op := _operator_at(text, i)) is not None:
            tokens.append(Token(TokenKind.OPERATOR, op, i))
            i += len(op)
        else:
            end = _word_end(text, i)
            word = text[i:end]
            kind = _KEYWORDS.get(word.lower(), TokenKind.WORD)
            tokens.append(Token(kind, word, i))
            i = end
    tokens.append(Token(TokenKind.END, "", len(text)))
    return tokens

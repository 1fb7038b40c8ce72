"""Recursive-descent parser for the process filter language.

Grammar::

    expr      := and_group ( "or" and_group )*
    and_group := primary ( ["and"] primary )*
    primary   := "(" expr ")" | term
    term      := FIELD OPERATOR value
               | TEXT_FIELD value
               | WORD | STRING

Whitespace between terms (or parenthesised groups) means AND, and binds
tighter than "or". So ``(a) (b)`` is ``a AND b`` and ``a or b c`` is
``a OR (b AND c)``.
"""

import re
from dataclasses import dataclass

from sysglance.errors import ParseError
from sysglance.query.ast import (
    FIELD_KEYWORDS,
    And,
    Comparison,
    Field,
    FieldKind,
    Node,
    Operator,
    Or,
    StringMatch,
)
from sysglance.query.lexer import Token, TokenKind, tokenize

_NUMBER = re.compile(r"^([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)([A-Za-z%]*)$")

UNITS: dict[str, int] = {
    "b": 1,
    "kb": 1000,
    "mb": 1000**2,
    "gb": 1000**3,
    "tb": 1000**4,
    "pb": 1000**5,
    "kib": 1024,
    "mib": 1024**2,
    "gib": 1024**3,
    "tib": 1024**4,
    "pib": 1024**5,
}

# Tokens that end a term, so a field keyword before them is a plain word
_TERM_END = (TokenKind.END, TokenKind.RPAREN, TokenKind.OR, TokenKind.AND)


@dataclass(slots=True, frozen=True)
class SearchOptions:
    """How text terms are matched."""

    case_sensitive: bool = False
    whole_word: bool = False
    regex: bool = False


class _Parser:
    def __init__(self, tokens: list[Token], options: SearchOptions) -> None:
        self._tokens = tokens
        self._pos = 0
        self._options = options

    def _peek(self, offset: int = 0) -> Token:
        index = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[index]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind is not TokenKind.END:
            self._pos += 1
        return token

    def parse(self) -> Node | None:
        if self._peek().kind is TokenKind.END:
            return None
        node = self._expr()
        token = self._peek()
        if token.kind is TokenKind.RPAREN:
            raise ParseError(token.position, "unbalanced parenthesis: unexpected ')'")
        if token.kind is not TokenKind.END:
            raise ParseError(token.position, f"unexpected {token.text!r}")
        return node

    def _expr(self) -> Node:
        node = self._and_group()
        while self._peek().kind is TokenKind.OR:
            keyword = self._advance()
            if self._peek().kind in _TERM_END:
                raise ParseError(keyword.position, "expected a term after 'or'")
            node = Or(node, self._and_group())
        return node

    def _and_group(self) -> Node:
        node = self._primary()
        while True:
            token = self._peek()
            if token.kind is TokenKind.AND:
                self._advance()
                if self._peek().kind in _TERM_END:
                    raise ParseError(token.position, "expected a term after 'and'")
                node = And(node, self._primary())
            elif token.kind in (TokenKind.WORD, TokenKind.STRING, TokenKind.LPAREN):
                node = And(node, self._primary())
            else:
                return node

    def _primary(self) -> Node:
        token = self._peek()
        kind = token.kind
        if kind is TokenKind.LPAREN:
            self._advance()
            if self._peek().kind is TokenKind.RPAREN:
                raise ParseError(token.position, "empty parentheses")
            node = self._expr()
            if self._peek().kind is not TokenKind.RPAREN:
                raise ParseError(token.position, "unbalanced parenthesis: missing ')'")
            self._advance()
            return node
        if kind is TokenKind.RPAREN:
            raise ParseError(token.position, "unbalanced parenthesis: unexpected ')'")
        if kind is TokenKind.OR:
            raise ParseError(token.position, "expected a term before 'or'")
        if kind is TokenKind.AND:
            raise ParseError(token.position, "expected a term before 'and'")
        if kind is TokenKind.OPERATOR:
            raise ParseError(token.position, f"unexpected operator {token.text!r}")
        if kind is TokenKind.END:
            raise ParseError(token.position, "expected a term")
        return self._term()

    def _term(self) -> Node:
        token = self._advance()
        if token.kind is TokenKind.STRING:
            return self._text_match(Field.ANY, token)

        field = FIELD_KEYWORDS.get(token.text.lower())
        following = self._peek()
        if field is None or following.kind in _TERM_END:
            return self._text_match(Field.ANY, token)

        if following.kind is TokenKind.OPERATOR:
            self._advance()
            operator = Operator.from_symbol(following.text)
            if field.kind is FieldKind.TEXT:
                return self._text_comparison(field, token, following, operator)
            return Comparison(field, operator, self._number(field, following))

        if field.kind is FieldKind.TEXT and following.kind in (TokenKind.WORD, TokenKind.STRING):
            self._advance()
            return self._text_match(field, following)

        if field.kind is FieldKind.TEXT:
            raise ParseError(following.position, f"expected a value after {token.text!r}")
        raise ParseError(
            following.position, f"expected a comparison operator after {token.text!r}"
        )

    def _text_comparison(
        self, field: Field, keyword: Token, op_token: Token, operator: Operator
    ) -> Node:
        if operator not in (Operator.EQ, Operator.NE):
            raise ParseError(
                op_token.position,
                f"operator {op_token.text!r} is not valid for text field {keyword.text!r}",
            )
        value = self._peek()
        if value.kind not in (TokenKind.WORD, TokenKind.STRING):
            raise ParseError(value.position, f"expected a value after {op_token.text!r}")
        self._advance()
        return self._text_match(field, value, exact=True, negated=operator is Operator.NE)

    def _number(self, field: Field, op_token: Token) -> float:
        token = self._peek()
        if token.kind is not TokenKind.WORD:
            raise ParseError(token.position, f"expected a number after {op_token.text!r}")
        self._advance()
        found = _NUMBER.match(token.text)
        if found is None:
            raise ParseError(token.position, f"expected a number, got {token.text!r}")
        number = float(found.group(1))
        suffix = found.group(2).lower()

        if field.kind is FieldKind.BYTES:
            if not suffix:
                following = self._peek()
                if following.kind is TokenKind.WORD and following.text.lower() in UNITS:
                    self._advance()
                    suffix = following.text.lower()
            if suffix and suffix not in UNITS:
                raise ParseError(token.position, f"unknown unit {found.group(2)!r}")
            return number * UNITS.get(suffix, 1)

        if not suffix:
            following = self._peek()
            if following.kind is TokenKind.WORD and following.text == "%":
                self._advance()
        if suffix not in ("", "%"):
            raise ParseError(token.position, f"unexpected suffix {found.group(2)!r}")
        return number

    def _text_match(
        self, field: Field, token: Token, exact: bool = False, negated: bool = False
    ) -> StringMatch:
        options = self._options
        try:
            return StringMatch(
                field,
                token.text,
                case_insensitive=not options.case_sensitive,
                exact=exact,
                whole_word=options.whole_word,
                regex=options.regex,
                negated=negated,
            )
        except re.error as e:
            raise ParseError(token.position, f"invalid regex: {e.msg}") from e


def parse(text: str, options: SearchOptions | None = None) -> Node | None:
    """Parse a filter query.

    Returns:
        The expression tree, or None for an empty query.

    Raises:
        ParseError: The query is malformed.
    """
    return _Parser(tokenize(text), options or SearchOptions()).parse()

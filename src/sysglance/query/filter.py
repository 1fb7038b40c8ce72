"""Stateful process filter: the current query text, its tree and its error."""

from collections.abc import Iterable
from typing import TypeVar

import structlog

from sysglance.errors import ParseError
from sysglance.query.ast import Node
from sysglance.query.evaluator import matches
from sysglance.query.parser import SearchOptions, parse

log = structlog.get_logger()

T = TypeVar("T")


class QueryEngine:
    """Owns the active filter.

    A malformed edit leaves the last valid expression in force and records the
    error for display; the UI keeps working either way.
    """

    def __init__(self, options: SearchOptions | None = None) -> None:
        self._options = options or SearchOptions()
        self._text = ""
        self._ast: Node | None = None
        self._error: ParseError | None = None

    @property
    def text(self) -> str:
        return self._text

    @property
    def ast(self) -> Node | None:
        """Expression in force (None means everything matches)."""
        return self._ast

    @property
    def error(self) -> ParseError | None:
        return self._error

    @property
    def options(self) -> SearchOptions:
        return self._options

    def set_query(self, text: str) -> ParseError | None:
        """Parse text and make it the active filter if it is valid."""
        self._text = text
        try:
            ast = parse(text, self._options)
        except ParseError as e:
            log.debug("query_parse_error", query=text, position=e.position, reason=e.reason)
            self._error = e
            return e
        self._ast = ast
        self._error = None
        return None

    def set_options(self, options: SearchOptions) -> ParseError | None:
        """Change matching options and re-parse the current text."""
        self._options = options
        return self.set_query(self._text)

    def clear(self) -> None:
        self._text = ""
        self._ast = None
        self._error = None

    def matches(self, record: object) -> bool:
        return matches(self._ast, record)

    def filter(self, records: Iterable[T]) -> list[T]:
        if self._ast is None:
            return list(records)
        return [record for record in records if matches(self._ast, record)]

"""Expression tree for process filters.

Node is a closed union of four immutable node types. The evaluator matches on
them exhaustively.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Union


class FieldKind(Enum):
    NUMERIC = "numeric"
    BYTES = "bytes"  # Numeric, accepts a unit suffix
    TEXT = "text"


class Field(Enum):
    """Process attributes a query can refer to."""

    ANY = "any"  # Bare terms: name or command line
    CPU = "cpu"
    MEM = "mem"
    MEM_PERCENT = "mem%"
    PID = "pid"
    NAME = "name"
    COMMAND = "command"
    STATE = "state"
    USER = "user"
    READ = "read"
    WRITE = "write"
    TOTAL_READ = "tread"
    TOTAL_WRITE = "twrite"

    @property
    def kind(self) -> FieldKind:
        return _FIELD_KINDS[self]

    @property
    def attributes(self) -> tuple[str, ...]:
        """Record attributes the field reads."""
        return _FIELD_ATTRIBUTES[self]


_FIELD_KINDS = {
    Field.ANY: FieldKind.TEXT,
    Field.CPU: FieldKind.NUMERIC,
    Field.MEM: FieldKind.BYTES,
    Field.MEM_PERCENT: FieldKind.NUMERIC,
    Field.PID: FieldKind.NUMERIC,
    Field.NAME: FieldKind.TEXT,
    Field.COMMAND: FieldKind.TEXT,
    Field.STATE: FieldKind.TEXT,
    Field.USER: FieldKind.TEXT,
    Field.READ: FieldKind.BYTES,
    Field.WRITE: FieldKind.BYTES,
    Field.TOTAL_READ: FieldKind.BYTES,
    Field.TOTAL_WRITE: FieldKind.BYTES,
}

_FIELD_ATTRIBUTES = {
    Field.ANY: ("name", "command_line"),
    Field.CPU: ("cpu_percent",),
    Field.MEM: ("mem_bytes",),
    Field.MEM_PERCENT: ("mem_percent",),
    Field.PID: ("pid",),
    Field.NAME: ("name",),
    Field.COMMAND: ("command_line",),
    Field.STATE: ("state",),
    Field.USER: ("user",),
    Field.READ: ("read_rate",),
    Field.WRITE: ("write_rate",),
    Field.TOTAL_READ: ("read_bytes_total",),
    Field.TOTAL_WRITE: ("write_bytes_total",),
}

# Keywords recognised in query text (lower-case)
FIELD_KEYWORDS: dict[str, Field] = {
    "cpu": Field.CPU,
    "cpu%": Field.CPU,
    "mem": Field.MEM,
    "memb": Field.MEM,
    "mem%": Field.MEM_PERCENT,
    "pid": Field.PID,
    "name": Field.NAME,
    "cmd": Field.COMMAND,
    "command": Field.COMMAND,
    "state": Field.STATE,
    "user": Field.USER,
    "read": Field.READ,
    "r/s": Field.READ,
    "write": Field.WRITE,
    "w/s": Field.WRITE,
    "tread": Field.TOTAL_READ,
    "t.read": Field.TOTAL_READ,
    "twrite": Field.TOTAL_WRITE,
    "t.write": Field.TOTAL_WRITE,
}


class Operator(Enum):
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    EQ = "="
    NE = "!="

    @classmethod
    def from_symbol(cls, symbol: str) -> "Operator":
        if symbol == "==":
            return cls.EQ
        return cls(symbol)


@dataclass(slots=True, frozen=True)
class Comparison:
    field: Field
    operator: Operator
    literal: float


@dataclass(slots=True, frozen=True)
class StringMatch:
    """Text match against one field (or name/command for Field.ANY).

    The matcher is compiled once here; an invalid regex raises re.error.
    """

    field: Field
    pattern: str
    case_insensitive: bool = True
    exact: bool = False
    whole_word: bool = False
    regex: bool = False
    negated: bool = False
    _matcher: Callable[[str], object] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        expr = self.pattern if self.regex else re.escape(self.pattern)
        if self.whole_word:
            expr = rf"\b(?:{expr})\b"
        compiled = re.compile(expr, re.IGNORECASE if self.case_insensitive else 0)
        object.__setattr__(self, "_matcher", compiled.fullmatch if self.exact else compiled.search)

    def matches(self, text: str) -> bool:
        return self._matcher(text) is not None


@dataclass(slots=True, frozen=True)
class And:
    left: "Node"
    right: "Node"


@dataclass(slots=True, frozen=True)
class Or:
    left: "Node"
    right: "Node"


Node = Union[Comparison, StringMatch, And, Or]

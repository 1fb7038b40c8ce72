"""Evaluate filter expressions against process records."""

import math
import operator
from enum import Enum

from sysglance.query.ast import And, Comparison, Field, Node, Operator, Or, StringMatch

_COMPARE = {
    Operator.GT: operator.gt,
    Operator.LT: operator.lt,
    Operator.GE: operator.ge,
    Operator.LE: operator.le,
    Operator.EQ: operator.eq,
    Operator.NE: operator.ne,
}


def _number(record: object, field: Field) -> float | None:
    value = getattr(record, field.attributes[0], None)
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value):
        return None
    return float(value)


def _texts(record: object, field: Field) -> list[str]:
    texts = []
    for attribute in field.attributes:
        value = getattr(record, attribute, None)
        if value is None:
            continue
        if isinstance(value, Enum):
            texts.append(str(value.value))
            letter = getattr(value, "letter", None)
            if letter:
                texts.append(letter)
        else:
            texts.append(str(value))
    return texts


def evaluate(node: Node, record: object) -> bool:
    """Does record satisfy node?

    Works on any object exposing the attributes a field reads (ProcessRecord,
    ProcessRow). Missing, None or NaN values never satisfy a comparison, and a
    missing text field never matches, negated or not.
    """
    match node:
        case And(left, right):
            return evaluate(left, record) and evaluate(right, record)
        case Or(left, right):
            return evaluate(left, record) or evaluate(right, record)
        case Comparison(field, op, literal):
            value = _number(record, field)
            if value is None:
                return False
            return _COMPARE[op](value, literal)
        case StringMatch():
            texts = _texts(record, node.field)
            if not texts:
                return False
            found = any(node.matches(text) for text in texts)
            return not found if node.negated else found
        case _:
            raise TypeError(f"not a query node: {node!r}")


def matches(node: Node | None, record: object) -> bool:
    """evaluate(), with None meaning "no filter"."""
    return True if node is None else evaluate(node, record)

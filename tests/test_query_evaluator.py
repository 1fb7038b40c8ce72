"""Tests for query evaluation and the stateful query engine."""

import math

import pytest

from sysglance.models import ProcessState
from sysglance.query.evaluator import evaluate, matches
from sysglance.query.filter import QueryEngine
from sysglance.query.parser import SearchOptions, parse
from tests.conftest import make_record, make_row


def check(query: str, record, options: SearchOptions | None = None) -> bool:
    return evaluate(parse(query, options), record)


class TestEvaluate:
    """Tests for evaluate()."""

    def test_numeric_comparisons(self):
        row = make_row(1, cpu=10.0)
        assert check("cpu > 5", row)
        assert not check("cpu < 5", row)
        assert check("cpu >= 10", row)
        assert check("cpu = 10", row)
        assert check("cpu != 3", row)

    def test_byte_units(self):
        row = make_row(1, mem=2_000_000)
        assert check("mem > 1mb", row)
        assert not check("mem > 2mib", row)
        assert check("mem < 2mib", row)

    def test_bare_word_matches_name_or_command(self):
        row = make_row(1, name="firefox", command_line="/opt/browser --profile work")
        assert check("FIRE", row)
        assert check("profile", row)
        assert not check("chrome", row)

    def test_case_sensitive(self):
        row = make_row(1, name="firefox")
        assert not check("FIRE", row, SearchOptions(case_sensitive=True))
        assert check("fire", row, SearchOptions(case_sensitive=True))

    def test_whole_word(self):
        row = make_row(1, name="firefox", command_line="firefox")
        assert not check("fire", row, SearchOptions(whole_word=True))
        assert check("firefox", row, SearchOptions(whole_word=True))

    def test_regex(self):
        row = make_row(1, name="firefox", command_line="firefox")
        assert check("^fire", row, SearchOptions(regex=True))
        assert not check("^fox", row, SearchOptions(regex=True))

    def test_state_matches_value_or_letter(self):
        row = make_row(1, state=ProcessState.RUNNING)
        assert check("state = R", row)
        assert check("state = running", row)
        assert not check("state = sleeping", row)

    def test_exact_and_negated_text(self):
        firefox = make_row(1, name="firefox")
        chrome = make_row(2, name="chrome")
        assert check("name = firefox", firefox)
        assert not check("name = fire", firefox)
        assert check("name != chrome", firefox)
        assert not check("name != chrome", chrome)

    def test_nan_never_satisfies(self):
        row = make_row(1, mem_percent=math.nan)
        assert not check("mem% > 0", row)
        assert not check("mem% < 100", row)
        assert not check("mem% != 5", row)

    def test_missing_attribute_never_satisfies(self):
        # Records have no derived rates
        record = make_record(1)
        assert not check("read >= 0", record)

    def test_implicit_and_equivalence(self):
        rows = [
            make_row(1, name="btm", cpu=1.0, mem=10),
            make_row(2, name="btm", cpu=0.0, mem=10),
            make_row(3, name="discord", cpu=1.0, mem=10),
        ]
        implicit = parse("btm cpu > 0 mem > 0")
        explicit = parse("btm and cpu > 0 and mem > 0")
        assert [evaluate(implicit, r) for r in rows] == [evaluate(explicit, r) for r in rows]
        assert [evaluate(implicit, r) for r in rows] == [True, False, False]

    def test_grouped_conjunction(self):
        node = parse("(btm cpu > 0) (discord mem > 0)")
        # No single process is both btm and discord
        assert not evaluate(node, make_row(1, name="btm", cpu=1.0, mem=10))
        assert evaluate(node, make_row(1, name="btm discord", cpu=1.0, mem=10))

    def test_or(self):
        node = parse("firefox or chrome")
        assert evaluate(node, make_row(1, name="chrome"))
        assert not evaluate(node, make_row(1, name="bash"))

    def test_evaluate_is_pure(self):
        node = parse("cpu > 5")
        row = make_row(1, cpu=10.0)
        assert evaluate(node, row) == evaluate(node, row)
        assert row.cpu_percent == 10.0

    def test_not_a_node(self):
        with pytest.raises(TypeError):
            evaluate("cpu > 5", make_row(1))  # type: ignore[arg-type]

    def test_matches_without_filter(self):
        assert matches(None, make_row(1))


class TestQueryEngine:
    """Tests for the stateful QueryEngine."""

    def test_valid_query(self):
        engine = QueryEngine()
        assert engine.set_query("cpu > 5") is None
        assert engine.text == "cpu > 5"
        assert engine.ast is not None
        assert engine.error is None

    def test_invalid_query_keeps_last_valid_filter(self):
        engine = QueryEngine()
        engine.set_query("cpu > 5")
        previous = engine.ast
        error = engine.set_query("cpu > 5 (")
        assert error is not None
        assert engine.error == error
        assert engine.ast == previous
        assert engine.text == "cpu > 5 ("

    def test_filter(self):
        engine = QueryEngine()
        rows = [make_row(1, cpu=1.0), make_row(2, cpu=10.0)]
        assert engine.filter(rows) == rows
        engine.set_query("cpu > 5")
        assert [row.pid for row in engine.filter(rows)] == [2]
        assert engine.matches(rows[1])

    def test_set_options_reparses(self):
        engine = QueryEngine()
        engine.set_query("FIRE")
        row = make_row(1, name="firefox")
        assert engine.matches(row)
        engine.set_options(SearchOptions(case_sensitive=True))
        assert not engine.matches(row)
        assert engine.options.case_sensitive

    def test_clear(self):
        engine = QueryEngine()
        engine.set_query("(")
        engine.clear()
        assert engine.text == ""
        assert engine.ast is None
        assert engine.error is None

"""Tests for the consistency condition parser and evaluator."""

import pytest

from dhis2_dq.core.errors import ExpressionError
from dhis2_dq.validation.expression import (
    BinOp,
    Neg,
    Num,
    Ref,
    evaluate,
    parse_condition,
    tokenize,
)


def test_tokenize_positions():
    tokens = tokenize("DE1 + 2.5 >= DE2")
    assert [(t.kind, t.text) for t in tokens] == [
        ("ref", "DE1"),
        ("op", "+"),
        ("number", "2.5"),
        ("op", ">="),
        ("ref", "DE2"),
        ("end", ""),
    ]
    assert tokens[2].position == 6


def test_parse_builds_left_associative_tree():
    condition = parse_condition("DE1 - DE2 + DE3 == DE4")
    assert condition.op == "=="
    assert condition.left == BinOp("+", BinOp("-", Ref(1), Ref(2)), Ref(3))
    assert condition.right == Ref(4)
    assert condition.left_is_arithmetic
    assert condition.references() == [1, 2, 3, 4]


def test_parse_unary_minus_and_parentheses():
    condition = parse_condition("-(DE1 + 1) < 0")
    assert condition.left == Neg(BinOp("+", Ref(1), Num(1.0)))
    assert condition.right == Num(0.0)


def test_lowercase_references_accepted():
    assert parse_condition("de1 == de2").references() == [1, 2]


@pytest.mark.parametrize(
    "text, match",
    [
        ("", "Empty condition"),
        ("DE1", "Expected a comparison"),
        ("DE1 == DE2 == DE3", "Unexpected '=='"),
        ("DE1 == ", "Unexpected end"),
        ("DE1 * 2 == DE2", "Unexpected character"),
        ("DE1 == (DE2", "Expected '\\)'"),
        ("X1 == DE2", "Unexpected character"),
    ],
    ids=["empty", "no_comparison", "chained", "truncated", "multiplication", "unclosed", "bad_ref"],
)
def test_parse_errors(text, match):
    with pytest.raises(ExpressionError, match=match):
        parse_condition(text)


def test_evaluate_tolerance():
    condition = parse_condition("DE1 + DE2 == DE3")
    values = {1: 10.0, 2: 5.0, 3: 15.005}
    outcome = evaluate(condition, values.__getitem__)

    assert outcome.passed
    assert outcome.left == 15.0
    assert outcome.right == 15.005
    assert not evaluate(condition, values.__getitem__, tolerance=0.001).passed


def test_evaluate_propagates_lookup_errors():
    condition = parse_condition("DE1 == DE2")

    def lookup(index):
        raise ExpressionError(f"DE{index} missing")

    with pytest.raises(ExpressionError, match="DE1 missing"):
        evaluate(condition, lookup)

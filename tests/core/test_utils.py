"""Tests for the shared number and label helpers."""

import pytest

from dhis2_dq.core.utils import format_number, is_blank, looks_like_uid, parse_number, source_label


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("42", 42.0),
        (" 3.5 ", 3.5),
        ("-7", -7.0),
        ("+2", 2.0),
        (".5", 0.5),
        ("5.", 5.0),
        ("1e3", 1000.0),
        (12, 12.0),
        (2.5, 2.5),
    ],
    ids=["integer", "padded_decimal", "negative", "plus_sign", "leading_dot", "trailing_dot", "exponent", "int", "float"],
)
def test_parse_number_accepts_decimals(raw, expected):
    assert parse_number(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "abc", "1_000", "١٢", "１２", "NaN", "inf", "1e999", "0x10", "1,000", True],
    ids=[
        "none",
        "empty",
        "blank",
        "text",
        "underscore_grouping",
        "arabic_indic_digits",
        "fullwidth_digits",
        "nan",
        "inf",
        "overflow",
        "hex",
        "comma_grouping",
        "bool",
    ],
)
def test_parse_number_rejects_non_numbers(raw):
    assert parse_number(raw) is None


def test_is_blank():
    assert is_blank(None)
    assert is_blank("  ")
    assert not is_blank("0")
    assert not is_blank(0)


def test_looks_like_uid():
    assert looks_like_uid("DiszpKrYNg8")
    assert not looks_like_uid("Ngelehun CHC")
    assert not looks_like_uid("1iszpKrYNg8")


def test_labels_and_formatting():
    assert source_label(2) == "dataset3Value"
    assert format_number(5.0) == "5"
    assert format_number(2.5) == "2.5"

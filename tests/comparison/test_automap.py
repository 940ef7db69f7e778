"""Tests for name-based element group suggestions."""

import pytest

from dhis2_dq.comparison.automap import (
    MappingSuggestion,
    SimilarityScore,
    calculate_similarity,
    extract_key_terms,
    filter_by_confidence,
    generate_auto_mappings,
    get_confidence,
    normalize_text,
    suggest_element_groups,
    suggestions_to_mapping,
)
from dhis2_dq.core.enums import MappingConfidence
from dhis2_dq.core.models import DatasetElements, ElementRef


def _ref(uid, name, dataset="dsA", form_name=""):
    return ElementRef(uid, name, dataset, form_name=form_name)


def test_normalize_text():
    assert normalize_text("ANC 1st visit (<20y)") == "anc 1st visit 20y"
    assert normalize_text("  Malaria\tcases ") == "malaria cases"
    assert normalize_text("") == ""


def test_extract_key_terms_drops_stop_words_and_short_words():
    assert extract_key_terms("Total number of ANC 1st visits") == ["anc", "1st", "visits"]


def test_identical_names_after_normalization():
    score = calculate_similarity("ANC 1st visit", "anc 1st visit!")
    assert score.overall == 1.0


@pytest.mark.parametrize("name1, name2", [("", "ANC"), ("ANC", ""), ("()", "ANC")])
def test_empty_names_never_match(name1, name2):
    assert calculate_similarity(name1, name2).overall == 0.0


def test_contained_name_scores_full_containment():
    score = calculate_similarity("ANC visit", "ANC visit at facility")
    assert score.containment == 1.0
    assert score.overall > 0.5


@pytest.mark.parametrize(
    "score, expected",
    [
        (1.0, MappingConfidence.HIGH),
        (0.75, MappingConfidence.HIGH),
        (0.74, MappingConfidence.MEDIUM),
        (0.5, MappingConfidence.MEDIUM),
        (0.3, MappingConfidence.LOW),
        (0.29, None),
    ],
)
def test_confidence_bands(score, expected):
    assert get_confidence(score) == expected


def test_best_match_first_and_targets_used_once():
    sources = [
        _ref("x", "Malaria cases confirmed"),
        _ref("y", "ANC 1st visit"),
        _ref("z", "ANC 1st visit"),
    ]
    targets = [
        _ref("t", "ANC 1st visit", "dsB"),
        _ref("u", "Confirmed malaria cases", "dsB"),
    ]

    suggestions = generate_auto_mappings(sources, targets)

    assert [(s.source.id, s.target.id) for s in suggestions] == [("y", "t"), ("x", "u")]
    assert suggestions[0].confidence == MappingConfidence.HIGH
    assert "Nearly identical names" in suggestions[0].reasons
    assert suggestions[1].confidence == MappingConfidence.HIGH
    assert "Common terms: malaria, cases, confirmed" in suggestions[1].reasons


def test_unrelated_names_are_not_suggested():
    suggestions = generate_auto_mappings([_ref("a", "Malaria cases")], [_ref("b", "BCG doses", "dsB")])
    assert suggestions == []


def test_form_name_can_carry_the_match():
    source = _ref("s1", "Indicator 17", form_name="Measles doses given")
    target = _ref("t1", "XYZ-44 count", "dsB", form_name="Measles doses given")

    suggestions = generate_auto_mappings([source], [target])

    assert len(suggestions) == 1
    assert suggestions[0].similarity.overall == 1.0


def test_filter_by_confidence():
    a, b = _ref("a", "A"), _ref("b", "B", "dsB")
    suggestions = [
        MappingSuggestion(a, b, SimilarityScore(0.9), MappingConfidence.HIGH),
        MappingSuggestion(a, b, SimilarityScore(0.6), MappingConfidence.MEDIUM),
        MappingSuggestion(a, b, SimilarityScore(0.4), MappingConfidence.LOW),
    ]

    assert len(filter_by_confidence(suggestions, MappingConfidence.LOW)) == 3
    assert [s.confidence for s in filter_by_confidence(suggestions, MappingConfidence.MEDIUM)] == [
        MappingConfidence.HIGH,
        MappingConfidence.MEDIUM,
    ]
    assert len(filter_by_confidence(suggestions, "high")) == 1


def test_suggestions_to_mapping():
    suggestions = generate_auto_mappings(
        [_ref("x", "Malaria cases confirmed"), _ref("y", "ANC 1st visit")],
        [_ref("t", "ANC 1st visit", "dsB"), _ref("u", "Confirmed malaria cases", "dsB")],
    )
    assert suggestions_to_mapping(suggestions) == {"y": "t", "x": "u"}


def test_suggest_element_groups_across_three_datasets():
    a1 = _ref("a1", "ANC 1st visit")
    a2 = _ref("a2", "Malaria cases confirmed")
    a3 = _ref("a3", "Vitamin A supplements")
    b1 = _ref("b1", "ANC 1st visit", "dsB")
    c1 = _ref("c1", "Confirmed malaria cases", "dsC")
    source = DatasetElements("dsA", "Monthly", (a1, a2, a3))
    targets = [DatasetElements("dsB", "Weekly", (b1,)), DatasetElements("dsC", "Legacy", (c1,))]

    groups = suggest_element_groups(source, targets)

    assert [g.id for g in groups] == ["a1", "a2"]
    assert groups[0].logical_name == "ANC 1st visit"
    assert groups[0].elements == {"dsA": a1, "dsB": b1, "dsC": None}
    assert groups[1].elements == {"dsA": a2, "dsB": None, "dsC": c1}


def test_suggest_element_groups_without_matches():
    source = DatasetElements("dsA", elements=(_ref("a", "Malaria cases"),))
    target = DatasetElements("dsB", elements=(_ref("b", "BCG doses", "dsB"),))
    assert suggest_element_groups(source, [target]) == []

"""Suggest element groups by matching data element names across datasets.

Two names are scored on three signals:
- key-term overlap (Jaccard over words, stop words removed)
- containment (one name inside the other, or shared long words)
- character similarity (difflib.SequenceMatcher ratio)

Each source element is matched to the best-scoring target element that is
not already taken. Suggestions are a starting point for the element groups
file; review them before comparing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Sequence

from dhis2_dq.core.enums import MappingConfidence
from dhis2_dq.core.models import DatasetElements, ElementRef, LogicalElementGroup

logger = logging.getLogger(__name__)

# ============================================================================
# MATCHING THRESHOLDS
# ============================================================================

# Minimum overall score for a target to be considered at all
DEFAULT_MIN_SIMILARITY = 0.30

# Lower bound of each confidence band, most confident first
CONFIDENCE_THRESHOLDS = (
    (MappingConfidence.HIGH, 0.75),
    (MappingConfidence.MEDIUM, 0.50),
    (MappingConfidence.LOW, 0.30),
)

# Term overlap and containment carry domain meaning; spelling breaks ties
TERM_OVERLAP_WEIGHT = 0.35
CONTAINMENT_WEIGHT = 0.30
SEQUENCE_WEIGHT = 0.35

STOP_WORDS = frozenset(
    """
    total number of in the and or for from to with by at on a an is are was
    were be been being have has had do does did will would should could may
    might must can
    """.split()
)

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, punctuation replaced by spaces, whitespace collapsed.

    Examples:
        >>> normalize_text("ANC 1st visit (<20y)")
        'anc 1st visit 20y'
    """
    text = _PUNCT_RE.sub(" ", (text or "").lower())
    return _SPACE_RE.sub(" ", text).strip()


def extract_key_terms(text: str) -> List[str]:
    """Words longer than two characters that are not stop words.

    Examples:
        >>> extract_key_terms("Total number of ANC 1st visits")
        ['anc', '1st', 'visits']
    """
    return [w for w in normalize_text(text).split(" ") if len(w) > 2 and w not in STOP_WORDS]


def _term_overlap(terms1: Sequence[str], terms2: Sequence[str]) -> float:
    if not terms1 and not terms2:
        return 1.0
    if not terms1 or not terms2:
        return 0.0
    set1, set2 = set(terms1), set(terms2)
    return len(set1 & set2) / len(set1 | set2)


def _containment(norm1: str, norm2: str) -> float:
    if norm1 in norm2 or norm2 in norm1:
        return 1.0
    words1 = norm1.split(" ")
    words2 = norm2.split(" ")
    contained = sum(
        1 for w1 in words1 if len(w1) > 3 and any(w2 in w1 or w1 in w2 for w2 in words2)
    )
    return contained / max(len(words1), len(words2))


@dataclass(frozen=True)
class SimilarityScore:
    overall: float
    term_overlap: float = 0.0
    containment: float = 0.0
    sequence: float = 0.0


def calculate_similarity(name1: str, name2: str) -> SimilarityScore:
    """Weighted similarity of two element names, between 0 and 1."""
    norm1 = normalize_text(name1)
    norm2 = normalize_text(name2)
    if not norm1 or not norm2:
        return SimilarityScore(overall=0.0)
    if norm1 == norm2:
        return SimilarityScore(overall=1.0, term_overlap=1.0, containment=1.0, sequence=1.0)

    term_overlap = _term_overlap(extract_key_terms(name1), extract_key_terms(name2))
    containment = _containment(norm1, norm2)
    sequence = SequenceMatcher(None, norm1, norm2).ratio()
    overall = (
        term_overlap * TERM_OVERLAP_WEIGHT
        + containment * CONTAINMENT_WEIGHT
        + sequence * SEQUENCE_WEIGHT
    )
    return SimilarityScore(
        overall=overall, term_overlap=term_overlap, containment=containment, sequence=sequence
    )


def get_confidence(score: float) -> Optional[MappingConfidence]:
    """Confidence band of an overall score; None below the lowest band.

    Examples:
        >>> get_confidence(0.8)
        <MappingConfidence.HIGH: 'high'>
        >>> get_confidence(0.1) is None
        True
    """
    for confidence, bound in CONFIDENCE_THRESHOLDS:
        if score >= bound:
            return confidence
    return None


def _confidence_rank(confidence: MappingConfidence) -> int:
    return [c for c, _ in CONFIDENCE_THRESHOLDS].index(confidence)


def _match_reasons(similarity: SimilarityScore, source_name: str, target_name: str) -> List[str]:
    reasons: List[str] = []
    if similarity.overall >= 0.9:
        reasons.append("Nearly identical names")
    elif similarity.containment >= 0.7:
        reasons.append("One name contains the other")
    elif similarity.term_overlap >= 0.7:
        reasons.append("High overlap in key terms")
    elif similarity.sequence >= 0.8:
        reasons.append("Very similar spelling")

    target_terms = set(extract_key_terms(target_name))
    common = [t for t in extract_key_terms(source_name) if t in target_terms]
    if common:
        reasons.append(f"Common terms: {', '.join(common[:3])}")
    if not reasons:
        reasons.append("Moderate similarity in name structure")
    return reasons


@dataclass(frozen=True)
class MappingSuggestion:
    source: ElementRef
    target: ElementRef
    similarity: SimilarityScore
    confidence: MappingConfidence
    reasons: List[str] = field(default_factory=list)


def _element_similarity(source: ElementRef, target: ElementRef) -> SimilarityScore:
    """Best of the display-name and form-name scores."""
    best = calculate_similarity(source.display_name, target.display_name)
    if source.form_name and target.form_name:
        by_form = calculate_similarity(source.form_name, target.form_name)
        if by_form.overall > best.overall:
            best = by_form
    return best


def generate_auto_mappings(
    source_elements: Sequence[ElementRef],
    target_elements: Sequence[ElementRef],
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
) -> List[MappingSuggestion]:
    """Match each source element to at most one unused target element.

    Source elements are processed in order; each takes the best-scoring target
    still available. Returns suggestions sorted by score, best first.
    """
    suggestions: List[MappingSuggestion] = []
    used_targets = set()
    for source in source_elements:
        best_target: Optional[ElementRef] = None
        best: Optional[SimilarityScore] = None
        for target in target_elements:
            if target.id in used_targets:
                continue
            similarity = _element_similarity(source, target)
            if similarity.overall >= min_similarity and (best is None or similarity.overall > best.overall):
                best_target, best = target, similarity
        if best_target is None or best is None:
            continue
        confidence = get_confidence(best.overall)
        if confidence is None:
            continue
        suggestions.append(
            MappingSuggestion(
                source=source,
                target=best_target,
                similarity=best,
                confidence=confidence,
                reasons=_match_reasons(best, source.display_name, best_target.display_name),
            )
        )
        used_targets.add(best_target.id)

    suggestions.sort(key=lambda s: s.similarity.overall, reverse=True)
    return suggestions


def suggestions_to_mapping(suggestions: Sequence[MappingSuggestion]) -> Dict[str, str]:
    """Source element id -> target element id."""
    return {s.source.id: s.target.id for s in suggestions}


def generate_cross_dataset_mappings(
    source: DatasetElements,
    targets: Sequence[DatasetElements],
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
) -> Dict[str, List[MappingSuggestion]]:
    """Suggestions from the source dataset to each target, keyed by target dataset id."""
    results: Dict[str, List[MappingSuggestion]] = {}
    for target in targets:
        results[target.dataset_id] = generate_auto_mappings(
            source.elements, target.elements, min_similarity
        )
        logger.info(
            "%s -> %s: %d of %d elements matched",
            source.dataset_name or source.dataset_id,
            target.dataset_name or target.dataset_id,
            len(results[target.dataset_id]),
            len(source.elements),
        )
    return results


def filter_by_confidence(
    suggestions: Sequence[MappingSuggestion], min_confidence: MappingConfidence
) -> List[MappingSuggestion]:
    """Suggestions at ``min_confidence`` or more confident."""
    max_rank = _confidence_rank(MappingConfidence(min_confidence))
    return [s for s in suggestions if _confidence_rank(s.confidence) <= max_rank]


def groups_from_mappings(
    source: DatasetElements,
    targets: Sequence[DatasetElements],
    mappings: Dict[str, List[MappingSuggestion]],
    min_confidence: MappingConfidence = MappingConfidence.LOW,
) -> List[LogicalElementGroup]:
    """One group per source element that matched in at least one target.

    Groups keep the source dataset's element order and have an entry for
    every dataset; targets without an accepted match get None.
    """
    accepted: Dict[str, Dict[str, ElementRef]] = {}
    for target_id, suggestions in mappings.items():
        for s in filter_by_confidence(suggestions, min_confidence):
            accepted.setdefault(s.source.id, {})[target_id] = s.target

    groups: List[LogicalElementGroup] = []
    for element in source.elements:
        matches = accepted.get(element.id)
        if not matches:
            logger.debug("No match for %s (%s)", element.display_name, element.id)
            continue
        elements: Dict[str, Optional[ElementRef]] = {source.dataset_id: element}
        for target in targets:
            elements[target.dataset_id] = matches.get(target.dataset_id)
        groups.append(
            LogicalElementGroup(
                id=element.id,
                logical_name=element.display_name or element.id,
                elements=elements,
            )
        )
    return groups


def suggest_element_groups(
    source: DatasetElements,
    targets: Sequence[DatasetElements],
    min_confidence: MappingConfidence = MappingConfidence.LOW,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
) -> List[LogicalElementGroup]:
    """Match ``source`` against every target and build element groups."""
    mappings = generate_cross_dataset_mappings(source, targets, min_similarity)
    return groups_from_mappings(source, targets, mappings, min_confidence)

"""
Decide whether two detections show the same physical item.

Two strategies exist:

- is_similar: weighted scoring over name, color and details. Used when the
  vision model was asked for per-item metadata (the multi-image path).
- is_similar_by_name: any-of matching on aggressively normalized names and
  details. Used when detections carry no position/color/background, which is
  the case for single-image and per-video-frame analysis.

select_strategy() picks between them for a list of detections.
"""

import re
from typing import Callable, Iterable, List, Optional

from config import DedupConfig
from models import AnnotatedDetection

SimilarityFn = Callable[[AnnotatedDetection, AnnotatedDetection], bool]

_DEFAULT_DEDUP = DedupConfig()

# Name normalization for the name-only strategy
_YEAR = re.compile(r"\d{4}")
_MODEL_TERMS = re.compile(r"awd|r/t|sxt|journey|dodge|model|brand|series", re.IGNORECASE)
_COLORS = re.compile(r"black|white|gray|grey|blue|red|green|yellow|brown|silver|gold", re.IGNORECASE)
_SIZES = re.compile(r"small|medium|large|xl|xxl|mini|big", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^a-z0-9 ]", re.IGNORECASE)
_STOP_WORDS = re.compile(r"\b(the|a|an|in|on|at|with|and|or|for)\b", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: Optional[str]) -> str:
    return (name or "").lower().strip()


def normalize_for_matching(name: Optional[str]) -> str:
    """Strip years, trims, colors, sizes and filler words from an item name."""
    text = _WHITESPACE.sub(" ", (name or "").lower())
    text = _YEAR.sub("", text)
    text = _MODEL_TERMS.sub("", text)
    text = _COLORS.sub("", text)
    text = _SIZES.sub("", text)
    text = _NON_ALNUM.sub("", text)
    text = _STOP_WORDS.sub("", text)
    return text.strip()


def _colors_match(color1: Optional[str], color2: Optional[str]) -> bool:
    return bool(color1) and bool(color2) and color1.lower() == color2.lower()


def _significant_words(text: str, min_length: int) -> List[str]:
    return [w for w in text.split(" ") if len(w) > min_length]


def details_overlap_ratio(details1: str, details2: str) -> float:
    """Share of significant (>3 chars) words of the shorter text found in the other."""
    words1 = _significant_words(details1.lower(), 3)
    words2 = _significant_words(details2.lower(), 3)
    if not words1 or not words2:
        return 0.0
    common = [w for w in words1 if w in words2]
    return len(common) / min(len(words1), len(words2))


def similarity_score(a: AnnotatedDetection, b: AnnotatedDetection,
                     dedup: DedupConfig = _DEFAULT_DEDUP) -> float:
    """Evidence score for two detections whose names partially match."""
    score = 0.0

    # Omitted colors default to "unknown" and still count as a match
    if _colors_match(a.color, b.color):
        score += dedup.color_bonus

    details1 = (a.details or "").lower()
    details2 = (b.details or "").lower()
    if details1 and details2:
        if details1 in details2 or details2 in details1:
            score += dedup.details_containment_bonus
        else:
            overlap = details_overlap_ratio(details1, details2)
            if overlap > dedup.min_overlap_ratio:
                score += min(dedup.details_overlap_base + overlap * dedup.details_overlap_weight,
                             dedup.details_overlap_cap)

    return score


def is_similar(a: AnnotatedDetection, b: AnnotatedDetection,
               dedup: DedupConfig = _DEFAULT_DEDUP) -> bool:
    """Weighted-metadata similarity check."""
    # Two sightings in one image are two objects
    if a.image_id == b.image_id:
        return False

    name1 = normalize_name(a.name)
    name2 = normalize_name(b.name)
    if name1 == name2:
        return True

    if name1 in name2 or name2 in name1:
        return similarity_score(a, b, dedup) >= dedup.acceptance_threshold

    return False


def is_similar_by_name(a: AnnotatedDetection, b: AnnotatedDetection) -> bool:
    """Name-only similarity check; any single signal is enough."""
    if a.image_id and a.image_id == b.image_id:
        return False

    name1 = normalize_for_matching(a.name)
    name2 = normalize_for_matching(b.name)

    if name1 == name2:
        return True
    if name1 and name2 and (name1 in name2 or name2 in name1):
        return True

    words1 = _significant_words(name1, 2)
    words2 = _significant_words(name2, 2)
    if words1 and words2:
        matches = sum(1 for w in words1 if w in words2)
        if matches / len(words1) > 0.5 or matches / len(words2) > 0.5:
            return True

    details1 = (a.details or "").lower()
    details2 = (b.details or "").lower()
    if details1 and details2 and (details1 in details2 or details2 in details1):
        return True

    return False


def select_strategy(detections: Iterable[AnnotatedDetection]) -> SimilarityFn:
    """Use weighted scoring when any detection carries spatial/visual metadata."""
    if any(d.has_metadata for d in detections):
        return is_similar
    return is_similar_by_name

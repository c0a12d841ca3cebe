"""
Group detections of the same physical item and fold each group into one item.

Grouping is leader based: every detection is compared only with the first
member of each existing group, and the first group that matches takes it.
Representatives are never recomputed, so a chain of gradually drifting
detections (A~B, B~C, but not A~C) ends up in more than one group.
"""

import logging
from typing import List, Sequence

from config import DedupConfig
from models import AnnotatedDetection, ConsolidatedItem, ItemGroup
from similarity import SimilarityFn, is_similar

logger = logging.getLogger(__name__)


def group_detections(detections: Sequence[AnnotatedDetection],
                     scorer: SimilarityFn = is_similar) -> List[ItemGroup]:
    """Partition detections into groups in a single ordered pass."""
    groups: List[ItemGroup] = []

    for detection in detections:
        for group in groups:
            if scorer(detection, group.representative):
                group.add(detection)
                break
        else:
            groups.append(ItemGroup(members=[detection]))

    return groups


def _append_unique(existing: str, incoming: str) -> str:
    if not incoming or incoming in existing:
        return existing
    return f"{existing}; {incoming}" if existing else incoming


def fold_group(group: ItemGroup, dedup: DedupConfig = DedupConfig()) -> ConsolidatedItem:
    """Collapse one group into a consolidated item."""
    representative = group.representative
    if len(group) == 1:
        return ConsolidatedItem.from_detection(representative)

    value = representative.value
    condition = representative.condition
    details = representative.details
    confidence = representative.confidence
    appears_in = [representative.image_id]

    for member in group.members[1:]:
        value = max(value, member.value)
        condition = _append_unique(condition, member.condition)
        details = _append_unique(details, member.details)
        confidence = min(dedup.confidence_cap, confidence + dedup.confidence_increment)
        if member.image_id not in appears_in:
            appears_in.append(member.image_id)

    return ConsolidatedItem(
        name=representative.name,
        value=value,
        condition=condition,
        details=details,
        confidence=confidence,
        appears_in=appears_in,
        image_id=representative.image_id,
        image_index=representative.image_index,
        position=representative.position,
        color=representative.color,
        background=representative.background,
    )


def merge(detections: Sequence[AnnotatedDetection],
          scorer: SimilarityFn = is_similar,
          dedup: DedupConfig = DedupConfig()) -> List[ConsolidatedItem]:
    """Deduplicate detections into consolidated items, in discovery order."""
    if not detections:
        return []

    groups = group_detections(detections, scorer)
    merged = [fold_group(group, dedup) for group in groups]

    folded = len(detections) - len(merged)
    if folded:
        logger.info(f"Merged {len(detections)} detections into {len(merged)} items "
                    f"({folded} duplicates folded)")
    return merged

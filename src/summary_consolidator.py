"""
Request-level view of the detected items.

After deduplication the caller chooses the reporting granularity: every
item listed on its own (grouped by name), or everything rolled up into a
single valuation.
"""

import logging
from typing import Dict, List, Sequence, Union

from models import (
    ConsolidatedItem, ConsolidatedProduct, ImageResult, MediaResult, ProductSummaryItem,
    UNKNOWN, VideoResult,
)
from similarity import normalize_name
from utils import image_index_from_id, public_image_url

logger = logging.getLogger(__name__)

SummaryInput = Union[ProductSummaryItem, ConsolidatedItem]


def _image_summary(result: ImageResult, base_url: str) -> List[ProductSummaryItem]:
    source = "image-batch" if result.batch_processed else "image"
    summary = []
    for item in result.analysis.items:
        filename = UNKNOWN
        if result.filenames:
            index = image_index_from_id(item.image_id)
            filename = result.filenames[min(index, len(result.filenames) - 1)]
        summary.append(ProductSummaryItem.from_consolidated(
            item, source, filename, image_url=public_image_url(filename, base_url)))
    return summary


def _video_summary(result: VideoResult) -> List[ProductSummaryItem]:
    summary = []
    for item in result.items:
        summary.append(ProductSummaryItem.from_consolidated(
            item, "video", f"frame_{item.image_index + 1}"))
    return summary


def generate_product_summary(results: Sequence[MediaResult],
                             base_url: str = "") -> List[ProductSummaryItem]:
    """Flatten image and video results into summary items."""
    summary: List[ProductSummaryItem] = []
    for result in results:
        if isinstance(result, ImageResult):
            summary.extend(_image_summary(result, base_url))
        elif isinstance(result, VideoResult):
            summary.extend(_video_summary(result))
    return summary


def _as_summary_item(item: SummaryInput) -> ProductSummaryItem:
    if isinstance(item, ConsolidatedItem):
        return ProductSummaryItem.from_consolidated(item, "image", UNKNOWN)
    return item


def group_similar_items(items: Sequence[SummaryInput]) -> List[ConsolidatedProduct]:
    """
    Bucket items by exact normalized name.

    Buckets keep first-seen order before sorting, so products with equal
    confidence stay in discovery order.
    """
    products: Dict[str, ConsolidatedProduct] = {}

    for item in map(_as_summary_item, items):
        key = normalize_name(item.name)
        product = products.get(key)
        if product is None:
            product = ConsolidatedProduct(
                name=item.name,
                instances=[],
                highest_confidence=item.confidence,
                total_value=0.0,
            )
            products[key] = product

        product.instances.append(item)
        product.total_value += item.value or 0.0
        if item.confidence > product.highest_confidence:
            product.highest_confidence = item.confidence

    return sorted(products.values(), key=lambda p: p.highest_confidence, reverse=True)


def consolidate_to_single_item(items: Sequence[SummaryInput]) -> List[ProductSummaryItem]:
    """Roll every item up into one reported item.

    The most confident item supplies the name; value is the sum over all
    items and condition the distinct non-empty conditions joined with "; ".
    """
    if not items:
        return []

    ranked = sorted(map(_as_summary_item, items), key=lambda i: i.confidence, reverse=True)
    main = ranked[0]

    total_value = sum(item.value or 0.0 for item in ranked)
    conditions: List[str] = []
    for item in ranked:
        if item.condition and item.condition not in conditions:
            conditions.append(item.condition)

    return [ProductSummaryItem(
        name=main.name,
        confidence=main.confidence,
        value=total_value,
        condition="; ".join(conditions) or main.condition,
        source="consolidated",
        filename="multiple-files",
        details=main.details,
        original_items=len(ranked),
        item_details=ranked,
    )]


def format_single_item_results(items: Sequence[ProductSummaryItem]) -> List[ConsolidatedProduct]:
    return [
        ConsolidatedProduct(
            name=item.name,
            instances=[item],
            highest_confidence=item.confidence,
            total_value=item.value or 0.0,
            is_single_item=True,
            original_items=item.original_items or 1,
            item_details=item.item_details or [item],
        )
        for item in items
    ]


def consolidate(items: Sequence[SummaryInput], single_item_mode: bool) -> List[ConsolidatedProduct]:
    """
    Build the reported products for a request.

    Single-item mode yields exactly one product whose total value is the
    sum of all items; otherwise items are grouped by name.
    """
    if not items:
        return []

    if not single_item_mode:
        return group_similar_items(items)

    summary = [_as_summary_item(item) for item in items]
    if len(summary) > 1:
        summary = consolidate_to_single_item(summary)
        logger.info(f"Consolidated {summary[0].original_items} items into one: {summary[0].name}")
    return format_single_item_results(summary)

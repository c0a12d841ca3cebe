"""
Consolidated data models for the appraisal media pipeline.

This module contains all dataclasses used across the system for:
- Vision model detections (raw and annotated)
- Deduplication groups and consolidated items
- Request-level summaries and media results
- Market research results
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

UNKNOWN = "unknown"
DEFAULT_CONFIDENCE = 0.8


# =============================================================================
# Detection Models
# =============================================================================

@dataclass(frozen=True)
class RawDetection:
    """One item as returned by a single vision-analysis call."""
    name: str
    condition: str
    details: str = ""
    position: Optional[str] = None
    color: Optional[str] = None
    background: Optional[str] = None
    nearest_items: List[str] = field(default_factory=list)
    value: Optional[float] = None
    confidence: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RawDetection':
        """Build a detection from one parsed JSON entry.

        Raises ValueError when the entry has no usable name.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Item entry is not an object: {data!r}")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Item entry has no name: {data!r}")

        nearest = data.get("nearestItems") or data.get("nearest_items") or []
        if isinstance(nearest, str):
            nearest = [nearest]

        return cls(
            name=name,
            condition=str(data.get("condition") or ""),
            details=str(data.get("details") or ""),
            position=_optional_text(data.get("position")),
            color=_optional_text(data.get("color")),
            background=_optional_text(data.get("background")),
            nearest_items=[str(n) for n in nearest],
            value=_optional_number(data.get("value")),
            confidence=_optional_number(data.get("confidence")),
        )


@dataclass(frozen=True)
class AnnotatedDetection:
    """A raw detection stamped with the context of the image it came from."""
    name: str
    condition: str
    image_id: str
    image_index: int
    details: str = ""
    position: str = UNKNOWN
    color: str = UNKNOWN
    background: str = UNKNOWN
    nearest_items: List[str] = field(default_factory=list)
    value: float = 0.0
    confidence: float = DEFAULT_CONFIDENCE

    @classmethod
    def from_raw(cls, raw: RawDetection, image_index: int,
                 default_confidence: float = DEFAULT_CONFIDENCE) -> 'AnnotatedDetection':
        return cls(
            name=raw.name,
            condition=raw.condition,
            details=raw.details,
            image_id=image_id_for(image_index),
            image_index=image_index,
            position=raw.position or UNKNOWN,
            color=raw.color or UNKNOWN,
            background=raw.background or UNKNOWN,
            nearest_items=list(raw.nearest_items),
            # 0 and missing both mean "no estimate"
            value=raw.value or 0.0,
            confidence=_confidence_or(raw.confidence, default_confidence),
        )

    @property
    def has_metadata(self) -> bool:
        """True when the model reported any spatial or visual context."""
        return any(v != UNKNOWN for v in (self.position, self.color, self.background))

    def context_line(self) -> str:
        return f"{self.name} - {self.details}"


def image_id_for(image_index: int) -> str:
    return f"image_{image_index + 1}"


# =============================================================================
# Deduplication Models
# =============================================================================

@dataclass
class ItemGroup:
    """Detections believed to show the same physical item.

    The first member is the representative and is never replaced.
    """
    members: List[AnnotatedDetection]

    @property
    def representative(self) -> AnnotatedDetection:
        return self.members[0]

    def add(self, detection: AnnotatedDetection) -> None:
        self.members.append(detection)

    def __len__(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class ConsolidatedItem:
    """The deduplicated, externally visible item."""
    name: str
    value: float
    condition: str
    details: str
    confidence: float
    appears_in: List[str]
    image_id: str
    image_index: int
    position: str = UNKNOWN
    color: str = UNKNOWN
    background: str = UNKNOWN

    @classmethod
    def from_detection(cls, detection: AnnotatedDetection) -> 'ConsolidatedItem':
        return cls(
            name=detection.name,
            value=detection.value,
            condition=detection.condition,
            details=detection.details,
            confidence=detection.confidence,
            appears_in=[detection.image_id],
            image_id=detection.image_id,
            image_index=detection.image_index,
            position=detection.position,
            color=detection.color,
            background=detection.background,
        )


@dataclass
class ImageAnalysis:
    """Outcome of analysing one image or a batch of images."""
    description: str
    estimated_value: float
    confidence: float
    factors: List[str]
    items: List[ConsolidatedItem] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)  # per-image failure reasons

    @classmethod
    def from_items(cls, items: List[ConsolidatedItem], confidence: float = DEFAULT_CONFIDENCE,
                   failures: Optional[List[str]] = None) -> 'ImageAnalysis':
        return cls(
            description="Image analysis result",
            estimated_value=sum(item.value for item in items),
            confidence=confidence,
            factors=["quality", "uniqueness", "market demand"],
            items=list(items),
            failures=list(failures or []),
        )

    @classmethod
    def empty(cls, description: str) -> 'ImageAnalysis':
        return cls(description=description, estimated_value=0.0, confidence=0.0, factors=[], items=[])

    @classmethod
    def fallback(cls) -> 'ImageAnalysis':
        return cls(
            description="Fallback analysis - vision service unavailable",
            estimated_value=0.0,
            confidence=0.5,
            factors=["Fallback analysis"],
            items=[],
        )


# =============================================================================
# Request-level Models
# =============================================================================

@dataclass
class ProductSummaryItem:
    """One reportable item with the media it came from."""
    name: str
    confidence: float
    value: float
    condition: str
    source: str  # image, image-batch, video or consolidated
    filename: str
    details: str = ""
    position: Optional[str] = None
    color: Optional[str] = None
    image_id: Optional[str] = None
    image_url: Optional[str] = None
    # Only set on the single rolled-up item
    original_items: Optional[int] = None
    item_details: Optional[List['ProductSummaryItem']] = None

    @classmethod
    def from_consolidated(cls, item: ConsolidatedItem, source: str, filename: str,
                          image_url: Optional[str] = None) -> 'ProductSummaryItem':
        return cls(
            name=item.name,
            confidence=item.confidence or DEFAULT_CONFIDENCE,
            value=item.value or 0.0,
            condition=item.condition,
            source=source,
            filename=filename or UNKNOWN,
            details=item.details or f"{item.name} in {item.condition.lower()} condition.",
            position=item.position,
            color=item.color,
            image_id=item.image_id,
            image_url=image_url,
        )


@dataclass
class ConsolidatedProduct:
    """Items grouped under one reported product."""
    name: str
    instances: List[ProductSummaryItem]
    highest_confidence: float
    total_value: float
    is_single_item: bool = False
    original_items: Optional[int] = None
    item_details: Optional[List[ProductSummaryItem]] = None


@dataclass
class FrameResult:
    """Analysis of one unique video frame."""
    frame: str
    analysis: ImageAnalysis


@dataclass
class ImageResult:
    """Analysis of the uploaded images of one request."""
    filenames: List[str]
    analysis: ImageAnalysis
    batch_processed: bool = False
    type: str = "image"

    @property
    def image_count(self) -> int:
        return len(self.filenames)


@dataclass
class VideoResult:
    """Analysis of one uploaded video."""
    filename: str
    total_frames: int
    unique_frames: int
    processed_frames: int
    results: List[FrameResult] = field(default_factory=list)
    items: List[ConsolidatedItem] = field(default_factory=list)  # merged across frames
    failures: List[str] = field(default_factory=list)
    type: str = "video"


MediaResult = Union[ImageResult, VideoResult]


@dataclass
class MediaAnalysis:
    """Everything produced for one report-generation request."""
    results: List[MediaResult]
    summary: List[ProductSummaryItem]
    products: List[ConsolidatedProduct]
    failures: List[str] = field(default_factory=list)


# =============================================================================
# Market Research Models
# =============================================================================

@dataclass(frozen=True)
class PriceRange:
    min: float = 0.0
    max: float = 0.0


@dataclass
class PriceStats:
    """Result of a market price lookup."""
    average_price: float
    price_range: PriceRange
    market_trend: str
    sources: List[str] = field(default_factory=list)

    @classmethod
    def empty(cls) -> 'PriceStats':
        return cls(average_price=0.0, price_range=PriceRange(), market_trend="unknown", sources=[])


@dataclass
class ValueEstimate:
    """AI estimated value used when market research finds nothing."""
    value: float
    confidence: float
    repair_cost: Optional[float] = None


@dataclass
class ReportItem:
    """An item submitted for a report, optionally enriched with pricing."""
    name: str
    condition: str
    details: str = ""
    id: Optional[str] = None
    image_url: Optional[str] = None
    value: float = 0.0
    confidence: float = DEFAULT_CONFIDENCE
    market_research: Optional[PriceStats] = None
    repair_cost: Optional[float] = None


@dataclass
class RenderedReport:
    file_path: Path
    file_name: str


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _confidence_or(value: Optional[float], default: float) -> float:
    """Model confidence when it is a usable probability, else the default."""
    if value and 0.0 < value <= 1.0:
        return value
    return default


def _optional_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None

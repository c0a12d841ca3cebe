"""
Detection adapter between the pipeline and the vision analyzer.

Wraps every vision call in the bounded retry helper, stamps raw detections
with the index and id of the image they came from, and keeps the running
list of items already found in the request so later prompts can ask the
model not to repeat them.
"""

import asyncio
import functools
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from config import Config
from exceptions import CollaboratorFailure
from group_merger import merge
from models import AnnotatedDetection, ConsolidatedItem, ImageAnalysis, image_id_for
from prompt_templates import previous_items_block
from retry import RetryOutcome, RetryPolicy, call_with_retry
from similarity import is_similar
from vision_analyzer import VisionAnalyzer

logger = logging.getLogger(__name__)


class PriorItemsContext:
    """Descriptions of the items found so far in one request, in discovery order."""

    def __init__(self, descriptions: Optional[Iterable[str]] = None):
        self._descriptions: List[str] = list(descriptions or ())

    @property
    def descriptions(self) -> List[str]:
        return list(self._descriptions)

    def extend(self, detections: Iterable[AnnotatedDetection]) -> None:
        for detection in detections:
            self._descriptions.append(detection.context_line())

    def render(self) -> str:
        return previous_items_block(self._descriptions)

    def __len__(self) -> int:
        return len(self._descriptions)


class DetectionAdapter:
    """
    Turns images into annotated detections.

    Failures that survive the retry budget either raise CollaboratorFailure
    or, when USE_FALLBACK_VALUES is enabled, degrade to empty results.
    """

    def __init__(self, config: Config, analyzer: VisionAnalyzer,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.config = config
        self.analyzer = analyzer
        self.policy = RetryPolicy(
            max_retries=config.vision.max_retries,
            retry_delay=config.vision.retry_delay,
        )
        self._sleep = sleep

    @property
    def fallback_enabled(self) -> bool:
        return self.config.vision.use_fallback_values

    async def _call_analyzer(self, image_bytes: bytes, image_index: int,
                             context: Sequence[str], language: str,
                             with_metadata: bool) -> RetryOutcome:
        label = f"vision analysis of {image_id_for(image_index)}"
        return await call_with_retry(
            lambda: self.analyzer.detect(image_bytes, context, language, with_metadata),
            self.policy,
            label=label,
            sleep=self._sleep,
        )

    def _annotate(self, outcome: RetryOutcome, image_index: int) -> List[AnnotatedDetection]:
        default_confidence = self.config.vision.default_confidence
        return [AnnotatedDetection.from_raw(raw, image_index, default_confidence)
                for raw in outcome.value]

    async def detect(self, image_bytes: bytes, image_index: int,
                     prior: Optional[PriorItemsContext] = None,
                     language: str = "en",
                     with_metadata: bool = True) -> List[AnnotatedDetection]:
        """
        Detect the items in one image.

        Args:
            image_bytes: JPEG encoded image
            image_index: 0-based position of the image in the request
            prior: Request context; read for the prompt and extended with
                the new detections after a successful call
            language: Language code for the model's answer
            with_metadata: Ask for position/color/background per item

        Raises:
            CollaboratorFailure: If the call fails and fallback mode is off
        """
        context = prior.descriptions if prior is not None else []
        outcome = await self._call_analyzer(image_bytes, image_index, context, language, with_metadata)

        if not outcome.ok:
            if self.fallback_enabled:
                logger.warning(f"Using empty result for {image_id_for(image_index)}: {outcome.error}")
                return []
            outcome.unwrap(f"vision analysis of {image_id_for(image_index)}")

        detections = self._annotate(outcome, image_index)
        if prior is not None:
            prior.extend(detections)
        return detections

    async def analyze_image(self, image_bytes: bytes, language: str = "en",
                            image_index: int = 0) -> ImageAnalysis:
        """Single-image analysis without request context.

        In fallback mode a failed call returns ImageAnalysis.fallback().
        """
        outcome = await self._call_analyzer(image_bytes, image_index, [], language, with_metadata=False)

        if not outcome.ok:
            if self.fallback_enabled:
                logger.warning(f"Using fallback analysis for {image_id_for(image_index)}: {outcome.error}")
                return ImageAnalysis.fallback()
            outcome.unwrap(f"vision analysis of {image_id_for(image_index)}")

        items = [ConsolidatedItem.from_detection(d) for d in self._annotate(outcome, image_index)]
        return ImageAnalysis.from_items(items, self.config.vision.default_confidence)

    async def analyze_images_batch(self, images: Sequence[bytes],
                                   language: str = "en") -> ImageAnalysis:
        """
        Analyze the images of one request as views of the same scene.

        Images are processed one at a time in index order so each prompt
        lists everything found in the earlier images. A failed image is
        recorded in the result's failures and the rest continue; only when
        every image fails is the last failure raised.
        """
        if not images:
            return ImageAnalysis.empty("No images provided")

        prior = PriorItemsContext()
        detections: List[AnnotatedDetection] = []
        failures: List[str] = []
        last_failure: Optional[CollaboratorFailure] = None

        for index, image_bytes in enumerate(images):
            try:
                found = await self.detect(image_bytes, index, prior, language, with_metadata=True)
            except CollaboratorFailure as e:
                logger.error(f"Skipping {image_id_for(index)}: {e}")
                failures.append(f"{image_id_for(index)}: {e}")
                last_failure = e
                continue

            logger.debug(f"{image_id_for(index)}: {len(found)} items, {len(prior)} known so far")
            detections.extend(found)

        if last_failure is not None and len(failures) == len(images):
            raise last_failure

        scorer = functools.partial(is_similar, dedup=self.config.dedup)
        items = merge(detections, scorer, self.config.dedup)
        logger.info(f"Batch of {len(images)} images produced {len(detections)} detections, "
                    f"{len(items)} unique items")
        return ImageAnalysis.from_items(items, self.config.vision.default_confidence, failures)

"""
Video analysis: extract frames, drop duplicates, analyze the unique frames
and merge what they found.

Frames are analyzed in fixed-width batches with asyncio.gather; the next
batch starts only after the previous one settled. With sequential_frames
enabled frames are analyzed one by one and each prompt lists the items of
the earlier frames. All extracted frames are deleted when processing ends,
including on failure or cancellation.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from config import Config
from detection_adapter import DetectionAdapter, PriorItemsContext
from exceptions import AppraisalSystemError, CollaboratorFailure, ProcessingError
from frame_reducer import FrameReducer, SeenHashes
from group_merger import merge
from image_processor import extract_frames, preprocess_image
from models import AnnotatedDetection, ConsolidatedItem, FrameResult, ImageAnalysis, VideoResult
from similarity import select_strategy
from utils import PerformanceTimer, remove_file_quietly

logger = logging.getLogger(__name__)

# A failed frame yields the exception instead of a result
FrameOutcome = Union[Tuple[FrameResult, List[AnnotatedDetection]], Exception]


class VideoProcessor:
    """Runs one uploaded video through the frame pipeline."""

    def __init__(self, config: Config, adapter: DetectionAdapter,
                 reducer: Optional[FrameReducer] = None,
                 frame_extractor: Callable[[Path, Config], List[Path]] = extract_frames):
        self.config = config
        self.adapter = adapter
        self.reducer = reducer or FrameReducer(config)
        self.frame_extractor = frame_extractor

    async def _analyze_frame(self, frame_path: Path, index: int, language: str,
                             prior: Optional[PriorItemsContext] = None) -> FrameOutcome:
        """Analyze one frame; a failure is logged and returned, not raised."""
        loop = asyncio.get_running_loop()
        try:
            image_bytes = await loop.run_in_executor(None, preprocess_image, frame_path, self.config)
            detections = await self.adapter.detect(
                image_bytes, index, prior, language, with_metadata=prior is not None)
        except (CollaboratorFailure, ProcessingError) as e:
            logger.error(f"Error processing frame {frame_path.name}: {e}")
            return e
        except Exception as e:
            logger.error(f"Unexpected error processing frame {frame_path.name}: {e}", exc_info=True)
            return e

        items = [ConsolidatedItem.from_detection(d) for d in detections]
        analysis = ImageAnalysis.from_items(items, self.config.vision.default_confidence)
        return FrameResult(frame=frame_path.name, analysis=analysis), detections

    async def _analyze_batched(self, frames: List[Path], language: str) -> List[FrameOutcome]:
        width = self.config.video.max_concurrent_frames
        outcomes: List[FrameOutcome] = []
        for start in range(0, len(frames), width):
            batch = frames[start:start + width]
            outcomes.extend(await asyncio.gather(*(
                self._analyze_frame(frame, start + offset, language)
                for offset, frame in enumerate(batch)
            )))
        return outcomes

    async def _analyze_sequential(self, frames: List[Path], language: str) -> List[FrameOutcome]:
        prior = PriorItemsContext()
        outcomes: List[FrameOutcome] = []
        for index, frame in enumerate(frames):
            outcomes.append(await self._analyze_frame(frame, index, language, prior))
        return outcomes

    async def process_video(self, video_path: Union[str, Path], language: str = "en",
                            seen: Optional[SeenHashes] = None) -> VideoResult:
        """
        Analyze one video.

        Failed frames are recorded in the result's failures and the rest
        continue.

        Raises:
            FrameExtractionError: If no frames could be extracted
            CollaboratorFailure: If every unique frame failed in the vision
                call and fallback mode is off
            ProcessingError: If every unique frame failed for another reason
        """
        video_path = Path(video_path)
        loop = asyncio.get_running_loop()

        with PerformanceTimer(f"Video processing of {video_path.name}"):
            frames = await loop.run_in_executor(None, self.frame_extractor, video_path, self.config)
            try:
                unique = await loop.run_in_executor(None, self.reducer.reduce, frames, seen)

                if self.config.video.sequential_frames:
                    outcomes = await self._analyze_sequential(unique, language)
                else:
                    outcomes = await self._analyze_batched(unique, language)
            finally:
                for frame in frames:
                    remove_file_quietly(frame)

        processed = []
        failures: List[str] = []
        last_failure: Optional[Exception] = None
        for frame, outcome in zip(unique, outcomes):
            if isinstance(outcome, Exception):
                failures.append(f"{video_path.name}/{frame.name}: {outcome}")
                last_failure = outcome
            else:
                processed.append(outcome)

        if last_failure is not None and not processed:
            if isinstance(last_failure, AppraisalSystemError):
                raise last_failure
            raise ProcessingError(f"Every frame of {video_path.name} failed: {last_failure}") from last_failure

        detections = [d for _, frame_detections in processed for d in frame_detections]
        items = merge(detections, select_strategy(detections), self.config.dedup)

        logger.info(f"Video {video_path.name}: {len(frames)} frames, {len(unique)} unique, "
                    f"{len(processed)} analyzed, {len(failures)} failed, {len(items)} items")
        return VideoResult(
            filename=video_path.name,
            total_frames=len(frames),
            unique_frames=len(unique),
            processed_frames=len(processed),
            results=[frame_result for frame_result, _ in processed],
            items=items,
            failures=failures,
        )

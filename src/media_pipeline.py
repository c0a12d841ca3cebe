#!/usr/bin/env python3
"""
Appraisal media pipeline.

Takes the photos and at most one video of a request, detects and
deduplicates the items they show, and builds the request-level summary.

Usage:
    python src/media_pipeline.py photo1.jpg photo2.jpg walkaround.mp4
    python src/media_pipeline.py photo.jpg --single-item --language fr --report
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from config import Config
from detection_adapter import DetectionAdapter
from exceptions import AppraisalSystemError, ImageProcessingError, ValidationError
from frame_reducer import SeenHashes
from image_processor import preprocess_image
from market_research import ValueEstimator, create_price_research
from models import ImageResult, MediaAnalysis, MediaResult, ReportItem
from report_service import JsonReportRenderer, ReportRequest, ReportService
from summary_consolidator import consolidate, generate_product_summary
from utils import PerformanceTimer
from video_processor import VideoProcessor
from vision_analyzer import OpenAIVisionAnalyzer, VisionAnalyzer

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v"}

PathLike = Union[str, Path]


@dataclass
class MediaOptions:
    """Per-request processing options."""
    language: str = "en"
    single_item: bool = False
    include_wear_tear: bool = False


class AppraisalPipeline:
    """
    Request-level orchestration of the media pipeline.

    All dedup state (seen frame hashes, prior-item context, groups) is
    created per call to process_media, so one pipeline can serve
    concurrent requests.
    """

    def __init__(self, config: Optional[Config] = None,
                 analyzer: Optional[VisionAnalyzer] = None,
                 video_processor: Optional[VideoProcessor] = None):
        self.config = config or Config()
        self.analyzer = analyzer or OpenAIVisionAnalyzer(self.config)
        self.adapter = DetectionAdapter(self.config, self.analyzer)
        self.video_processor = video_processor or VideoProcessor(self.config, self.adapter)

    def _limit_images(self, image_paths: Sequence[PathLike]) -> List[Path]:
        paths = [Path(p) for p in image_paths]
        max_images = self.config.storage.max_images
        if len(paths) > max_images:
            logger.warning(f"Request has {len(paths)} images, limiting to {max_images}")
            paths = paths[:max_images]
        return paths

    async def _preprocess_images(self, image_paths: List[Path]) -> Tuple[List[Path], List[bytes], List[str]]:
        """Resize and encode uploads; unreadable images are reported, not fatal."""
        loop = asyncio.get_running_loop()
        encoded = await asyncio.gather(
            *(loop.run_in_executor(None, preprocess_image, path, self.config) for path in image_paths),
            return_exceptions=True,
        )

        kept: List[Path] = []
        images: List[bytes] = []
        failures: List[str] = []
        for path, result in zip(image_paths, encoded):
            if isinstance(result, ImageProcessingError):
                logger.error(f"Skipping unreadable image {path.name}: {result}")
                failures.append(f"{path.name}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                kept.append(path)
                images.append(result)
        return kept, images, failures

    async def process_media(self, image_paths: Sequence[PathLike] = (),
                            video_paths: Sequence[PathLike] = (),
                            options: Optional[MediaOptions] = None) -> MediaAnalysis:
        """
        Analyze the media of one request.

        Raises:
            ValidationError: If no media or more than one video is given
            CollaboratorFailure: If vision analysis fails for every image
                and fallback mode is off
            FrameExtractionError: If the video yields no frames
        """
        options = options or MediaOptions()
        if len(video_paths) > 1:
            raise ValidationError("Only one video can be uploaded per request")
        if not image_paths and not video_paths:
            raise ValidationError("No media files provided")

        results: List[MediaResult] = []
        failures: List[str] = []

        with PerformanceTimer("Media processing"):
            for video_path in video_paths:
                video_result = await self.video_processor.process_video(
                    video_path, options.language, seen=SeenHashes())
                results.append(video_result)
                failures.extend(video_result.failures)

            paths = self._limit_images(image_paths)
            if paths:
                kept, images, image_failures = await self._preprocess_images(paths)
                failures.extend(image_failures)
                if images:
                    analysis = await self.adapter.analyze_images_batch(images, options.language)
                    failures.extend(analysis.failures)
                    results.append(ImageResult(
                        filenames=[path.name for path in kept],
                        analysis=analysis,
                        batch_processed=len(kept) > 1,
                    ))

        summary = generate_product_summary(results, self.config.storage.base_url)
        products = consolidate(summary, options.single_item)
        summary.sort(key=lambda item: item.confidence, reverse=True)

        logger.info(f"Request produced {len(summary)} items, {len(products)} products, "
                    f"{len(failures)} failures")
        return MediaAnalysis(results=results, summary=summary, products=products, failures=failures)


def report_items_from(analysis: MediaAnalysis) -> List[ReportItem]:
    """Report items for the products of a processed request."""
    items = []
    for product in analysis.products:
        lead = product.instances[0]
        items.append(ReportItem(
            name=product.name,
            condition=lead.condition,
            details=lead.details,
            image_url=lead.image_url,
        ))
    return items


def split_media(paths: Sequence[PathLike]) -> Tuple[List[Path], List[Path]]:
    """Split paths into images and videos by extension."""
    images, videos = [], []
    for raw in paths:
        path = Path(raw)
        suffix = path.suffix.lower()
        if suffix in IMAGE_EXTENSIONS:
            images.append(path)
        elif suffix in VIDEO_EXTENSIONS:
            videos.append(path)
        else:
            raise ValidationError(f"Unsupported media type: {path.name}")
    return images, videos


async def run(args: argparse.Namespace) -> dict:
    config = Config()
    config.storage.ensure_directories()
    pipeline = AppraisalPipeline(config)

    images, videos = split_media(args.files)
    options = MediaOptions(language=args.language, single_item=args.single_item,
                           include_wear_tear=args.wear_tear)
    analysis = await pipeline.process_media(images, videos, options)
    output = {'analysis': dataclasses.asdict(analysis)}

    if args.report and analysis.products:
        service = ReportService(
            config,
            research=create_price_research(config),
            estimator=ValueEstimator(config),
            renderer=JsonReportRenderer(config.storage.reports_dir),
        )
        request = ReportRequest(
            items=report_items_from(analysis),
            report_type=args.report_type,
            currency=args.currency,
            language=args.language,
            wear_tear_analysis=options.include_wear_tear,
        )
        report = await service.generate(request)
        output['report'] = str(report.file_path)

    return output


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Detect and appraise the items in photos and a video")
    parser.add_argument("files", nargs="+", help="Image files and at most one video")
    parser.add_argument("--single-item", action="store_true", help="Roll all items up into one valuation")
    parser.add_argument("--language", default="en", help="Language code for model answers (default: en)")
    parser.add_argument("--wear-tear", action="store_true", help="Estimate repair costs in the report")
    parser.add_argument("--report", action="store_true", help="Price the items and write a JSON report")
    parser.add_argument("--report-type", default="standard", choices=["full", "standard", "asset-listing"])
    parser.add_argument("--currency", default="USD", choices=["USD", "CAD"])
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger('httpx').setLevel(logging.WARNING)

    try:
        output = asyncio.run(run(args))
    except AppraisalSystemError as e:
        logger.error(f"Processing failed: {e}")
        return 1

    print(json.dumps(output, indent=2, default=str, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Image and video preparation before analysis.

preprocess_image shrinks uploads to fit the vision model's useful resolution
and re-encodes them as JPEG. extract_frames samples evenly spaced frames from
a video and writes them as PNG files for the frame reducer.
"""

import logging
import math
from pathlib import Path
from typing import List, Union

import cv2

from config import Config
from exceptions import FrameExtractionError, ImageProcessingError

logger = logging.getLogger(__name__)


def preprocess_image(path: Union[str, Path], config: Config) -> bytes:
    """Resize an image to fit inside the configured box and encode it as JPEG.

    Smaller images are never enlarged.
    """
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise ImageProcessingError(f"Could not read image: {path}")

    height, width = image.shape[:2]
    max_dimension = config.storage.max_image_dimension
    scale = min(1.0, max_dimension / max(height, width))
    if scale < 1.0:
        new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
        image = cv2.resize(image, new_size, interpolation=cv2.INTER_AREA)

    ok, buffer = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, config.storage.jpeg_quality])
    if not ok:
        raise ImageProcessingError(f"Could not encode image as JPEG: {path}")
    return buffer.tobytes()


def frame_timestamps(duration: float, frame_interval: float, max_frames: int) -> List[int]:
    """Whole-second timestamps of evenly spaced frames.

    One frame per interval, capped at max_frames, spread over the duration.
    """
    count = min(math.ceil(duration / frame_interval), max_frames) if duration > 0 else 0
    return [math.floor(i * duration / count) for i in range(count)]


def extract_frames(video_path: Union[str, Path], config: Config) -> List[Path]:
    """
    Sample frames from a video into the frames directory.

    Returns:
        Paths of the written PNG frames, in timestamp order

    Raises:
        FrameExtractionError: If the video cannot be opened, is too short,
            or no frame could be decoded
    """
    video_path = Path(video_path)
    capture = cv2.VideoCapture(str(video_path))
    if not capture.isOpened():
        raise FrameExtractionError(f"Could not open video: {video_path}")

    frames_dir = config.storage.frames_dir
    frames_dir.mkdir(parents=True, exist_ok=True)
    frames: List[Path] = []

    try:
        fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
        frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        duration = frame_count / fps if fps > 0 else 0.0

        timestamps = frame_timestamps(duration, config.video.frame_interval, config.video.max_frames)
        if not timestamps:
            raise FrameExtractionError(f"Video is too short: {video_path}")

        logger.debug(f"Extracting {len(timestamps)} frames from {video_path.name} ({duration:.1f}s)")

        for number, timestamp in enumerate(timestamps, start=1):
            capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000)
            ok, frame = capture.read()
            if not ok or frame is None:
                logger.warning(f"Could not decode frame at {timestamp}s of {video_path.name}")
                continue

            frame = cv2.resize(frame, config.video.frame_size, interpolation=cv2.INTER_AREA)
            frame_path = frames_dir / f"{video_path.stem}-{number}.png"
            if not cv2.imwrite(str(frame_path), frame):
                logger.warning(f"Could not write frame {frame_path}")
                continue
            frames.append(frame_path)
    finally:
        capture.release()

    if not frames:
        raise FrameExtractionError(f"No frames could be extracted from {video_path}")

    logger.info(f"Extracted {len(frames)} frames from {video_path.name}")
    return frames

"""
Utility helpers for the appraisal media pipeline.

This module contains:
- PerformanceTimer: Timing utility for performance measurement
- remove_file_quietly: Best-effort file cleanup
- image_index_from_id / public_image_url: Mapping items back to uploaded files
"""

import logging
import os
import re
import time
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

_IMAGE_ID_PATTERN = re.compile(r"image_([0-9]+)")


class PerformanceTimer:
    """Performance timing utility."""

    def __init__(self, operation_name="Operation"):
        self.operation_name = operation_name
        self.start_time = None
        self.end_time = None

    def start(self):
        """Start timing."""
        self.start_time = time.time()
        return self

    def stop(self):
        """Stop timing and return duration."""
        if self.start_time is None:
            return 0.0

        self.end_time = time.time()
        return self.end_time - self.start_time

    @property
    def duration(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    def __enter__(self):
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        duration = self.stop()
        if duration > 1.0:  # Log slow operations
            logger.info(f"{self.operation_name} took {duration:.2f}s")


def remove_file_quietly(path: Union[str, Path]) -> bool:
    """Delete a file, logging instead of raising when it cannot be removed.

    Returns True if the file was deleted by this call.
    """
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        logger.debug(f"File already gone: {path}")
        return False
    except OSError as e:
        logger.warning(f"Could not delete {path}: {e}")
        return False


def image_index_from_id(image_id: Optional[str]) -> int:
    """Return the 0-based index encoded in an id like "image_3"."""
    if not image_id:
        return 0
    match = _IMAGE_ID_PATTERN.search(image_id)
    if match:
        return int(match.group(1)) - 1
    return 0


def public_image_url(image_path: Optional[str], base_url: str,
                     original_filename: Optional[str] = None) -> Optional[str]:
    """Convert a local upload path into the URL it is served from."""
    if not image_path:
        return None
    if image_path.startswith(("http://", "https://")):
        return image_path
    filename = original_filename or os.path.basename(image_path)
    return f"{base_url.rstrip('/')}/uploads/{filename}"

"""
Duplicate frame elimination for extracted video frames.

Each frame gets an average hash from imagehash: the image is shrunk to an
8x8 grayscale thumbnail and every pixel becomes one bit, set when the pixel
is brighter than the thumbnail's mean. Frames whose hash was already seen
in the same request are deleted from disk and dropped. Matching is exact
equality of the hex strings, so a single differing bit keeps the frame.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Set, Union

import imagehash
from PIL import Image

from config import Config
from exceptions import ImageProcessingError
from utils import remove_file_quietly

logger = logging.getLogger(__name__)


def average_hash(path: Union[str, Path], hash_size: int = 8) -> str:
    """Compute the average hash of an image file.

    Returns the hash as hex, hash_size * hash_size / 4 characters.
    Raises ImageProcessingError if the file cannot be decoded.
    """
    try:
        with Image.open(path) as image:
            return str(imagehash.average_hash(image, hash_size))
    except OSError as e:
        raise ImageProcessingError(f"Could not read image for hashing: {path}") from e


class SeenHashes:
    """Hashes already kept within one request."""

    def __init__(self, hashes: Optional[Iterable[str]] = None):
        self._hashes: Set[str] = set(hashes or ())

    def add(self, frame_hash: str) -> bool:
        """Record a hash; returns False if it was already present."""
        if frame_hash in self._hashes:
            return False
        self._hashes.add(frame_hash)
        return True

    def __contains__(self, frame_hash: str) -> bool:
        return frame_hash in self._hashes

    def __len__(self) -> int:
        return len(self._hashes)


class FrameReducer:
    """Drops visually identical frames before they reach the vision model."""

    def __init__(self, config: Config):
        self.config = config
        self.hash_size = config.video.hash_size

    def reduce(self, frames: Iterable[Union[str, Path]],
               seen: Optional[SeenHashes] = None) -> List[Path]:
        """
        Return the frames whose hash has not been seen, in input order.

        Duplicates are removed from disk immediately; a failed delete is
        logged and does not stop the reduction.

        Args:
            frames: Frame image paths in extraction order
            seen: Accumulator shared across calls of the same request
        """
        if seen is None:
            seen = SeenHashes()

        unique: List[Path] = []
        duplicates = 0

        for frame in frames:
            frame_path = Path(frame)
            frame_hash = average_hash(frame_path, self.hash_size)

            if seen.add(frame_hash):
                unique.append(frame_path)
            else:
                duplicates += 1
                logger.debug(f"Dropping duplicate frame {frame_path.name}")
                remove_file_quietly(frame_path)

        if duplicates:
            logger.info(f"Frame reducer kept {len(unique)} frames, dropped {duplicates} duplicates")
        return unique

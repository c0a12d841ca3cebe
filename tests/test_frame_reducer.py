"""
Unit tests for average hashing and duplicate frame elimination.
"""

import cv2
import numpy as np
import pytest
from unittest.mock import patch

import sys
sys.path.append('src')

from config import Config
from exceptions import ImageProcessingError
from frame_reducer import FrameReducer, SeenHashes, average_hash


def write_frame(path, bright_cells, cell_size=(1, 1)):
    """Write an 8x8-cell frame whose first `bright_cells` cells are white.

    With the default cell size the frame is already thumbnail sized, so the
    hash bits follow the cells exactly.
    """
    cells = np.zeros(64, dtype=np.uint8)
    cells[:bright_cells] = 255
    image = np.kron(cells.reshape(8, 8), np.ones(cell_size, dtype=np.uint8))
    cv2.imwrite(str(path), image)
    return path


@pytest.fixture
def reducer():
    return FrameReducer(Config.create_test_config())


class TestAverageHash:
    """Test the average hash fingerprint."""

    def test_hash_bits_follow_brightness(self, tmp_path):
        frame = write_frame(tmp_path / "frame.png", 5)
        assert average_hash(frame) == "f800000000000000"

    def test_full_size_frame(self, tmp_path):
        frame = write_frame(tmp_path / "frame.png", 32, cell_size=(30, 40))
        assert average_hash(frame) == "ffffffff00000000"

    def test_hash_length(self, tmp_path):
        frame = write_frame(tmp_path / "frame.png", 20)
        assert len(average_hash(frame)) == 16
        assert len(average_hash(frame, hash_size=16)) == 64

    def test_uniform_image_hashes_to_zeros(self, tmp_path):
        path = tmp_path / "grey.png"
        cv2.imwrite(str(path), np.full((240, 320), 128, dtype=np.uint8))
        assert average_hash(path) == "0" * 16

    def test_color_image_matches_grayscale(self, tmp_path):
        gray = np.eye(8, dtype=np.uint8) * 255
        cv2.imwrite(str(tmp_path / "gray.png"), gray)
        cv2.imwrite(str(tmp_path / "color.png"), cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR))
        assert average_hash(tmp_path / "color.png") == average_hash(tmp_path / "gray.png")

    def test_unreadable_image(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_text("not an image")
        with pytest.raises(ImageProcessingError):
            average_hash(path)

    def test_missing_image(self, tmp_path):
        with pytest.raises(ImageProcessingError):
            average_hash(tmp_path / "missing.png")


class TestSeenHashes:
    """Test the request-scoped hash accumulator."""

    def test_add_reports_new_hashes(self):
        seen = SeenHashes()
        assert seen.add("0101") is True
        assert seen.add("0101") is False
        assert "0101" in seen
        assert len(seen) == 1

    def test_initial_hashes(self):
        seen = SeenHashes(["1111"])
        assert seen.add("1111") is False


class TestFrameReducer:
    """Test duplicate frame elimination."""

    def test_distinct_frames_all_kept(self, reducer, tmp_path):
        frames = [write_frame(tmp_path / f"frame_{i}.png", i) for i in range(1, 6)]
        unique = reducer.reduce(frames)

        assert unique == frames
        assert all(frame.exists() for frame in frames)

    def test_identical_frame_dropped(self, reducer, tmp_path):
        f1 = write_frame(tmp_path / "f1.png", 10)
        f2 = write_frame(tmp_path / "f2.png", 10)
        f3 = write_frame(tmp_path / "f3.png", 30)

        assert reducer.reduce([f1, f2, f3]) == [f1, f3]
        assert not f2.exists()
        assert f1.exists() and f3.exists()

    def test_ten_frames_with_one_repeat(self, reducer, tmp_path):
        """Frames 4 and 5 are identical, so frame 5 is removed."""
        patterns = [1, 2, 3, 4, 4, 6, 7, 8, 9, 10]
        frames = [write_frame(tmp_path / f"frame_{n}.png", bright)
                  for n, bright in enumerate(patterns, start=1)]

        unique = reducer.reduce(frames)

        assert len(unique) == 9
        assert frames[4] not in unique
        assert not frames[4].exists()
        assert unique == frames[:4] + frames[5:]

    def test_one_bit_difference_is_kept(self, reducer, tmp_path):
        f1 = write_frame(tmp_path / "f1.png", 31)
        f2 = write_frame(tmp_path / "f2.png", 32)
        assert reducer.reduce([f1, f2]) == [f1, f2]

    def test_seen_hashes_shared_across_calls(self, reducer, tmp_path):
        seen = SeenHashes()
        first = write_frame(tmp_path / "a.png", 12)
        again = write_frame(tmp_path / "b.png", 12)

        assert reducer.reduce([first], seen) == [first]
        assert reducer.reduce([again], seen) == []
        assert len(seen) == 1

    def test_fresh_state_per_call(self, reducer, tmp_path):
        first = write_frame(tmp_path / "a.png", 12)
        again = write_frame(tmp_path / "b.png", 12)

        assert reducer.reduce([first]) == [first]
        assert reducer.reduce([again]) == [again]

    def test_failed_delete_does_not_abort(self, reducer, tmp_path):
        f1 = write_frame(tmp_path / "f1.png", 7)
        f2 = write_frame(tmp_path / "f2.png", 7)
        f3 = write_frame(tmp_path / "f3.png", 9)

        with patch('utils.Path.unlink', side_effect=PermissionError("read-only")):
            unique = reducer.reduce([f1, f2, f3])

        assert unique == [f1, f3]
        assert f2.exists()

    def test_empty_input(self, reducer):
        assert reducer.reduce([]) == []


if __name__ == '__main__':
    pytest.main([__file__])

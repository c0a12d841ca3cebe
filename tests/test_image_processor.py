"""
Unit tests for image preprocessing and frame extraction.
"""

import cv2
import numpy as np
import pytest
from unittest.mock import Mock, patch

import sys
sys.path.append('src')

from config import Config
from exceptions import FrameExtractionError, ImageProcessingError
from image_processor import extract_frames, frame_timestamps, preprocess_image


def write_image(path, width, height):
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, : width // 2] = (40, 120, 200)
    cv2.imwrite(str(path), image)
    return path


def fake_capture(fps=30.0, frame_count=900.0, opened=True, readable=True):
    capture = Mock()
    capture.isOpened.return_value = opened
    capture.get.side_effect = lambda prop: {
        cv2.CAP_PROP_FPS: fps,
        cv2.CAP_PROP_FRAME_COUNT: frame_count,
    }.get(prop, 0.0)
    frame = np.full((480, 640, 3), 90, dtype=np.uint8)
    capture.read.return_value = (True, frame) if readable else (False, None)
    return capture


class TestPreprocessImage:
    """Test resizing and JPEG encoding of uploads."""

    def test_large_image_shrunk(self, tmp_path):
        config = Config.create_test_config()
        data = preprocess_image(write_image(tmp_path / "big.png", 1600, 1200), config)

        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape[:2] == (600, 800)
        assert data[:2] == b"\xff\xd8"  # JPEG magic

    def test_small_image_not_enlarged(self, tmp_path):
        config = Config.create_test_config()
        data = preprocess_image(write_image(tmp_path / "small.png", 200, 100), config)

        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape[:2] == (100, 200)

    def test_portrait_image(self, tmp_path):
        config = Config.create_test_config()
        data = preprocess_image(write_image(tmp_path / "tall.png", 500, 1000), config)

        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape[:2] == (800, 400)

    def test_unreadable_image(self, tmp_path):
        path = tmp_path / "upload.jpg"
        path.write_bytes(b"garbage")
        with pytest.raises(ImageProcessingError):
            preprocess_image(path, Config.create_test_config())


class TestFrameTimestamps:
    """Test evenly spaced frame sampling."""

    def test_one_frame_per_interval(self):
        assert frame_timestamps(30.0, 3.0, 10) == [0, 3, 6, 9, 12, 15, 18, 21, 24, 27]

    def test_capped_at_max_frames(self):
        assert frame_timestamps(100.0, 3.0, 10) == [0, 10, 20, 30, 40, 50, 60, 70, 80, 90]

    def test_short_video(self):
        assert frame_timestamps(4.0, 3.0, 10) == [0, 2]
        assert frame_timestamps(1.0, 3.0, 10) == [0]

    def test_zero_duration(self):
        assert frame_timestamps(0.0, 3.0, 10) == []


class TestExtractFrames:
    """Test frame extraction with a mocked video capture."""

    def test_frames_written(self, tmp_path):
        config = Config.create_test_config(STORAGE_DATA_DIR=str(tmp_path))
        capture = fake_capture()

        with patch('image_processor.cv2.VideoCapture', return_value=capture):
            frames = extract_frames(tmp_path / "walkaround.mp4", config)

        assert len(frames) == 10
        assert frames[0].name == "walkaround-1.png"
        assert all(frame.parent == config.storage.frames_dir for frame in frames)
        assert cv2.imread(str(frames[0])).shape == (240, 320, 3)
        capture.release.assert_called_once()

    def test_seeks_to_timestamps(self, tmp_path):
        config = Config.create_test_config(STORAGE_DATA_DIR=str(tmp_path))
        capture = fake_capture(frame_count=180.0)  # 6 seconds

        with patch('image_processor.cv2.VideoCapture', return_value=capture):
            extract_frames(tmp_path / "clip.mp4", config)

        positions = [call.args[1] for call in capture.set.call_args_list]
        assert positions == [0, 3000]

    def test_unopenable_video(self, tmp_path):
        config = Config.create_test_config(STORAGE_DATA_DIR=str(tmp_path))
        with patch('image_processor.cv2.VideoCapture', return_value=fake_capture(opened=False)):
            with pytest.raises(FrameExtractionError, match="Could not open"):
                extract_frames(tmp_path / "clip.mp4", config)

    def test_zero_length_video(self, tmp_path):
        config = Config.create_test_config(STORAGE_DATA_DIR=str(tmp_path))
        capture = fake_capture(frame_count=0.0)

        with patch('image_processor.cv2.VideoCapture', return_value=capture):
            with pytest.raises(FrameExtractionError, match="too short"):
                extract_frames(tmp_path / "clip.mp4", config)
        capture.release.assert_called_once()

    def test_undecodable_frames(self, tmp_path):
        config = Config.create_test_config(STORAGE_DATA_DIR=str(tmp_path))
        with patch('image_processor.cv2.VideoCapture', return_value=fake_capture(readable=False)):
            with pytest.raises(FrameExtractionError, match="No frames"):
                extract_frames(tmp_path / "clip.mp4", config)


if __name__ == '__main__':
    pytest.main([__file__])

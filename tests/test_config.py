"""
Unit tests for configuration system.
"""

import os
import pytest
from pathlib import Path
from unittest.mock import patch

import sys
sys.path.append('src')

from config import (
    Config, ConfigurationError, DedupConfig, MarketConfig,
    StorageConfig, VideoConfig, VisionConfig
)


class TestVisionConfig:
    """Test vision configuration validation."""

    def test_defaults(self):
        config = VisionConfig()
        assert config.model == "gpt-4.1"
        assert config.max_retries == 3
        assert config.retry_delay == 1.0
        assert config.use_fallback_values is False

    def test_invalid_retries(self):
        with pytest.raises(ValueError, match="Max retries cannot be negative"):
            VisionConfig(max_retries=-1)

    def test_invalid_confidence(self):
        with pytest.raises(ValueError, match="Default confidence"):
            VisionConfig(default_confidence=1.5)


class TestDedupConfig:
    """Test deduplication thresholds."""

    def test_defaults(self):
        config = DedupConfig()
        assert config.acceptance_threshold == 0.5
        assert config.color_bonus == 0.3
        assert config.confidence_cap == 0.95

    def test_invalid_threshold(self):
        with pytest.raises(ValueError, match="Acceptance threshold"):
            DedupConfig(acceptance_threshold=0)


class TestVideoConfig:
    """Test video configuration validation."""

    def test_defaults(self):
        config = VideoConfig()
        assert config.max_frames == 10
        assert config.frame_interval == 3.0
        assert config.frame_size == (320, 240)
        assert config.max_concurrent_frames == 3

    def test_invalid_frame_size(self):
        with pytest.raises(ValueError, match="Invalid frame size"):
            VideoConfig(frame_size=(0, 240))

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError, match="Max concurrent frames"):
            VideoConfig(max_concurrent_frames=0)


class TestMarketAndStorageConfig:
    """Test market and storage sections."""

    def test_invalid_provider(self):
        with pytest.raises(ValueError, match="Invalid price provider"):
            MarketConfig(provider="auction")

    def test_storage_paths(self, tmp_path):
        storage = StorageConfig(data_dir=tmp_path)
        assert storage.upload_dir == tmp_path / "uploads"
        assert storage.frames_dir == tmp_path / "frames"

        storage.ensure_directories()
        assert storage.reports_dir.is_dir()

    def test_invalid_jpeg_quality(self):
        with pytest.raises(ValueError, match="JPEG quality"):
            StorageConfig(jpeg_quality=0)


class TestConfig:
    """Test main configuration class."""

    def test_test_config(self):
        config = Config.create_test_config()
        assert config.vision.api_key == "test_key"
        assert config.vision.retry_delay == 0.0
        assert config.storage.data_dir == Path("data")

    def test_env_overrides(self):
        config = Config.create_test_config(
            VISION_MAX_RETRIES="5",
            USE_FALLBACK_VALUES="yes",
            VIDEO_MAX_FRAMES="20",
            VIDEO_SEQUENTIAL_FRAMES="1",
            MAX_IMAGES="12",
        )
        assert config.vision.max_retries == 5
        assert config.vision.use_fallback_values is True
        assert config.video.max_frames == 20
        assert config.video.sequential_frames is True
        assert config.storage.max_images == 12

    def test_invalid_number_uses_default(self):
        config = Config.create_test_config(VISION_MAX_RETRIES="many", VIDEO_FRAME_INTERVAL="soon")
        assert config.vision.max_retries == 3
        assert config.video.frame_interval == 3.0

    def test_invalid_value_raises(self):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            Config.create_test_config(VIDEO_MAX_FRAMES="0")

    def test_shopping_requires_key(self):
        with pytest.raises(ConfigurationError, match="SERPAPI_KEY"):
            Config.create_test_config(PRICE_PROVIDER="shopping")

        config = Config.create_test_config(PRICE_PROVIDER="shopping", SERPAPI_KEY="key")
        assert config.market.serpapi_key == "key"

    def test_reads_process_environment(self):
        env = {'OPENAI_API_KEY': 'env_key', 'VISION_MODEL': 'gpt-4o-mini'}
        with patch.dict(os.environ, env, clear=True), patch('config.load_dotenv') as load_dotenv:
            config = Config()

        load_dotenv.assert_called_once()
        assert config.vision.api_key == "env_key"
        assert config.vision.model == "gpt-4o-mini"

    def test_get_summary(self):
        summary = Config.create_test_config().get_summary()

        assert summary['vision']['model'] == "gpt-4.1"
        assert summary['video']['max_concurrent_frames'] == 3
        assert summary['market']['provider'] == "web"
        assert 'api_key' not in summary['vision']


if __name__ == '__main__':
    pytest.main([__file__])

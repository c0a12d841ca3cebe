"""
Configuration for the appraisal media pipeline.

Settings are grouped into validated sections and can be overridden through
environment variables (a local .env file is loaded first).
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from exceptions import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    'Config', 'ConfigurationError', 'VisionConfig', 'DedupConfig',
    'VideoConfig', 'MarketConfig', 'StorageConfig',
]


@dataclass
class VisionConfig:
    """Vision model and retry settings."""
    model: str = "gpt-4.1"
    api_key: Optional[str] = None
    max_tokens: int = 8192
    request_timeout: float = 60.0
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds, multiplied by the attempt number
    use_fallback_values: bool = False
    default_confidence: float = 0.8

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("Max retries cannot be negative")
        if self.retry_delay < 0:
            raise ValueError("Retry delay cannot be negative")
        if not 0 < self.default_confidence <= 1:
            raise ValueError("Default confidence must be between 0 and 1")


@dataclass
class DedupConfig:
    """Thresholds used when merging detections across images."""
    acceptance_threshold: float = 0.5
    color_bonus: float = 0.3
    details_containment_bonus: float = 0.3
    details_overlap_base: float = 0.2
    details_overlap_weight: float = 0.3
    details_overlap_cap: float = 0.5
    min_overlap_ratio: float = 0.3
    confidence_increment: float = 0.05
    confidence_cap: float = 0.95

    def __post_init__(self):
        if not 0 < self.acceptance_threshold <= 1:
            raise ValueError("Acceptance threshold must be between 0 and 1")
        if not 0 < self.confidence_cap <= 1:
            raise ValueError("Confidence cap must be between 0 and 1")
        if self.confidence_increment < 0:
            raise ValueError("Confidence increment cannot be negative")


@dataclass
class VideoConfig:
    """Frame extraction and frame analysis settings."""
    max_frames: int = 10
    frame_interval: float = 3.0  # seconds between extracted frames
    frame_size: tuple = (320, 240)
    hash_size: int = 8
    max_concurrent_frames: int = 3
    sequential_frames: bool = False  # feed earlier frames as context

    def __post_init__(self):
        if self.max_frames <= 0:
            raise ValueError("Max frames must be positive")
        if self.frame_interval <= 0:
            raise ValueError("Frame interval must be positive")
        if self.frame_size[0] <= 0 or self.frame_size[1] <= 0:
            raise ValueError(f"Invalid frame size: {self.frame_size}")
        if self.max_concurrent_frames <= 0:
            raise ValueError("Max concurrent frames must be positive")


@dataclass
class MarketConfig:
    """Market research settings."""
    provider: str = "web"  # "web" (OpenAI) or "shopping" (SerpAPI)
    model: str = "gpt-4o"
    serpapi_key: Optional[str] = None
    serpapi_url: str = "https://serpapi.com/search"
    max_results: int = 10
    request_timeout: float = 30.0

    def __post_init__(self):
        if self.provider not in ("web", "shopping"):
            raise ValueError(f"Invalid price provider: {self.provider}")
        if self.max_results <= 0:
            raise ValueError("Max results must be positive")


@dataclass
class StorageConfig:
    """Storage paths and upload limits."""
    data_dir: Path = field(default_factory=lambda: Path("data"))
    max_images: int = 50
    max_image_dimension: int = 800
    jpeg_quality: int = 80
    base_url: str = "http://localhost:3000"

    def __post_init__(self):
        if self.max_images <= 0:
            raise ValueError("Max images must be positive")
        if not 0 < self.jpeg_quality <= 100:
            raise ValueError("JPEG quality must be between 1 and 100")
        self.data_dir = Path(self.data_dir)

    @property
    def upload_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def frames_dir(self) -> Path:
        return self.data_dir / "frames"

    @property
    def reports_dir(self) -> Path:
        return self.data_dir / "reports"

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.upload_dir, self.frames_dir, self.reports_dir):
            directory.mkdir(parents=True, exist_ok=True)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {value!r}, using {default}")
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Main configuration object shared by all pipeline components."""

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        if env is None:
            load_dotenv()
            env = os.environ

        try:
            self.vision = VisionConfig(
                model=env.get("VISION_MODEL", "gpt-4.1"),
                api_key=env.get("OPENAI_API_KEY"),
                max_retries=_env_int(env, "VISION_MAX_RETRIES", 3),
                retry_delay=_env_float(env, "VISION_RETRY_DELAY", 1.0),
                use_fallback_values=_env_bool(env, "USE_FALLBACK_VALUES", False),
            )
            self.dedup = DedupConfig()
            self.video = VideoConfig(
                max_frames=_env_int(env, "VIDEO_MAX_FRAMES", 10),
                frame_interval=_env_float(env, "VIDEO_FRAME_INTERVAL", 3.0),
                max_concurrent_frames=_env_int(env, "VIDEO_MAX_CONCURRENT_FRAMES", 3),
                sequential_frames=_env_bool(env, "VIDEO_SEQUENTIAL_FRAMES", False),
            )
            self.market = MarketConfig(
                provider=env.get("PRICE_PROVIDER", "web"),
                serpapi_key=env.get("SERPAPI_KEY"),
            )
            self.storage = StorageConfig(
                data_dir=Path(env.get("STORAGE_DATA_DIR", "data")),
                max_images=_env_int(env, "MAX_IMAGES", 50),
                base_url=env.get("BASE_URL", "http://localhost:3000"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        if self.market.provider == "shopping" and not self.market.serpapi_key:
            raise ConfigurationError("SERPAPI_KEY is required when PRICE_PROVIDER=shopping")

    @classmethod
    def create_test_config(cls, **overrides) -> 'Config':
        """Build a configuration that ignores the real environment and .env file."""
        env = {'OPENAI_API_KEY': 'test_key', 'VISION_RETRY_DELAY': '0'}
        env.update({key: str(value) for key, value in overrides.items()})
        return cls(env=env)

    def get_summary(self) -> dict:
        return {
            'vision': {
                'model': self.vision.model,
                'max_retries': self.vision.max_retries,
                'retry_delay': self.vision.retry_delay,
                'fallback': self.vision.use_fallback_values,
            },
            'dedup': {
                'threshold': self.dedup.acceptance_threshold,
                'confidence_cap': self.dedup.confidence_cap,
            },
            'video': {
                'max_frames': self.video.max_frames,
                'frame_interval': self.video.frame_interval,
                'max_concurrent_frames': self.video.max_concurrent_frames,
                'sequential_frames': self.video.sequential_frames,
            },
            'market': {
                'provider': self.market.provider,
            },
            'storage': {
                'data_dir': str(self.storage.data_dir),
                'max_images': self.storage.max_images,
            },
        }

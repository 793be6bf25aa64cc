"""Application configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


# Empirical calibration constants. Their source is not derivable from the
# surrounding logic, so they are kept as-is rather than re-fitted.

BOARD_CENTER_OFFSET = 0.02
"""Downward offset (normalized units) from the ankle midpoint to the deck."""

LANDED_SCORE_THRESHOLD = 40
"""A narrated score strictly above this counts as a landed trick."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Crete"
    debug: bool = False
    api_prefix: str = "/api"

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url: str = "sqlite+aiosqlite:///./crete.db"
    database_url_sync: str = "sqlite:///./crete.db"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Storage
    upload_dir: str = "./uploads"
    max_video_size_mb: int = 50

    # Frame sampling
    sample_fps: float = 30.0
    processing_frame_width: int = 640  # Resize frames before pose estimation (0 = no resize)
    seek_timeout_seconds: float = 5.0
    estimate_timeout_seconds: float = 10.0

    # Pose Estimation
    pose_model_complexity: int = 1  # 0=lite, 1=full, 2=heavy
    pose_model_dir: Optional[str] = None
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5

    # Kinematics
    board_center_offset: float = BOARD_CENTER_OFFSET
    landed_score_threshold: int = LANDED_SCORE_THRESHOLD

    # Overlay playback
    overlay_refresh_hz: float = 60.0

    # Narration (Gemini)
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

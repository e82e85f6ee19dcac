"""Environment-based configuration for FaceScope."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODELS_DIR = Path(__file__).resolve().parent / "models"


class Settings(BaseSettings):
    """Application settings loaded from FACESCOPE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FACESCOPE_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 5001
    cors_origins: list[str] = ["*"]
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Model artifacts
    models_dir: Path = DEFAULT_MODELS_DIR
    model_repo: str | None = None
    model_revision: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Detection
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    iou_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    max_faces: int = Field(default=100, ge=1)

    # Concurrency (queue_timeout=None waits for a worker indefinitely)
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float | None = Field(default=None, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()

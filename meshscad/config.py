from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.llm_client import LLM_NAMES


SERVICE_ROOT = Path(__file__).resolve().parents[1]

load_dotenv(SERVICE_ROOT / ".env", override=False)


def _default_concurrency() -> int:
    cpu = os.cpu_count() or 2
    return max(1, min(4, cpu // 2 if cpu > 2 else 1))


class ReconstructionSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MESHSCAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    service_name: str = "meshscad-service"
    host: str = "0.0.0.0"
    port: int = 8110
    log_level: str = "INFO"

    # LLM API keys
    anthropic_api_key: str = Field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""))
    gemini_api_key: str = Field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    gemini_model: str = Field(default_factory=lambda: os.getenv("GEMINI_MODEL", "gemini-3-pro-preview"))
    default_llm: str = "gemini"
    explanation_language: str = "English"

    # Capture
    render_width: int = Field(default=1024, ge=128, le=4096)
    render_height: int = Field(default=1024, ge=128, le=4096)
    camera_fov: float = Field(default=40.0, gt=0.0, lt=180.0)
    settle_delay_seconds: float = Field(default=0.2, ge=0.0, le=5.0)
    standard_margin: float = Field(default=1.6, gt=0.0)
    detail_zoom: float = Field(default=0.55, gt=0.0)
    capture_quality: int = Field(default=95, ge=1, le=100)
    gl_platform: str = "egl"

    # Frame optimisation before inference
    optimize_max_dim: int = Field(default=800, ge=64, le=4096)
    optimize_quality: int = Field(default=80, ge=1, le=100)

    # Storage
    storage_dir: Path = Field(default_factory=lambda: SERVICE_ROOT / "data")
    sessions_subdir: str = "sessions"
    uploads_subdir: str = "uploads"
    artifact_cache_subdir: str = "artifact_cache"

    # Concurrency
    max_concurrent_jobs: int = Field(default_factory=_default_concurrency, ge=1, le=32)
    max_queue_size: int = Field(default=64, ge=1, le=10000)
    sync_wait_timeout_seconds: int = Field(default=600, ge=30, le=3600)

    # Job lifecycle
    finished_job_ttl_seconds: int = Field(default=1800, ge=60, le=86400)
    cleanup_interval_seconds: int = Field(default=30, ge=5, le=3600)
    max_job_records: int = Field(default=2000, ge=100, le=200000)

    # Auth
    api_key: str | None = None

    @field_validator("default_llm", mode="after")
    @classmethod
    def _check_llm(cls, value: str) -> str:
        if value not in LLM_NAMES:
            raise ValueError(f"default_llm must be one of: {', '.join(LLM_NAMES)}")
        return value

    @field_validator("storage_dir", mode="after")
    @classmethod
    def _resolve_storage(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @property
    def sessions_dir(self) -> Path:
        return self.storage_dir / self.sessions_subdir

    @property
    def uploads_dir(self) -> Path:
        return self.storage_dir / self.uploads_subdir

    @property
    def artifact_cache_dir(self) -> Path:
        return self.storage_dir / self.artifact_cache_subdir

    @property
    def claude_available(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def gemini_available(self) -> bool:
        return bool(self.gemini_api_key)


settings = ReconstructionSettings()

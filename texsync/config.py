"""Centralized settings — all env vars and magic numbers live here."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env before anything reads os.getenv
load_dotenv(Path(__file__).resolve().parent / ".env")


class Settings(BaseSettings):
    """Application settings. Values come from environment variables, then defaults."""

    # ── Compile worker ──
    latex_service_url: str = Field(default="", alias="LATEX_SERVICE_URL")
    latex_service_api_key: str = Field(default="", alias="LATEX_SERVICE_API_KEY")

    # ── Progress callbacks ──
    site_url: str = Field(default="", alias="SITE_URL")
    cloud_url: str = Field(default="", alias="CLOUD_URL")
    compile_secret: str = Field(default="", alias="LATEX_COMPILE_SECRET")
    cloud_url_suffix: str = ".convex.cloud"
    site_url_suffix: str = ".convex.site"
    progress_callback_path: str = "/api/compile-progress"

    # ── Server ──
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS",
    )
    artifact_dir: str = Field(default="", alias="ARTIFACT_DIR")
    compile_rate_limit: str = "30/hour"

    # ── Timeouts (seconds) ──
    # Sized for clone + compile of large trees on the worker.
    compile_timeout_s: float = 600.0
    cache_clear_timeout_s: float = 30.0
    clone_timeout_s: float = 60.0
    hash_timeout_s: float = 10.0
    progress_stream_timeout_s: float = 600.0
    progress_poll_interval_s: float = 0.5

    # ── Retry budget ──
    compile_attempts: int = 2
    cache_clear_attempts: int = 1
    retry_backoff_s: float = 1.0

    # ── Error truncation (characters) ──
    max_log_chars: int = 20_000
    max_raw_error_chars: int = 500

    model_config = {"env_file": ".env", "extra": "ignore", "populate_by_name": True}

    def resolved_site_url(self) -> str:
        """Site URL, derived from the cloud URL by suffix substitution when unset."""
        if self.site_url:
            return self.site_url.rstrip("/")
        if self.cloud_url:
            return self.cloud_url.replace(self.cloud_url_suffix, self.site_url_suffix).rstrip("/")
        return ""


@dataclass(frozen=True)
class CompilerConfig:
    """Explicit configuration handed to the compile orchestrator at construction."""

    worker_url: str = ""
    site_url: str = ""
    callback_secret: str = ""
    api_key: str = ""
    progress_callback_path: str = "/api/compile-progress"
    compile_attempts: int = 2
    cache_clear_attempts: int = 1
    retry_backoff_s: float = 1.0
    compile_timeout_s: float = 600.0
    cache_clear_timeout_s: float = 30.0
    clone_timeout_s: float = 60.0
    hash_timeout_s: float = 10.0
    max_log_chars: int = 20_000
    max_raw_error_chars: int = 500

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompilerConfig":
        return cls(
            worker_url=settings.latex_service_url.rstrip("/"),
            site_url=settings.resolved_site_url(),
            callback_secret=settings.compile_secret,
            api_key=settings.latex_service_api_key,
            progress_callback_path=settings.progress_callback_path,
            compile_attempts=settings.compile_attempts,
            cache_clear_attempts=settings.cache_clear_attempts,
            retry_backoff_s=settings.retry_backoff_s,
            compile_timeout_s=settings.compile_timeout_s,
            cache_clear_timeout_s=settings.cache_clear_timeout_s,
            clone_timeout_s=settings.clone_timeout_s,
            hash_timeout_s=settings.hash_timeout_s,
            max_log_chars=settings.max_log_chars,
            max_raw_error_chars=settings.max_raw_error_chars,
        )


@lru_cache
def get_settings() -> Settings:
    """Return cached singleton settings instance."""
    return Settings()

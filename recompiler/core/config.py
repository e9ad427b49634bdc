"""Core configuration for the recompiler."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Built once at the CLI boundary and handed to every component, so two
    pipelines in the same process can run with different platforms or
    cache directories.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RECOMPILER_",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # ── Binary repository ────────────────────────────────────────────────
    platform: str = "linux-amd64"
    binary_repository_url: str = "https://binaries.soliditylang.org"
    cache_dir: str = "./solc-repo"
    http_timeout_seconds: float = 30.0

    # ── Compiler invocation ──────────────────────────────────────────────
    compile_timeout_seconds: float | None = 600.0
    max_output_bytes: int = 20_000_000
    legacy_worker_threshold: str = "0.4.0"

    # ── Targets / results ────────────────────────────────────────────────
    library_map_filename: str = "library-map.json"
    output_dir: str = "out"
    batch_concurrency: int = 4

    @property
    def effective_compile_timeout(self) -> float | None:
        """Subprocess timeout, with ``0`` meaning no limit."""
        if not self.compile_timeout_seconds:
            return None
        return self.compile_timeout_seconds


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()

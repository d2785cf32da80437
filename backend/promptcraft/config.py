"""Application configuration using Pydantic Settings."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


def _default_data_dir() -> str:
    """Resolve the per-user data directory.

    Snap packages get their (unversioned, then versioned) user data dir;
    everything else lands in ~/.promptcraft.
    """
    snap_common = os.environ.get("SNAP_USER_COMMON")
    if snap_common:
        return str(Path(snap_common) / "promptcraft")
    snap_data = os.environ.get("SNAP_USER_DATA")
    if snap_data:
        return str(Path(snap_data) / "promptcraft")
    return str(Path(os.environ.get("HOME", "/tmp")) / ".promptcraft")


class Settings(BaseSettings):
    """PromptCraft application settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "PromptCraft"
    DEBUG: bool = False

    # --- Storage ---
    DATA_DIR: str = _default_data_dir()
    DATABASE_FILE: str = "promptcraft.db"
    MEDIA_SUBDIR: str = "media"

    @property
    def DATABASE_URL(self) -> str:
        """Async SQLite connection string using the aiosqlite driver."""
        return f"sqlite+aiosqlite:///{Path(self.DATA_DIR) / self.DATABASE_FILE}"

    @property
    def MEDIA_DIR(self) -> str:
        """Directory that normalized generation outputs are written to."""
        return str(Path(self.DATA_DIR) / self.MEDIA_SUBDIR)

    # --- Job processor ---
    JOB_BATCH_SIZE: int = 10
    JOB_POLL_INTERVAL: float = 5.0

    # --- HTTP ---
    HTTP_TIMEOUT: float = 120.0

    # --- Remote endpoints ---
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com/v1"
    ANTHROPIC_VERSION: str = "2023-06-01"
    GOOGLE_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    XAI_BASE_URL: str = "https://api.x.ai/v1"

    # --- Optional credentials applied at startup ---
    OPENAI_API_KEY: str = ""
    OPENAI_ORGANIZATION: str = ""
    ANTHROPIC_API_KEY: str = ""
    GOOGLE_API_KEY: str = ""
    XAI_API_KEY: str = ""

    # --- Optional local tool endpoints applied at startup ---
    A1111_API_URL: str = ""
    COMFYUI_API_URL: str = ""
    INVOKEAI_API_URL: str = ""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()

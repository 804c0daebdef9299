"""Environment-driven settings for the auth core.

Reads DISASTERCONNECT_* variables, after loading an optional .env file from
the working directory. Every setting has a default that works against the
hosted DisasterConnect API, so a bare `AuthSettings.from_env()` is usable.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_API_URL = "https://disasterconnect-api.vercel.app/api"


class AuthSettings(BaseModel):
    """Configuration for the identity client and persisted state."""

    api_url: str = DEFAULT_API_URL
    http_timeout: float = 30.0
    max_retries: int = 3
    retry_wait_max: float = 30.0
    storage_prefix: str = ""

    @classmethod
    def from_env(cls, dotenv: bool = True, dotenv_path: Path | None = None) -> AuthSettings:
        """Build settings from the environment.

        Args:
            dotenv: Load a .env file first. Existing variables win over it.
            dotenv_path: File to load. Defaults to .env in the working directory.
        """
        if dotenv:
            load_dotenv(dotenv_path or Path.cwd() / ".env")

        return cls(
            api_url=os.environ.get("DISASTERCONNECT_API_URL", DEFAULT_API_URL).rstrip("/"),
            http_timeout=float(os.environ.get("DISASTERCONNECT_HTTP_TIMEOUT", "30.0")),
            max_retries=int(os.environ.get("DISASTERCONNECT_MAX_RETRIES", "3")),
            retry_wait_max=float(os.environ.get("DISASTERCONNECT_RETRY_WAIT_MAX", "30.0")),
            storage_prefix=os.environ.get("DISASTERCONNECT_STORAGE_PREFIX", ""),
        )

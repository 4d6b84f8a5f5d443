"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_PORT = "8080"


@dataclass
class Config:
    """Settings for the database, HTTP server and secrets."""

    database_url: str = ""
    port: str = DEFAULT_PORT
    session_key: str = ""
    csrf_key: str = ""
    csrf_secure: bool = False
    title: str = ""

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Build a configuration from ``environ`` (``os.environ`` by default)."""
        env = os.environ if environ is None else environ
        return cls(
            database_url=env.get("DATABASE_URL", ""),
            port=env.get("PORT", "") or DEFAULT_PORT,
            session_key=env.get("SESSION_KEY", ""),
            csrf_key=env.get("CSRF_KEY", ""),
            csrf_secure=env.get("CSRF_SECURE", "") == "true",
            title=env.get("TITLE", ""),
        )
"""
Configuration - environment variables in one place.

Read from the environment at call time so tests can override
them with monkeypatch.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path

from .engine_core.state import DEFAULT_TOPIC


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    """Application settings."""
    env: str = "development"
    home_dir: Path = field(default_factory=lambda: Path.home() / ".pokerplan")
    server_url: str = "http://127.0.0.1:8000"
    share_base_url: str = "http://127.0.0.1:8000/"
    max_participants: int = 25  # 0 disables the cap
    session_ttl_seconds: int = 24 * 3600
    default_topic: str = DEFAULT_TOPIC
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @property
    def identity_path(self) -> Path:
        return self.home_dir / "identity.json"

    @classmethod
    def from_env(cls) -> Settings:
        home = os.getenv("POKERPLAN_HOME")
        server_url = os.getenv("POKERPLAN_SERVER_URL", "http://127.0.0.1:8000")
        return cls(
            env=os.getenv("POKERPLAN_ENV", "development"),
            home_dir=Path(home).expanduser() if home else Path.home() / ".pokerplan",
            server_url=server_url,
            share_base_url=os.getenv("POKERPLAN_SHARE_BASE_URL", server_url.rstrip("/") + "/"),
            max_participants=_int_env("POKERPLAN_MAX_PARTICIPANTS", 25),
            session_ttl_seconds=_int_env("POKERPLAN_SESSION_TTL", 24 * 3600),
            default_topic=os.getenv("POKERPLAN_DEFAULT_TOPIC", DEFAULT_TOPIC),
            allowed_origins=[
                o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()
            ],
            log_level=os.getenv("POKERPLAN_LOG_LEVEL", "INFO").upper(),
        )


def get_settings() -> Settings:
    return Settings.from_env()

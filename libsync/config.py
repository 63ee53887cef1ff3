"""Client configuration from environment variables."""
import os
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables (prefix LIBSYNC_)."""

    model_config = SettingsConfigDict(env_prefix="LIBSYNC_", case_sensitive=False)

    # Path for the local SQLite state database (used if DATABASE_URL not set)
    data_path: str = "./data"

    # Database URL (optional - overrides the default SQLite file if set)
    # Format: sqlite+aiosqlite:///path/to/state.db
    database_url: str | None = None

    # Discovery candidates in priority order: loopback, Android emulator
    # gateway, common private-network addresses, production hostname
    candidate_hosts: List[str] = [
        "127.0.0.1",
        "10.0.2.2",
        "192.168.1.100",
        "192.168.0.100",
        "libsync-o0s8.onrender.com",
    ]

    # Port used when a candidate is a bare IP address or localhost
    default_port: int = 5000

    # Used only when the candidate list is empty and nothing answers
    production_url: str = "https://libsync-o0s8.onrender.com"

    api_prefix: str = "/api"
    health_path: str = "/health"

    # Per-candidate liveness probe timeout during resolve()
    probe_timeout_seconds: float = 3.0

    # Probe timeout when the user enters a server address by hand
    manual_probe_timeout_seconds: float = 5.0

    # Timeout for regular API calls through the request pipeline
    request_timeout_seconds: float = 30.0

    # Probe static candidates concurrently (highest-priority success still wins)
    discovery_parallel_probes: bool = False

    # Delay between the first authenticated screen and the permission prompt
    push_registration_delay_seconds: float = 1.0

    # Platform tag sent with the push token (android, ios)
    push_platform: str = "android"

    @field_validator("api_prefix", "health_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith("/"):
            value = f"/{value}"
        return value.rstrip("/")


settings = Settings()


def get_database_url(config: Settings | None = None) -> str:
    """Get the local state database URL.

    Priority:
    1. LIBSYNC_DATABASE_URL environment variable
    2. Default SQLite file in LIBSYNC_DATA_PATH
    """
    config = config or settings
    if config.database_url:
        url = config.database_url
        # Plain sqlite:// URLs need the async driver
        if url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    db_path = os.path.join(config.data_path, "libsync_state.db")
    return f"sqlite+aiosqlite:///{db_path}"

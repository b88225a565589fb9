import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        api_base_url: str,
        api_timeout_secs: float,
        session_database_url: str,
        session_secret: str,
        timezone: str,
    ) -> None:
        self.api_base_url = api_base_url
        self.api_timeout_secs = api_timeout_secs
        self.session_database_url = session_database_url
        self.session_secret = session_secret
        self.timezone = timezone


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINDASH_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "session.db"
    api_base_url = os.getenv("FINDASH_API_BASE_URL", "http://localhost:8000")
    api_timeout_secs = float(os.getenv("FINDASH_API_TIMEOUT_SECS", "10"))
    session_database_url = os.getenv(
        "FINDASH_SESSION_DATABASE_URL", f"sqlite:///{default_db}"
    )
    session_secret = os.getenv(
        "FINDASH_SESSION_SECRET",
        "4f1c2a9e7b3d5e8f0a6c1b2d3e4f5a6b7c8d9e0f1a2b3c4d5e6f7a8b9c0d1e2f",
    )
    timezone = os.getenv("FINDASH_TIMEZONE", "UTC")
    return Settings(
        api_base_url=api_base_url.rstrip("/"),
        api_timeout_secs=api_timeout_secs,
        session_database_url=session_database_url,
        session_secret=session_secret,
        timezone=timezone,
    )

"""Pydantic settings loaded from .env, with conf.json overlay."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent

# ---------------------------------------------------------------------------
# conf.json: runtime config kept next to user data (separate from .env)
# ---------------------------------------------------------------------------


def get_zyra_dir() -> Path:
    """Resolve the zyra data directory. ZYRA_DIR env var or ~/.config/zyra."""
    d = os.environ.get("ZYRA_DIR", "")
    return Path(d).expanduser() if d else Path.home() / ".config" / "zyra"


class ZyraConfig(BaseModel):
    database_url: str = ""
    redis_url: str = ""
    log_level: str = ""
    log_file: str = ""
    platform_base_url: str = ""
    cors_allow_all_origins: bool | None = None  # None = use Settings default
    stream_heartbeat_seconds: int | None = None
    stream_max_reconnect_attempts: int | None = None


_logger = logging.getLogger(__name__)


def load_conf() -> ZyraConfig:
    """Load conf.json from the zyra data directory."""
    conf_path = get_zyra_dir() / "conf.json"
    if conf_path.exists():
        try:
            return ZyraConfig.model_validate_json(conf_path.read_text())
        except Exception:
            _logger.warning("Failed to parse %s, using defaults", conf_path, exc_info=True)
    return ZyraConfig()


def save_conf(config: ZyraConfig) -> None:
    """Save conf.json to the zyra data directory."""
    zyra_dir = get_zyra_dir()
    zyra_dir.mkdir(parents=True, exist_ok=True)
    (zyra_dir / "conf.json").write_text(config.model_dump_json(indent=2))


# ---------------------------------------------------------------------------
# Bootstrap: load .env, load conf.json
# ---------------------------------------------------------------------------

_env_file = BASE_DIR.parent / ".env"
load_dotenv(_env_file)
_conf = load_conf()

# ---------------------------------------------------------------------------
# Settings (pydantic-settings): .env / env vars override conf.json defaults
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    DEBUG: bool = False

    DATABASE_URL: str = _conf.database_url or f"sqlite:///{BASE_DIR / 'db.sqlite3'}"
    REDIS_URL: str = _conf.redis_url or "redis://localhost:6379/0"

    CORS_ALLOW_ALL_ORIGINS: bool = (
        _conf.cors_allow_all_origins if _conf.cors_allow_all_origins is not None else True
    )

    LOG_LEVEL: str = _conf.log_level or "INFO"
    LOG_FILE: str = _conf.log_file or ""
    LOG_MAX_BYTES: int = 10_485_760
    LOG_BACKUP_COUNT: int = 5

    PLATFORM_BASE_URL: str = _conf.platform_base_url or "http://localhost:8000"

    # Server side of the activity stream
    STREAM_HEARTBEAT_SECONDS: int = (
        _conf.stream_heartbeat_seconds if _conf.stream_heartbeat_seconds is not None else 30
    )
    STREAM_HISTORY_LIMIT: int = 20
    ACTIVITY_HISTORY_MAX: int = 50

    # Client side of the activity stream
    STREAM_CONNECT_DELAY_SECONDS: float = 0.5
    STREAM_CONNECT_TIMEOUT_SECONDS: float = 10.0
    STREAM_STALE_TIMEOUT_SECONDS: float = 90.0
    STREAM_RECONNECT_BASE_SECONDS: float = 2.0
    STREAM_RECONNECT_MULTIPLIER: float = 1.5
    STREAM_RECONNECT_MAX_SECONDS: float = 30.0
    STREAM_MAX_RECONNECT_ATTEMPTS: int = (
        _conf.stream_max_reconnect_attempts if _conf.stream_max_reconnect_attempts is not None else 10
    )
    STREAM_BUFFER_SIZE: int = 50

    model_config = ConfigDict(
        env_file=str(BASE_DIR.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import structlog
from dotenv import load_dotenv

log = structlog.get_logger(__name__)

DEFAULT_ENV_FILE = "../.env"


@dataclass(frozen=True)
class DatabaseConfig:
    username: str = ""
    password: str = ""
    host: str = "127.0.0.1"
    port: int = 3306
    database: str = ""

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for mysql.connector.connect."""
        return {
            "user": self.username,
            "password": self.password,
            "host": self.host,
            "port": self.port,
            "database": self.database,
        }


@dataclass(frozen=True)
class ExportSettings:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    export_dir: Path = Path("../storage/app/exports")
    public_url_prefix: str = "/storage/exports"
    fetch_size: int = 500
    host: str = "0.0.0.0"
    port: int = 8080


def load_env_file(env_file: str | os.PathLike[str] | None = None) -> bool:
    """Seed the environment from a key/value file unless DB_USERNAME is already set.

    Existing variables are never overridden. Returns True when the file was read.
    """
    if os.getenv("DB_USERNAME"):
        return False
    path = Path(env_file or os.getenv("EXPORTER_ENV_FILE", DEFAULT_ENV_FILE))
    if not path.is_file():
        log.warning("env_file_not_loaded", path=str(path))
        return False
    return load_dotenv(path, override=False)


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


def get_database_config() -> DatabaseConfig:
    return DatabaseConfig(
        username=os.getenv("DB_USERNAME", ""),
        password=os.getenv("DB_PASSWORD", ""),
        host=os.getenv("DB_HOST", "127.0.0.1"),
        port=_int_env("DB_PORT", 3306),
        database=os.getenv("DB_DATABASE", ""),
    )


def load_settings(env_file: str | os.PathLike[str] | None = None) -> ExportSettings:
    """Build the process-wide settings. Call once at startup."""
    load_env_file(env_file)
    fetch_size = _int_env("EXPORT_FETCH_SIZE", 500)
    return ExportSettings(
        database=get_database_config(),
        export_dir=Path(os.getenv("EXPORT_DIR", "../storage/app/exports")),
        public_url_prefix=os.getenv("EXPORT_PUBLIC_PREFIX", "/storage/exports").rstrip("/"),
        fetch_size=max(1, fetch_size),
        host=os.getenv("EXPORTER_HOST", "0.0.0.0"),
        port=_int_env("EXPORTER_PORT", 8080),
    )

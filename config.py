import logging
import os
import re
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> int:
    """
    Converts an expiry string such as "24h", "7d", "30m" or "3600" into seconds.
    """
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit]


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    # --- Database ---
    database_url: str = "mysql+aiomysql://root:@localhost/quick_grocery"
    pool_max: int = 5
    pool_acquire_timeout: int = 30  # seconds
    db_force_sync: bool = False
    db_alter_sync: bool = False
    db_echo: bool = False

    # --- Auth ---
    jwt_secret: str = "grocery-delivery-secret-key"
    jwt_expires_in: str = "24h"
    jwt_algorithm: str = "HS256"

    # --- HTTP ---
    cors_origin: str = "*"
    port: int = 5000

    # --- Uploads ---
    upload_dir: str = "public/uploads"
    max_file_size: int = 5 * 1024 * 1024

    # --- Optional integrations ---
    geocoding_api_key: Optional[str] = None
    redis_url: Optional[str] = None

    seed_initial_data: bool = False
    log_level: str = "INFO"

    @property
    def jwt_expires_seconds(self) -> int:
        return parse_duration(self.jwt_expires_in)

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origin.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @classmethod
    def from_env(cls) -> "Settings":
        """Builds settings from the process environment."""
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            database_url = "mysql+aiomysql://{user}:{password}@{host}/{name}".format(
                user=os.getenv("DB_USER", "root"),
                password=os.getenv("DB_PASSWORD", ""),
                host=os.getenv("DB_HOST", "localhost"),
                name=os.getenv("DB_NAME", "quick_grocery"),
            )

        return cls(
            database_url=database_url,
            pool_max=int(os.getenv("DB_POOL_MAX", "5")),
            pool_acquire_timeout=int(os.getenv("DB_POOL_ACQUIRE", "30")),
            db_force_sync=_env_bool("DB_FORCE_SYNC"),
            db_alter_sync=_env_bool("DB_ALTER_SYNC"),
            db_echo=_env_bool("DB_ECHO"),
            jwt_secret=os.getenv("JWT_SECRET", "grocery-delivery-secret-key"),
            jwt_expires_in=os.getenv("JWT_EXPIRES_IN", "24h"),
            cors_origin=os.getenv("CORS_ORIGIN", "*"),
            port=int(os.getenv("PORT", "5000")),
            upload_dir=os.getenv("UPLOAD_DIR", "public/uploads"),
            max_file_size=int(os.getenv("MAX_FILE_SIZE", str(5 * 1024 * 1024))),
            geocoding_api_key=os.getenv("GEOCODING_API_KEY") or None,
            redis_url=os.getenv("REDIS_URL") or None,
            seed_initial_data=_env_bool("SEED_INITIAL_DATA"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

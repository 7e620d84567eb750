"""
Client Configuration.

``AppConfig`` reads ``MEDCLINIC_*`` environment variables and an optional
``.env`` file: backend URL, timeouts, cache lifetime, storage location and
logging.  Components take an ``AppConfig`` in their constructor; only
entry points and the logger fallbacks use ``get_config()``.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Settings for one client process; every field has a working default."""

    # --- Backend API ---
    API_BASE_URL: str = "http://localhost:3000/api"
    REQUEST_TIMEOUT_S: float = 30.0
    CACHE_TTL_S: float = 300.0  # 5 minutes

    # --- Durable storage ---
    STORAGE_PATH: str = "~/.medclinic/storage.bin"
    STORAGE_ENCRYPTED: bool = True
    STORAGE_WATCH_ENABLED: bool = True

    # --- Navigation ---
    LOGIN_PATH: str = "/login"
    HOME_PATH: str = "/dashboard"

    # --- Logging ---
    LOG_FILE: str = "medclinic.log"
    LOG_LEVEL: str = "INFO"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "MEDCLINIC_",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _warn_suspicious_values(self) -> "AppConfig":
        """Emit a startup warning when the API base URL looks wrong.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so an operator pointing the client at a typo'd host only finds out
        on the first failed request.
        """
        _log = logging.getLogger("medclinic.config")

        if not self.API_BASE_URL.startswith(("http://", "https://")):
            _log.warning(
                "API_BASE_URL '%s' is not an http(s) URL; every request "
                "will fail as a network error.",
                self.API_BASE_URL,
            )

        if self.REQUEST_TIMEOUT_S <= 0:
            _log.warning(
                "REQUEST_TIMEOUT_S is %s; requests will time out immediately.",
                self.REQUEST_TIMEOUT_S,
            )

        return self

    @property
    def storage_path(self) -> Path:
        """``STORAGE_PATH`` with ``~`` expanded."""
        return Path(self.STORAGE_PATH).expanduser()

    @property
    def log_level(self) -> int:
        """Numeric logging level for ``LOG_LEVEL`` (``INFO`` when unknown)."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Process-wide ``AppConfig``, built on first use.

    The lock is only taken while the instance does not exist yet.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance

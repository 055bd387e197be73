# ─────────────────────────────────────────────────────────────────
# config.py - Application Settings
#
# All tunables are loaded from environment variables (or a .env
# file) and validated by pydantic-settings at startup.
#
# Example:
#   WAIT_TIMEOUT_S=30 STATUS_TTL_S=10 uvicorn main:app
# ─────────────────────────────────────────────────────────────────

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration for the bridge.

    Every component receives its values from one Settings instance,
    so tests can build an isolated app with short timeouts and a
    temporary data file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── PROJECT METADATA ─────────────────────────────────────────
    PROJECT_NAME: str = "Device Command Bridge"
    PROJECT_VERSION: str = "1.0.0"

    # ── EVENT LOG ────────────────────────────────────────────────
    DATA_FILE: str = "data/logs.json"
    """Canonical path of the durable report log (one JSON array)."""

    # ── RENDEZVOUS ───────────────────────────────────────────────
    WAIT_TIMEOUT_S: float = 60.0
    """How long GET /wait parks before answering {"cmd": "none"}."""

    MAX_WAITERS: int = 10000
    """Upper bound on simultaneously parked device polls."""

    DISCONNECT_POLL_S: float = 1.0
    """How often a parked /wait checks whether its client hung up."""

    # ── STATUS CACHE ─────────────────────────────────────────────
    STATUS_TTL_S: float = 30.0

    # ── SERVER / LOGGING ─────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"


settings = Settings()

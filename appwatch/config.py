from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "APPWATCH_",
        "extra": "ignore",
    }

    # Persistence (SQLite file holding application records)
    apps_db_path: str = "data/apps.db"

    # Inventory snapshot written by the external collector
    inventory_path: str = "data/inventory.yaml"

    # Health polling
    poll_interval_seconds: float = 30.0
    probe_concurrency: int = 16  # max probes in flight per cycle

    # Probe primitive
    probe_timeout_seconds: float = 5.0
    probe_verify_tls: bool = True
    probe_max_ok_status: int = 399  # HTTP codes above this count as failures

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"


settings = Settings()

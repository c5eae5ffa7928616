from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Where archives/, current.json and daily-summary.json live
    data_dir: Path = Path("status-data")

    # Registry of checks for `uptrack probe --config`
    services_file: Path = Path("services.yaml")

    # Probe classification
    probe_timeout_ms: int = 10_000
    expected_codes: list[int] = [200, 301, 302]
    max_response_time_ms: int = 30_000  # slower than this = degraded

    # Retention / rollup
    hot_window_days: int = 14
    summary_window_days: int = 90
    rollup_workers: int = 4

    # Merge / read
    stale_after_hours: int = 24
    operational_threshold: float = 0.99
    degraded_threshold: float = 0.95
    data_base_url: str = ""  # empty = read from data_dir instead of HTTP
    fetch_timeout_seconds: float = 10.0

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"


settings = Settings()

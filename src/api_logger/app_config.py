from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from api_logger.capture.normalizer import MAX_BODY_SIZE

DB_PATH_ENV_VAR = "API_LOGGER_DB_PATH"


@dataclass
class AppConfig:
    db_path: str
    export_directory: str
    stale_state_seconds: int
    max_body_bytes: int
    lifecycle_exports: bool
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    app = AppConfig(
        db_path=os.environ.get(DB_PATH_ENV_VAR) or str(config.get("DbPath", ".api_logger/traces.db")),
        export_directory=str(config.get("ExportDirectory", "exports")),
        stale_state_seconds=int(config.get("StaleStateSeconds", 300)),
        max_body_bytes=int(config.get("MaxBodyBytes", MAX_BODY_SIZE)),
        lifecycle_exports=_to_bool(config.get("LifecycleExports", False), default=False),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )
    if app.stale_state_seconds <= 0:
        raise ValueError(f"StaleStateSeconds must be positive, got {app.stale_state_seconds}")
    if app.max_body_bytes <= 0:
        raise ValueError(f"MaxBodyBytes must be positive, got {app.max_body_bytes}")
    return app

# src/atlas_os/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole backend (HTTP service, sweeper, CLI).
- No secrets required at import time.
- Every knob has a sane default so tests and local runs work out of the box.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "ATLAS"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Real environment variables win over .env entries.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- HTTP service ----
    http_host: str
    http_port: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- LLM gateway (OpenAI-compatible) ----
    llm_api_key: Optional[str]
    llm_base_url: str
    llm_models: List[str]
    llm_analysis_model: str
    llm_evolution_model: str
    llm_embedding_model: str
    llm_max_retries: int
    llm_retry_delay_seconds: float
    llm_connect_timeout_seconds: float
    llm_read_timeout_seconds: float
    extra_headers: Dict[str, str]

    # ---- Task processor ----
    scheduler_enabled: bool
    sweep_interval_seconds: float
    sweep_batch_limit: int
    user_batch_limit: int
    user_cooldown_seconds: float
    sweep_cooldown_seconds: float
    max_task_errors: int
    sweep_task_delay_seconds: float

    # ---- Webhooks ----
    webhook_timeout_seconds: float

    # ---- Service logs ----
    service_log_persist: bool
    service_log_min_level: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "atlas-os")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        http_host = _env(_k("HTTP_HOST"), "127.0.0.1")
        http_port = _env_int(_k("HTTP_PORT"), 8000)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/atlas"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "atlas.sqlite3")

        # The hosted gateway key is shared with the old deployment under LOVABLE_API_KEY.
        llm_api_key = _first_env(_k("LLM_API_KEY"), "LOVABLE_API_KEY", default=None)
        llm_base_url = _env(_k("LLM_BASE_URL"), "https://ai.gateway.lovable.dev/v1")
        llm_models = _env_list(
            _k("LLM_MODELS"),
            [
                "google/gemini-2.5-flash",
                "google/gemini-2.5-flash-lite",
            ],
        )
        llm_analysis_model = _env(_k("LLM_ANALYSIS_MODEL"), "google/gemini-2.5-flash")
        llm_evolution_model = _env(_k("LLM_EVOLUTION_MODEL"), "google/gemini-2.5-pro")
        llm_embedding_model = _env(_k("LLM_EMBEDDING_MODEL"), "text-embedding-3-small")
        llm_max_retries = _env_int(_k("LLM_MAX_RETRIES"), 2)
        llm_retry_delay_seconds = _env_float(_k("LLM_RETRY_DELAY_SECONDS"), 1.0)
        llm_connect_timeout_seconds = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)
        llm_read_timeout_seconds = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 60.0)

        extra_headers = {"X-Title": _env(_k("APP_TITLE"), app_name)}

        scheduler_enabled = _env_bool(_k("SCHEDULER_ENABLED"), True)
        sweep_interval_seconds = _env_float(_k("SWEEP_INTERVAL_SECONDS"), 60.0)
        sweep_batch_limit = _env_int(_k("SWEEP_BATCH_LIMIT"), 20)
        user_batch_limit = _env_int(_k("USER_BATCH_LIMIT"), 10)
        user_cooldown_seconds = _env_float(_k("USER_COOLDOWN_SECONDS"), 30.0)
        sweep_cooldown_seconds = _env_float(_k("SWEEP_COOLDOWN_SECONDS"), 60.0)
        max_task_errors = _env_int(_k("MAX_TASK_ERRORS"), 5)
        sweep_task_delay_seconds = _env_float(_k("SWEEP_TASK_DELAY_SECONDS"), 0.5)

        webhook_timeout_seconds = _env_float(_k("WEBHOOK_TIMEOUT_SECONDS"), 10.0)

        service_log_persist = _env_bool(_k("SERVICE_LOG_PERSIST"), True)
        service_log_min_level = _env(_k("SERVICE_LOG_MIN_LEVEL"), "info").lower()

        return Settings(
            app_name=app_name,
            log_level=log_level,
            http_host=http_host,
            http_port=http_port,
            data_dir=data_dir,
            db_path=db_path,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            llm_models=llm_models,
            llm_analysis_model=llm_analysis_model,
            llm_evolution_model=llm_evolution_model,
            llm_embedding_model=llm_embedding_model,
            llm_max_retries=llm_max_retries,
            llm_retry_delay_seconds=llm_retry_delay_seconds,
            llm_connect_timeout_seconds=llm_connect_timeout_seconds,
            llm_read_timeout_seconds=llm_read_timeout_seconds,
            extra_headers=extra_headers,
            scheduler_enabled=scheduler_enabled,
            sweep_interval_seconds=sweep_interval_seconds,
            sweep_batch_limit=sweep_batch_limit,
            user_batch_limit=user_batch_limit,
            user_cooldown_seconds=user_cooldown_seconds,
            sweep_cooldown_seconds=sweep_cooldown_seconds,
            max_task_errors=max_task_errors,
            sweep_task_delay_seconds=sweep_task_delay_seconds,
            webhook_timeout_seconds=webhook_timeout_seconds,
            service_log_persist=service_log_persist,
            service_log_min_level=service_log_min_level,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS

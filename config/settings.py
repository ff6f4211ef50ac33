from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv


SECRETS_PATH = Path(__file__).resolve().parent / "secrets.env"

REQUIRED_CONNECTION_VARS = [
    "SNOWFLAKE_ACCOUNT",
    "SNOWFLAKE_USER",
    "SNOWFLAKE_PASSWORD",
    "SNOWFLAKE_ROLE",
    "SNOWFLAKE_WAREHOUSE",
]

LLM_PROVIDERS = ("ask_llm", "cortex", "openai")


class ConfigError(RuntimeError):
    pass


def _get_env(name: str, default: str = "") -> str:
    return (os.getenv(name, default) or "").strip().strip("\"'").strip()


def _require_env(name: str) -> str:
    value = _get_env(name)
    if not value:
        raise ConfigError(f"Missing required env var: {name}")
    return value


def _flag_enabled(name: str) -> bool:
    value = os.getenv(name, "").strip().lower()
    return value in {"1", "true", "yes", "on"}


def _float_env(name: str, default: float) -> float:
    raw = _get_env(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"Env var {name} must be numeric, got {raw!r}") from exc


def _int_env(name: str, default: int) -> int:
    raw = _get_env(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Env var {name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    database: str = "SNOWCONE_DB"
    schema: str = "SNOWCONE"

    waste_rate_threshold: float = 0.10
    weekly_waste_cost_threshold: float = 500.0
    low_rating_threshold: float = 3.5
    trend_stable_band_pct: float = 5.0
    decline_attention_pct: float = 10.0
    waste_trend_band_pct: float = 10.0

    llm_provider: str = "ask_llm"
    llm_model: str = "llama3.1-70b"
    llm_user_email: str = ""
    llm_timeout_s: int = 30
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    default_range_days: int = 30
    query_cache_ttl_s: int = 300
    max_compare_locations: int = 3
    chat_max_rows: int = 1000
    chat_display_rows: int = 10

    log_level: str = "INFO"
    debug_log_path: Optional[str] = None

    table_overrides: Dict[str, str] = field(default_factory=dict)

    def table(self, name: str) -> str:
        """Fully qualified name for one of the warehouse tables."""
        key = name.upper()
        if key in self.table_overrides:
            return self.table_overrides[key]
        return f"{self.database}.{self.schema}.{key}"


def connection_params() -> Dict[str, object]:
    params: Dict[str, object] = {
        "account": _require_env("SNOWFLAKE_ACCOUNT"),
        "user": _require_env("SNOWFLAKE_USER"),
        "password": _require_env("SNOWFLAKE_PASSWORD"),
        "role": _require_env("SNOWFLAKE_ROLE"),
        "warehouse": _require_env("SNOWFLAKE_WAREHOUSE"),
        "database": _get_env("SNOWFLAKE_DATABASE", "SNOWCONE_DB"),
        "schema": _get_env("SNOWFLAKE_SCHEMA", "SNOWCONE"),
        "ocsp_fail_open": _flag_enabled("SNOWFLAKE_OCSP_FAIL_OPEN"),
        "disable_ocsp_checks": _flag_enabled("SNOWFLAKE_DISABLE_OCSP_CHECKS"),
    }
    return params


def has_connection_env() -> bool:
    return all(_get_env(name) for name in REQUIRED_CONNECTION_VARS)


def load_settings() -> Settings:
    load_dotenv(dotenv_path=SECRETS_PATH)
    load_dotenv()

    provider = _get_env("LLM_PROVIDER", "ask_llm").lower()
    if provider not in LLM_PROVIDERS:
        raise ConfigError(
            f"LLM_PROVIDER must be one of {', '.join(LLM_PROVIDERS)}, got {provider!r}"
        )

    overrides = {}
    for table in ("LOCATIONS", "DAILY_SALES", "CUSTOMER_REVIEWS", "INVENTORY"):
        fqn = _get_env(f"{table}_TABLE_FQN")
        if fqn:
            overrides[table] = fqn

    return Settings(
        database=_get_env("SNOWFLAKE_DATABASE", "SNOWCONE_DB"),
        schema=_get_env("SNOWFLAKE_SCHEMA", "SNOWCONE"),
        waste_rate_threshold=_float_env("WASTE_RATE_THRESHOLD", 0.10),
        weekly_waste_cost_threshold=_float_env("WEEKLY_WASTE_COST_THRESHOLD", 500.0),
        low_rating_threshold=_float_env("LOW_RATING_THRESHOLD", 3.5),
        trend_stable_band_pct=_float_env("TREND_STABLE_BAND_PCT", 5.0),
        decline_attention_pct=_float_env("DECLINE_ATTENTION_PCT", 10.0),
        waste_trend_band_pct=_float_env("WASTE_TREND_BAND_PCT", 10.0),
        llm_provider=provider,
        llm_model=_get_env("LLM_MODEL", "llama3.1-70b"),
        llm_user_email=_get_env("LLM_USER_EMAIL"),
        llm_timeout_s=_int_env("LLM_TIMEOUT_S", 30),
        openai_api_key=_get_env("OPENAI_API_KEY"),
        openai_model=_get_env("OPENAI_MODEL", "gpt-4o-mini"),
        default_range_days=_int_env("DEFAULT_RANGE_DAYS", 30),
        query_cache_ttl_s=_int_env("QUERY_CACHE_TTL_S", 300),
        max_compare_locations=_int_env("MAX_COMPARE_LOCATIONS", 3),
        chat_max_rows=_int_env("CHAT_MAX_ROWS", 1000),
        chat_display_rows=_int_env("CHAT_DISPLAY_ROWS", 10),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        debug_log_path=_get_env("DEBUG_LOG_PATH") or None,
        table_overrides=overrides,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()

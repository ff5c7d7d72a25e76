"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from articleflow.services.quotas import limit_for_tier
from articleflow.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the article generation service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  pg_dsn: str | None
  pg_connect_timeout: int
  quality_threshold: float
  min_retry_threshold: float
  max_attempts: int
  quality_budget_seconds: float
  job_timeout_seconds: float
  generation_max_tokens: int
  generation_model: str
  generation_base_url: str | None
  openrouter_api_key: str | None
  tavily_api_key: str | None
  batch_max_items: int
  batch_concurrency: int
  link_cache_ttl_seconds: int
  link_top_n: int
  search_monthly_limit: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("ARTICLEFLOW_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("ARTICLEFLOW_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("ARTICLEFLOW_ENV", "development").lower()
  debug = _parse_bool(os.getenv("ARTICLEFLOW_DEBUG"))

  log_max_bytes = _positive_int("ARTICLEFLOW_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("ARTICLEFLOW_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("ARTICLEFLOW_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Quality gates are tunable; only their ordering is load-bearing.
  quality_threshold = float(os.getenv("ARTICLEFLOW_QUALITY_THRESHOLD", "80"))
  min_retry_threshold = float(os.getenv("ARTICLEFLOW_MIN_RETRY_THRESHOLD", "75"))
  if not 0 <= min_retry_threshold <= quality_threshold <= 100:
    raise ValueError("Quality thresholds must satisfy 0 <= MIN_RETRY_THRESHOLD <= QUALITY_THRESHOLD <= 100.")

  max_attempts = _positive_int("ARTICLEFLOW_MAX_ATTEMPTS", "2")
  quality_budget_seconds = _positive_float("ARTICLEFLOW_QUALITY_BUDGET_SECONDS", "20")
  job_timeout_seconds = _positive_float("ARTICLEFLOW_JOB_TIMEOUT_SECONDS", "30")

  batch_max_items = _positive_int("ARTICLEFLOW_BATCH_MAX_ITEMS", "50")
  batch_concurrency = _positive_int("ARTICLEFLOW_BATCH_CONCURRENCY", "3")

  # An explicit limit wins over the subscription tier default.
  raw_search_limit = _optional_str(os.getenv("ARTICLEFLOW_SEARCH_MONTHLY_LIMIT"))
  search_monthly_limit = int(raw_search_limit) if raw_search_limit is not None else limit_for_tier(os.getenv("ARTICLEFLOW_SEARCH_TIER", "free"))
  if search_monthly_limit < 0:
    raise ValueError("ARTICLEFLOW_SEARCH_MONTHLY_LIMIT must be zero or a positive integer.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("ARTICLEFLOW_ALLOWED_ORIGINS")),
    log_dir=(os.getenv("ARTICLEFLOW_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    pg_dsn=_optional_str(os.getenv("ARTICLEFLOW_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=_positive_int("ARTICLEFLOW_PG_CONNECT_TIMEOUT", "5"),
    quality_threshold=quality_threshold,
    min_retry_threshold=min_retry_threshold,
    max_attempts=max_attempts,
    quality_budget_seconds=quality_budget_seconds,
    job_timeout_seconds=job_timeout_seconds,
    generation_max_tokens=_positive_int("ARTICLEFLOW_GENERATION_MAX_TOKENS", "4000"),
    generation_model=os.getenv("ARTICLEFLOW_GENERATION_MODEL", "openai/gpt-4o-mini"),
    generation_base_url=_optional_str(os.getenv("ARTICLEFLOW_GENERATION_BASE_URL")),
    openrouter_api_key=_optional_str(os.getenv("OPENROUTER_API_KEY")),
    tavily_api_key=_optional_str(os.getenv("TAVILY_API_KEY")),
    batch_max_items=batch_max_items,
    batch_concurrency=batch_concurrency,
    link_cache_ttl_seconds=_positive_int("ARTICLEFLOW_LINK_CACHE_TTL_SECONDS", str(7 * 24 * 60 * 60)),
    link_top_n=_positive_int("ARTICLEFLOW_LINK_TOP_N", "5"),
    search_monthly_limit=search_monthly_limit,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the full runtime configuration."""
  debug = _parse_bool(os.getenv("ARTICLEFLOW_DEBUG"))
  pg_connect_timeout = _positive_int("ARTICLEFLOW_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted platforms.
  pg_dsn = _optional_str(os.getenv("ARTICLEFLOW_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)

"""Shared fixtures for the orchestration tests."""

from __future__ import annotations

import os
from dataclasses import replace

import pytest

# Keep the database out of tests regardless of the caller's environment.
os.environ.pop("ARTICLEFLOW_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

from articleflow.config import Settings, get_settings  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings(tmp_path) -> Settings:
  base = get_settings()
  return replace(
    base,
    pg_dsn=None,
    log_dir=str(tmp_path / "logs"),
    quality_threshold=80.0,
    min_retry_threshold=75.0,
    max_attempts=2,
    quality_budget_seconds=20.0,
    job_timeout_seconds=30.0,
    generation_max_tokens=4000,
    batch_max_items=50,
    batch_concurrency=3,
    link_cache_ttl_seconds=7 * 24 * 60 * 60,
    link_top_n=5,
    search_monthly_limit=10,
    openrouter_api_key=None,
    tavily_api_key=None,
  )

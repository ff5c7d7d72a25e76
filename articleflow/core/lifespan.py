import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from articleflow.config import get_settings
from articleflow.core.database import dispose_engine, init_schema
from articleflow.core.logging import setup_logging
from articleflow.services.generation import build_generation_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Build the generation service once per process and tear it down on shutdown."""
  settings = get_settings()
  logger = logging.getLogger("articleflow.core.lifespan")

  setup_logging(settings)
  logger.info("Starting articleflow environment=%s", settings.environment)

  if settings.pg_dsn:
    logger.info("Using database %s", _redact_dsn(settings.pg_dsn))
    await init_schema()

  # Tests may install a pre-built service before startup.
  service = getattr(app.state, "generation_service", None)
  if service is None:
    service = build_generation_service(settings)
    app.state.generation_service = service

  await service.start()
  logger.info("Startup complete - generation service running.")
  try:
    yield
  finally:
    await service.shutdown()
    app.state.generation_service = None
    if settings.pg_dsn:
      await dispose_engine()
    logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  # Guard against malformed DSNs without a scheme.
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"

"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from articleflow.services.generation import GenerationService


def get_generation_service(request: Request) -> GenerationService:
  """Return the service built by the lifespan for this application."""
  service = getattr(request.app.state, "generation_service", None)
  if service is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Generation service is not running.")
  return service


async def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
  """Resolve the owner from the X-Owner-Id header; authentication happens upstream."""
  owner_id = (x_owner_id or "").strip()
  if not owner_id:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Owner-Id header.")
  return owner_id

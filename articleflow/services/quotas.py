"""Per-owner monthly quota for web-search calls."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

TIER_LIMITS: dict[str, int] = {"free": 10, "basic": 50, "premium": 200}


@dataclass(frozen=True)
class QuotaRecord:
  """Usage for one owner in the active period."""

  owner_id: str
  period_start: datetime.date
  used: int
  limit: int

  @property
  def remaining(self) -> int:
    return max(self.limit - self.used, 0)


def _utc_now() -> datetime.datetime:
  """Return timezone-aware current UTC time for deterministic period math."""
  return datetime.datetime.now(datetime.UTC)


def period_start_date(now: datetime.datetime) -> datetime.date:
  """Month starts on the 1st 00:00 UTC."""
  if now.tzinfo is None:
    raise ValueError("now must be timezone-aware (UTC).")
  return now.astimezone(datetime.UTC).date().replace(day=1)


def limit_for_tier(tier: str) -> int:
  """Return the default monthly search limit for a subscription tier."""
  try:
    return TIER_LIMITS[tier.strip().lower()]
  except KeyError as exc:
    raise ValueError(f"Unknown tier: {tier}") from exc


class QuotaTracker:
  """Count search calls per owner per calendar month; exhaustion is a boolean, never an error."""

  def __init__(self, default_limit: int = TIER_LIMITS["free"], clock: Callable[[], datetime.datetime] = _utc_now) -> None:
    if default_limit < 0:
      raise ValueError("default_limit must be >= 0")
    self._default_limit = default_limit
    self._clock = clock
    self._records: dict[str, QuotaRecord] = {}
    self._lock = asyncio.Lock()

  def _current(self, owner_id: str) -> QuotaRecord:
    # Roll over lazily: a record from an earlier month resets its usage but keeps its limit.
    start = period_start_date(self._clock())
    record = self._records.get(owner_id)
    if record is None:
      record = QuotaRecord(owner_id=owner_id, period_start=start, used=0, limit=self._default_limit)
      self._records[owner_id] = record
    elif record.period_start != start:
      logger.debug("Quota period rolled over owner=%s from=%s to=%s", owner_id, record.period_start, start)
      record = replace(record, period_start=start, used=0)
      self._records[owner_id] = record
    return record

  async def has_remaining(self, owner_id: str) -> bool:
    async with self._lock:
      record = self._current(owner_id)
      return record.used < record.limit

  async def try_consume(self, owner_id: str) -> bool:
    """Atomically check and increment; returns False when the month's quota is used up."""
    async with self._lock:
      record = self._current(owner_id)
      if record.used >= record.limit:
        logger.info("Search quota exhausted owner=%s used=%d limit=%d", owner_id, record.used, record.limit)
        return False
      self._records[owner_id] = replace(record, used=record.used + 1)
      return True

  async def set_limit(self, owner_id: str, limit: int) -> QuotaRecord:
    if limit < 0:
      raise ValueError("limit must be >= 0")
    async with self._lock:
      record = replace(self._current(owner_id), limit=limit)
      self._records[owner_id] = record
      return record

  async def snapshot(self, owner_id: str) -> QuotaRecord:
    async with self._lock:
      return self._current(owner_id)

from __future__ import annotations

import asyncio
import datetime

import pytest

from articleflow.services.quotas import QuotaTracker, limit_for_tier, period_start_date


class MonthClock:
  def __init__(self, now: datetime.datetime) -> None:
    self.now = now

  def __call__(self) -> datetime.datetime:
    return self.now


def test_period_start_is_first_of_month_utc() -> None:
  now = datetime.datetime(2026, 3, 31, 23, 59, tzinfo=datetime.UTC)
  assert period_start_date(now) == datetime.date(2026, 3, 1)

  # 00:30 on April 1st in UTC+2 is still March 31st in UTC.
  local = datetime.datetime(2026, 4, 1, 0, 30, tzinfo=datetime.timezone(datetime.timedelta(hours=2)))
  assert period_start_date(local) == datetime.date(2026, 3, 1)

  with pytest.raises(ValueError):
    period_start_date(datetime.datetime(2026, 3, 1))


@pytest.mark.anyio
async def test_consume_until_limit_then_deny() -> None:
  tracker = QuotaTracker(default_limit=3, clock=MonthClock(datetime.datetime(2026, 5, 10, tzinfo=datetime.UTC)))

  assert [await tracker.try_consume("owner") for _ in range(4)] == [True, True, True, False]
  assert await tracker.has_remaining("owner") is False
  snapshot = await tracker.snapshot("owner")
  assert snapshot.used == 3 and snapshot.remaining == 0

  # Owners are tracked independently.
  assert await tracker.try_consume("other") is True


@pytest.mark.anyio
async def test_usage_rolls_over_at_month_boundary_and_keeps_limit() -> None:
  clock = MonthClock(datetime.datetime(2026, 1, 31, 23, 59, tzinfo=datetime.UTC))
  tracker = QuotaTracker(default_limit=1, clock=clock)
  await tracker.set_limit("owner", 2)
  assert await tracker.try_consume("owner") is True
  assert await tracker.try_consume("owner") is True
  assert await tracker.try_consume("owner") is False

  clock.now = datetime.datetime(2026, 2, 1, 0, 0, tzinfo=datetime.UTC)

  snapshot = await tracker.snapshot("owner")
  assert snapshot.period_start == datetime.date(2026, 2, 1)
  assert snapshot.used == 0
  assert snapshot.limit == 2
  assert await tracker.try_consume("owner") is True


@pytest.mark.anyio
async def test_concurrent_consumers_never_exceed_limit() -> None:
  tracker = QuotaTracker(default_limit=5)
  outcomes = await asyncio.gather(*(tracker.try_consume("owner") for _ in range(20)))
  assert outcomes.count(True) == 5
  assert (await tracker.snapshot("owner")).used == 5


@pytest.mark.anyio
async def test_zero_limit_blocks_all_searches() -> None:
  tracker = QuotaTracker(default_limit=0)
  assert await tracker.try_consume("owner") is False


def test_tier_limits() -> None:
  assert limit_for_tier("free") == 10
  assert limit_for_tier("Basic") == 50
  assert limit_for_tier("premium") == 200
  with pytest.raises(ValueError):
    limit_for_tier("enterprise")

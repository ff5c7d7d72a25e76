"""Retry logic with specific backoff strategy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import openai

T = TypeVar("T")
logger = logging.getLogger(__name__)

DEFAULT_DELAYS: tuple[float, ...] = (2, 5, 10)


def is_rate_limited(exc: Exception) -> bool:
  """Return True for 429/quota responses that are worth retrying."""

  if isinstance(exc, openai.RateLimitError):
    return True
  error_msg = str(exc)
  return "429" in error_msg or "Too Many Requests" in error_msg or "Quota Exceeded" in error_msg


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args: object, delays: Sequence[float] = DEFAULT_DELAYS, **kwargs: object) -> T:
  """
  Execute a coroutine function with retries for 429/quota errors only.

  Callers bound the total time with asyncio.wait_for, so the sleeps never outlive a job.
  """
  for attempt, delay in enumerate(delays):
    try:
      return await func(*args, **kwargs)
    except Exception as e:
      if not is_rate_limited(e):
        # Non-retryable error, raise immediately
        raise
      logger.warning("Retry attempt %d/%d needed. Error: %s. Retrying in %ss...", attempt + 1, len(delays), e, delay)
      await asyncio.sleep(delay)

  # Final attempt
  return await func(*args, **kwargs)

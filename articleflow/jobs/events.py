"""In-process event bus for job and batch lifecycle notifications.

Every subscriber owns its own bounded channel, so an HTTP stream and a metrics
collector can observe the same batch independently. Publishing never blocks on a
slow subscriber: when a channel is full the oldest pending event is dropped, and
observers are expected to re-read the batch or job as the source of truth.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Union

from articleflow.jobs.models import JobRecord

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_SIZE = 256


@dataclass(frozen=True)
class JobUpdated:
  """Emitted after every persisted job transition."""

  job: JobRecord

  @property
  def job_id(self) -> str:
    return self.job.job_id

  @property
  def batch_id(self) -> str | None:
    return self.job.batch_id


@dataclass(frozen=True)
class BatchProgress:
  """Aggregate batch progress after one of its items finished."""

  batch_id: str
  percent: float
  completed: int
  failed: int
  total: int


@dataclass(frozen=True)
class BatchCompleted:
  """Emitted once when every item of a batch is terminal."""

  batch_id: str
  status: str


Event = Union[JobUpdated, BatchProgress, BatchCompleted]
Listener = Callable[[Event], Union[Awaitable[None], None]]


class Subscription:
  """A single observer's channel, filtered by batch and/or job id."""

  def __init__(self, bus: EventBus, *, batch_id: str | None, job_id: str | None, max_size: int) -> None:
    self._bus = bus
    self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_size)
    self.batch_id = batch_id
    self.job_id = job_id
    self.dropped = 0
    self._closed = False

  def matches(self, event: Event) -> bool:
    if self.job_id is not None:
      return isinstance(event, JobUpdated) and event.job_id == self.job_id
    if self.batch_id is not None:
      return event.batch_id == self.batch_id
    return True

  def _offer(self, event: Event) -> None:
    if self._queue.full():
      self._queue.get_nowait()
      self.dropped += 1
    self._queue.put_nowait(event)

  async def get(self, timeout: float | None = None) -> Event:
    """Wait for the next event; raises TimeoutError when the timeout elapses."""

    if timeout is None:
      return await self._queue.get()
    return await asyncio.wait_for(self._queue.get(), timeout=timeout)

  def get_nowait(self) -> Event | None:
    try:
      return self._queue.get_nowait()
    except asyncio.QueueEmpty:
      return None

  def close(self) -> None:
    if not self._closed:
      self._closed = True
      self._bus._remove(self)

  async def __aiter__(self) -> AsyncIterator[Event]:
    while not self._closed:
      yield await self._queue.get()

  async def __aenter__(self) -> Subscription:
    return self

  async def __aexit__(self, *exc_info: object) -> None:
    self.close()


class EventBus:
  """Fan events out to subscription channels and registered listeners."""

  def __init__(self, *, channel_size: int = DEFAULT_CHANNEL_SIZE) -> None:
    self._channel_size = channel_size
    self._subscriptions: list[Subscription] = []
    self._listeners: list[tuple[type, Listener]] = []

  def subscribe(self, *, batch_id: str | None = None, job_id: str | None = None) -> Subscription:
    subscription = Subscription(self, batch_id=batch_id, job_id=job_id, max_size=self._channel_size)
    self._subscriptions.append(subscription)
    return subscription

  def _remove(self, subscription: Subscription) -> None:
    if subscription in self._subscriptions:
      self._subscriptions.remove(subscription)

  def add_listener(self, event_type: type, listener: Listener) -> Callable[[], None]:
    """Register a callback for one event type and return a function that removes it."""

    entry = (event_type, listener)
    self._listeners.append(entry)

    def _unregister() -> None:
      if entry in self._listeners:
        self._listeners.remove(entry)

    return _unregister

  @property
  def subscriber_count(self) -> int:
    return len(self._subscriptions)

  async def publish(self, event: Event) -> None:
    for subscription in list(self._subscriptions):
      if subscription.matches(event):
        subscription._offer(event)

    # Listener failures are contained so one observer cannot break a job.
    for event_type, listener in list(self._listeners):
      if not isinstance(event, event_type):
        continue
      try:
        outcome = listener(event)
        if inspect.isawaitable(outcome):
          await outcome
      except Exception:  # noqa: BLE001
        logger.exception("Event listener %r failed for %s", listener, type(event).__name__)

"""Timestamp helpers shared by job and batch records."""

from __future__ import annotations

from datetime import UTC, datetime

# Microsecond precision keeps "most recent first" ordering stable for records created in the same second.
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def now_iso() -> str:
  """Return the current UTC time as an ISO-8601 string."""
  return datetime.now(UTC).strftime(DATE_FORMAT)

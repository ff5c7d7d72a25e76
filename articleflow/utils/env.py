"""Optional .env support for local runs of the service."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

ENV_FILE_VARIABLE = "ARTICLEFLOW_ENV_FILE"
_QUOTES = ('"', "'")


def default_env_path() -> Path:
  """Return ARTICLEFLOW_ENV_FILE when set, else the .env beside the articleflow package."""

  explicit = os.getenv(ENV_FILE_VARIABLE)
  if explicit:
    return Path(explicit).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in _QUOTES:
    return value[1:-1]
  return value


def parse_env_lines(lines: Iterable[str]) -> dict[str, str]:
  """Parse KEY=VALUE lines, skipping blanks, comments and malformed entries."""

  values: dict[str, str] = {}
  for raw_line in lines:
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    values[key] = _unquote(value.strip())
  return values


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Export the file's variables into os.environ and return what was applied."""

  if not path.is_file():
    return {}

  applied: dict[str, str] = {}
  for key, value in parse_env_lines(path.read_text(encoding="utf-8").splitlines()).items():
    if override or key not in os.environ:
      os.environ[key] = value
      applied[key] = value
  return applied

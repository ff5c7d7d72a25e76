import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from articleflow.config import Settings

LOG_LINE_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"
FILE_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
TRACEBACK_TAIL_LINES = 5

# Loggers that bypass the root logger and need our handlers attached directly.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")
# Chatty third-party loggers held at WARNING unless debug is on.
NOISY_LOGGERS = ("asyncpg", "httpx", "httpcore", "openai", "sqlalchemy.engine")

_active_log_path: Path | None = None


class TruncatedFormatter(logging.Formatter):
  """Keep the exception header and the innermost frames; job failures rarely need more."""

  def __init__(self, fmt: str, datefmt: str, tail_lines: int = TRACEBACK_TAIL_LINES) -> None:
    super().__init__(fmt, datefmt=datefmt)
    self._tail_lines = tail_lines

  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:  # noqa: N802
    lines = traceback.format_exception(*ei)
    if len(lines) <= self._tail_lines + 1:
      return "".join(lines)
    return "".join([lines[0], "    ...\n", *lines[-self._tail_lines :]])


def _rotated_name(default_name: str) -> str:
  """Name backups articleflow_x.log-1 instead of articleflow_x.log.1."""
  stem, _, suffix = default_name.rpartition(".")
  if suffix.isdigit() and stem.endswith(".log"):
    return f"{stem}-{suffix}"
  return default_name


def _log_file_path(log_dir: str) -> Path:
  directory = Path(log_dir).expanduser().resolve()
  try:
    directory.mkdir(parents=True, exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Cannot create log directory {directory}: {exc}") from exc
  return directory / f"articleflow_{time.strftime('%Y%m%d_%H%M%S')}.log"


def _build_handlers(settings: Settings) -> tuple[list[logging.Handler], Path]:
  """Console handler with short tracebacks plus a size-rotated file under the log dir."""
  log_path = _log_file_path(settings.log_dir)

  console = logging.StreamHandler(sys.stdout)
  console.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, CONSOLE_DATE_FORMAT))

  rotating = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  rotating.namer = _rotated_name
  rotating.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=FILE_DATE_FORMAT))
  return [console, rotating], log_path


def setup_logging(settings: Settings) -> Path:
  """Install handlers once per process and return the active log file."""
  global _active_log_path
  if _active_log_path is not None:
    return _active_log_path

  handlers, log_path = _build_handlers(settings)
  level = logging.DEBUG if settings.debug else logging.INFO
  logging.basicConfig(level=level, handlers=handlers, force=True)

  for name in SERVER_LOGGERS:
    server_logger = logging.getLogger(name)
    server_logger.handlers = list(handlers)
    server_logger.propagate = False

  if not settings.debug:
    for name in NOISY_LOGGERS:
      logging.getLogger(name).setLevel(logging.WARNING)

  _active_log_path = log_path
  logging.getLogger(__name__).info("Logging initialized env=%s level=%s file=%s", settings.environment, logging.getLevelName(level), log_path)
  return log_path

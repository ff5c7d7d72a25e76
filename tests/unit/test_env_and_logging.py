from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

import pytest

from articleflow.core import logging as app_logging
from articleflow.utils.env import load_env_file, parse_env_lines
from articleflow.utils.ids import generate_batch_id, generate_job_id


def test_parse_env_lines() -> None:
  parsed = parse_env_lines(["# comment", "", "export A=1", "B = 'two'", 'C="three"', "broken", "=nokey"])
  assert parsed == {"A": "1", "B": "two", "C": "three"}


def test_load_env_file_respects_existing_values(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text("ARTICLEFLOW_TEST_KEEP=file\nARTICLEFLOW_TEST_NEW=file\n", encoding="utf-8")
  monkeypatch.setenv("ARTICLEFLOW_TEST_KEEP", "process")
  monkeypatch.delenv("ARTICLEFLOW_TEST_NEW", raising=False)

  applied = load_env_file(env_file)

  assert applied == {"ARTICLEFLOW_TEST_NEW": "file"}
  assert os.environ["ARTICLEFLOW_TEST_KEEP"] == "process"
  monkeypatch.delenv("ARTICLEFLOW_TEST_NEW")


def test_missing_env_file_is_ignored(tmp_path) -> None:
  assert load_env_file(tmp_path / "absent.env") == {}


def test_ids_are_prefixed_and_unique() -> None:
  assert generate_job_id().startswith("job_")
  assert generate_batch_id().startswith("batch_")
  assert generate_job_id() != generate_job_id()


def test_truncated_formatter_keeps_tail() -> None:
  formatter = app_logging.TruncatedFormatter("%(message)s", "%H:%M:%S", tail_lines=2)

  def _nested(depth: int) -> None:
    if depth == 0:
      raise RuntimeError("boom")
    _nested(depth - 1)

  try:
    _nested(6)
  except RuntimeError:
    text = formatter.formatException(sys.exc_info())
  assert text.startswith("Traceback")
  assert "    ...\n" in text
  assert text.rstrip().endswith("RuntimeError: boom")


def test_handlers_write_under_log_dir(settings) -> None:
  handlers, path = app_logging._build_handlers(settings)
  try:
    assert path.parent == Path(settings.log_dir).resolve()
    assert path.exists()
    assert isinstance(handlers[1], logging.handlers.RotatingFileHandler)
    assert handlers[1].maxBytes == settings.log_max_bytes
  finally:
    for handler in handlers:
      handler.close()

"""Centralized logging for PriceMarks.

All module loggers are children of a single "pricemarks" logger that owns
the file and console handlers, so one call to set_level() tunes the whole
application.
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from logging.handlers import RotatingFileHandler
from typing import Iterator

APP_LOGGER = "pricemarks"
LOG_FILENAME = "pricemarks.log"
LOG_DIR_ENV = "PRICEMARKS_LOG_DIR"


def _candidate_dirs() -> Iterator[str]:
  override = os.environ.get(LOG_DIR_ENV)
  if override:
    yield override

  if getattr(sys, "frozen", False):
    yield os.path.dirname(sys.executable)
  else:
    yield os.path.dirname(os.path.abspath(__file__))

  if sys.platform == "win32":
    appdata = os.environ.get("APPDATA", "")
    if appdata:
      yield os.path.join(appdata, "PriceMarks")
  else:
    xdg = os.environ.get("XDG_STATE_HOME", os.path.expanduser("~/.local/state"))
    yield os.path.join(xdg, "pricemarks")


def _writable(log_dir: str) -> bool:
  try:
    os.makedirs(log_dir, exist_ok=True)
    with open(os.path.join(log_dir, LOG_FILENAME), "a"):
      pass
  except OSError:
    return False
  return True


def _resolve_log_dir() -> str:
  """Pick a writable directory for the log file.

  Priority: $PRICEMARKS_LOG_DIR > app dir (next to exe) > platform state
  dir > temp dir.
  """
  for log_dir in _candidate_dirs():
    if _writable(log_dir):
      return log_dir
  return tempfile.gettempdir()


LOG_PATH = os.path.join(_resolve_log_dir(), LOG_FILENAME)

_formatter = logging.Formatter(
  "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
  datefmt="%Y-%m-%d %H:%M:%S",
)


def _build_app_logger() -> logging.Logger:
  logger = logging.getLogger(APP_LOGGER)
  if logger.handlers:
    return logger
  logger.setLevel(logging.DEBUG)
  logger.propagate = False
  # Rotate at 1 MB, keep 3 backups
  try:
    file_handler = RotatingFileHandler(
      LOG_PATH, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
    )
  except OSError:
    file_handler = None
  if file_handler:
    file_handler.setFormatter(_formatter)
    logger.addHandler(file_handler)
  console = logging.StreamHandler()
  console.setFormatter(_formatter)
  logger.addHandler(console)
  return logger


_app_logger = _build_app_logger()


def get_logger(name: str) -> logging.Logger:
  """Module logger; records go to the shared pricemarks handlers."""
  return _app_logger.getChild(name)


def set_level(level: int | str) -> None:
  """Set the threshold for every PriceMarks logger, e.g. "INFO" or 10."""
  if isinstance(level, str):
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
      _app_logger.warning("Unknown log level %r, keeping %s",
        level, logging.getLevelName(_app_logger.level))
      return
    level = resolved
  _app_logger.setLevel(level)

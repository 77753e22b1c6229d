from __future__ import annotations

import logging
import sys


def setup_logging(level: str | int = logging.INFO) -> None:
  """
  Configure the root logger with one stderr handler.

  Safe to call more than once: existing handlers are replaced, not stacked.
  """
  root = logging.getLogger()
  root.setLevel(level)

  for h in list(root.handlers):
    root.removeHandler(h)

  fmt = logging.Formatter(
    fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
  )
  ch = logging.StreamHandler(sys.stderr)
  ch.setFormatter(fmt)
  root.addHandler(ch)

  # SQL echo is controlled by DB_ECHO, not by the root level.
  logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
  logging.captureWarnings(True)

"""Logging setup shared by the CLI and the web server."""

from __future__ import annotations

import logging
import os
from datetime import date
from logging.handlers import RotatingFileHandler
from pathlib import Path

MAX_LOG_BYTES = 30 * 1024 * 1024


class DailyFileHandler(RotatingFileHandler):
    """Writes to ``<log_dir>/YYYY-MM-DD.log``, switching files when the date changes.

    Within one day the file is still rotated by size.
    """

    def __init__(
        self, log_dir: Path, *, max_bytes: int = MAX_LOG_BYTES, backup_count: int = 5
    ) -> None:
        self.log_dir = Path(log_dir)
        self.day = date.today()
        super().__init__(
            self._path_for(self.day),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )

    def _path_for(self, day: date) -> Path:
        return self.log_dir / f"{day.isoformat()}.log"

    def shouldRollover(self, record: logging.LogRecord) -> bool:
        if date.today() != self.day:
            return True
        return bool(super().shouldRollover(record))

    def doRollover(self) -> None:
        today = date.today()
        if today == self.day:
            super().doRollover()
            return
        if self.stream:
            self.stream.close()
            self.stream = None
        self.day = today
        self.baseFilename = os.path.abspath(self._path_for(today))
        self.stream = self._open()


def setup_logging(verbose: bool = False, log_dir: Path | None = None) -> None:
    """Log to the console and, when ``log_dir`` is set, to a daily file rotated at 30 MB."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = DailyFileHandler(log_dir)
        file_handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s: %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level, format="[%(levelname)s] %(message)s", handlers=handlers, force=True
    )

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .errors import StorageError


class RunStateStore:
    """Unix timestamp (seconds) of the last successful run, kept in a text file."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def get(self) -> Optional[datetime]:
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"error reading {self.path}: {exc}") from exc
        try:
            return datetime.fromtimestamp(int(raw), tz=timezone.utc)
        except ValueError as exc:
            raise StorageError(f"error parsing timestamp from {self.path}: {raw!r}") from exc

    def put(self, ts: datetime) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(str(int(ts.timestamp())), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"error writing {self.path}: {exc}") from exc

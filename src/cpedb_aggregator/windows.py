"""Time-window partitioning for incremental fetches.

The NVD CPE API rejects ``lastModStartDate``/``lastModEndDate`` ranges longer
than 120 days, so the interval since the last successful run is cut into
consecutive windows no longer than ``max_span``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ISO8601_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DEFAULT_MAX_SPAN = timedelta(days=119)


@dataclass(frozen=True)
class FetchWindow:
    start: datetime
    end: datetime

    @classmethod
    def unbounded(cls) -> "FetchWindow":
        return cls(EPOCH, EPOCH)

    @property
    def is_unbounded(self) -> bool:
        return self.start == self.end

    def params(self) -> Dict[str, str]:
        if self.is_unbounded:
            return {}
        return {
            "lastModStartDate": format_iso(self.start),
            "lastModEndDate": format_iso(self.end),
        }

    def label(self) -> str:
        if self.is_unbounded:
            return "all"
        return f"{format_iso(self.start)}..{format_iso(self.end)}"


def format_iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime(ISO8601_FORMAT)


def partition_windows(
    last_run: Optional[datetime],
    now: datetime,
    max_span: timedelta = DEFAULT_MAX_SPAN,
) -> List[FetchWindow]:
    if max_span <= timedelta(0):
        raise ValueError("max_span must be positive")
    if last_run is None or last_run == now:
        return [FetchWindow.unbounded()]
    windows: List[FetchWindow] = []
    start = last_run
    while start < now:
        end = min(start + max_span, now)
        windows.append(FetchWindow(start, end))
        start = end
    return windows

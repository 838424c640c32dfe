from __future__ import annotations

import asyncio
from typing import Iterable, List

from .models import CpeRecord


class Aggregator:
    """Collects records from every window task into one list."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._records: List[CpeRecord] = []
        self._windows = 0

    async def extend(self, records: Iterable[CpeRecord]) -> None:
        batch = list(records)
        async with self._lock:
            self._records.extend(batch)
            self._windows += 1

    @property
    def windows(self) -> int:
        return self._windows

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> List[CpeRecord]:
        return list(self._records)

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from .aggregator import Aggregator
from .api_client import ApiClient, ApiConfig
from .checkpoint import RunStateStore
from .config import Config, get_api_key
from .errors import FetchError
from .logging_utils import log_json
from .merge import merge_shards
from .models import ShardData
from .shards import ShardKey, group_records
from .store import SnapshotStore
from .windows import FetchWindow, format_iso, partition_windows


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def build_api_config(config: Config) -> ApiConfig:
    known = {f.name for f in fields(ApiConfig)}
    return ApiConfig(**{k: v for k, v in config.api.items() if k in known})


@dataclass
class RunResult:
    started_at: datetime
    windows: List[FetchWindow] = field(default_factory=list)
    failed_windows: List[FetchWindow] = field(default_factory=list)
    records: int = 0
    invalid: int = 0
    shards_written: int = 0
    checkpoint: Optional[datetime] = None


class Orchestrator:
    def __init__(
        self,
        config: Config,
        logger,
        api: Optional[ApiClient] = None,
        now_fn: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self.logger = logger
        self.api_cfg = build_api_config(config)
        self.api = api or ApiClient(get_api_key(), self.api_cfg)
        self.api.set_logger(self.logger)
        self.store = SnapshotStore(config.output_dir)
        self.run_state = RunStateStore(os.path.join(config.output_dir, config.state_file))
        self._now = now_fn

    async def close(self) -> None:
        await self.api.close()

    async def run(self, update_state: bool = True) -> RunResult:
        now = self._now()
        last_run = self.run_state.get()
        result = RunResult(started_at=now)
        max_span = timedelta(days=self.api_cfg.max_window_days)
        # the run-state has whole-second resolution; only a missing one means a full fetch
        if last_run is not None and last_run >= now:
            result.windows = []
        else:
            result.windows = partition_windows(last_run, now, max_span)
        if not result.windows:
            log_json(
                self.logger,
                "run_state_not_behind",
                level=logging.WARNING,
                last_run=format_iso(last_run),
                now=format_iso(now),
            )
            return result
        log_json(
            self.logger,
            "run_start",
            last_run=format_iso(last_run) if last_run else None,
            now=format_iso(now),
            windows=len(result.windows),
        )

        aggregator = Aggregator()
        result.failed_windows = await self._fetch_all(result.windows, aggregator)
        result.records = len(aggregator)

        groups, invalid = group_records(aggregator.records())
        result.invalid = len(invalid)
        for cpe_name in invalid:
            log_json(self.logger, "invalid_identifier", level=logging.WARNING, cpe=cpe_name)

        result.shards_written = self._write_shards(groups)

        result.checkpoint = self._next_checkpoint(last_run, now, result.failed_windows)
        if update_state and result.checkpoint is not None:
            self.run_state.put(result.checkpoint)
            log_json(self.logger, "run_state_written", timestamp=format_iso(result.checkpoint))
        elif update_state:
            log_json(self.logger, "run_state_unchanged", level=logging.WARNING, failed=len(result.failed_windows))

        log_json(
            self.logger,
            "run_summary",
            windows=len(result.windows),
            failed_windows=len(result.failed_windows),
            records=result.records,
            invalid=result.invalid,
            shards=result.shards_written,
        )
        return result

    async def _fetch_all(self, windows: List[FetchWindow], aggregator: Aggregator) -> List[FetchWindow]:
        queue: asyncio.Queue = asyncio.Queue()
        for window in windows:
            queue.put_nowait(window)
        failed: List[FetchWindow] = []

        async def worker() -> None:
            while True:
                try:
                    window = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    if not await self._fetch_window(window, aggregator):
                        failed.append(window)
                finally:
                    queue.task_done()

        pool = min(self.api_cfg.max_concurrency, len(windows))
        await asyncio.gather(*(worker() for _ in range(pool)))
        return failed

    async def _fetch_window(self, window: FetchWindow, aggregator: Aggregator) -> bool:
        log_json(self.logger, "window_start", window=window.label())
        try:
            records = await self.api.fetch_window(window)
        except FetchError as exc:
            log_json(self.logger, "window_failed", level=logging.ERROR, window=window.label(), error=str(exc))
            return False
        await aggregator.extend(records)
        log_json(self.logger, "window_done", window=window.label(), records=len(records))
        return True

    def _write_shards(self, groups: Dict[ShardKey, ShardData]) -> int:
        written = 0
        for key in sorted(groups, key=lambda k: k.shard_path):
            new = groups[key]
            old = self.store.read(key.shard_path)
            final = new if old.is_empty() else merge_shards(new, old)
            self.store.write(key.shard_path, final)
            written += 1
            self.logger.debug(
                "shard_written",
                extra={"extra": {"shard": key.shard_path, "nist": len(final.nist), "fetched": len(new.nist)}},
            )
        return written

    def _next_checkpoint(
        self,
        last_run: Optional[datetime],
        now: datetime,
        failed: List[FetchWindow],
    ) -> Optional[datetime]:
        if not failed or self.config.checkpoint_policy == "advance":
            return now
        if any(w.is_unbounded for w in failed):
            return None
        earliest = min(w.start for w in failed)
        if last_run is not None and earliest <= last_run:
            return None
        return earliest

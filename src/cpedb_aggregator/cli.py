from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import load_config, validate_config
from .errors import ConfigError, CpeDbError, InvalidIdentifier, StorageError
from .logging_utils import log_json, setup_logging
from .orchestrate import Orchestrator
from .shards import route

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_STORAGE = 3


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="cpedb-aggregator")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Fetch changes since the last run and merge them into the shards")
    sync.add_argument("--output-dir", help="Override output_dir")
    sync.add_argument("--state-file", help="Override state_file")
    sync.add_argument("--max-pages", type=int, help="Stop each window after this many pages")
    sync.add_argument("--no-state-update", action="store_true", help="Do not advance the run-state")

    route_cmd = sub.add_parser("route", help="Print the shard path for a CPE name")
    route_cmd.add_argument("cpe")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    if args.command == "route":
        try:
            print(route(args.cpe).shard_path)
        except InvalidIdentifier as exc:
            print(str(exc), file=sys.stderr)
            return EXIT_ERROR
        return EXIT_OK

    try:
        cfg = load_config(args.config)
        if args.output_dir:
            cfg.raw["output_dir"] = args.output_dir
        if args.state_file:
            cfg.raw["state_file"] = args.state_file
        if args.max_pages is not None:
            cfg.raw["api"] = dict(cfg.raw.get("api") or {}, max_pages=args.max_pages)
            validate_config(cfg)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_CONFIG
    logger = setup_logging(cfg.log_level)
    return asyncio.run(_sync(cfg, logger, update_state=not args.no_state_update))


async def _sync(cfg, logger, update_state: bool) -> int:
    try:
        orchestrator = Orchestrator(cfg, logger)
    except ConfigError as exc:
        log_json(logger, "config_error", level=logging.ERROR, error=str(exc))
        return EXIT_CONFIG
    try:
        await orchestrator.run(update_state=update_state)
    except StorageError as exc:
        log_json(logger, "storage_error", level=logging.ERROR, error=str(exc))
        return EXIT_STORAGE
    except CpeDbError as exc:
        log_json(logger, "run_failed", level=logging.ERROR, error=str(exc))
        return EXIT_ERROR
    finally:
        await orchestrator.close()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

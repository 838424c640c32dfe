from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from .errors import FetchError, StorageError
from .models import ShardData


class SnapshotStore:
    """One JSON document per shard, rooted at ``base_dir``."""

    def __init__(self, base_dir: str = ".") -> None:
        self.base_dir = Path(base_dir)

    def _resolve(self, shard_path: str) -> Path:
        full = self.base_dir / shard_path
        try:
            full.resolve().relative_to(self.base_dir.resolve())
        except ValueError:
            raise StorageError(f"shard path {shard_path!r} escapes {self.base_dir}") from None
        return full

    def read(self, shard_path: str) -> ShardData:
        path = self._resolve(shard_path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ShardData()
        except OSError as exc:
            raise StorageError(f"error reading {path}: {exc}") from exc
        if not text.strip():
            return ShardData()
        try:
            return ShardData.from_dict(json.loads(text))
        except (ValueError, TypeError, AttributeError, FetchError) as exc:
            raise StorageError(f"error decoding existing JSON file {path}: {exc}") from exc

    def write(self, shard_path: str, data: ShardData) -> Path:
        path = self._resolve(shard_path)
        body = json.dumps(data.to_dict(), indent=2, ensure_ascii=False) + "\n"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        except OSError as exc:
            raise StorageError(f"error preparing {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise StorageError(f"error writing {path}: {exc}") from exc
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
        return path

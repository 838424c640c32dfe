from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .errors import InvalidIdentifier
from .models import CpeRecord, ShardData

_UNSAFE = re.compile(r"[^\w\-.]")


@dataclass(frozen=True)
class ShardKey:
    vendor_dir: str
    shard_path: str


def sanitize(value: str, replacement: str = "_") -> str:
    clean = _UNSAFE.sub(replacement, value).replace("./", replacement + "/")
    # "", "." and ".." are not usable as a path segment
    if not clean.strip("."):
        clean = replacement * max(1, len(clean))
    return clean


def route(cpe_name: str) -> ShardKey:
    """Map a CPE 2.3 name to its ``<vendor>/<product>.json`` shard."""
    parts = cpe_name.split(":")
    if len(parts) < 5:
        raise InvalidIdentifier(cpe_name)
    vendor = sanitize(parts[3])
    product = sanitize(parts[4])
    return ShardKey(vendor_dir=vendor, shard_path=os.path.join(vendor, product + ".json"))


def group_records(records: Iterable[CpeRecord]) -> Tuple[Dict[ShardKey, ShardData], List[str]]:
    """Fan records out to shards; returns the groups and the rejected names."""
    groups: Dict[ShardKey, ShardData] = {}
    invalid: List[str] = []
    for record in records:
        try:
            key = route(record.cpe_name)
        except InvalidIdentifier:
            invalid.append(record.cpe_name)
            continue
        groups.setdefault(key, ShardData()).add(record)
    return groups, invalid

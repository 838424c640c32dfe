"""Reconcile freshly fetched shard content with the persisted snapshot.

Entries are matched by identity (``cpeNameId`` for NVD records, ``name`` for
the OpenCPE view). A matched entry takes the new value; an old entry that was
not fetched this run is kept as is; a new entry never seen before is appended.
Nothing is ever removed, since the upstream only signals deprecation.
"""
from __future__ import annotations

from typing import Callable, Dict, Hashable, List, TypeVar

from .models import CpeRecord, OpenCpeProduct, ShardData

T = TypeVar("T")


def merge_keyed(new: List[T], old: List[T], key: Callable[[T], Hashable]) -> List[T]:
    if not old:
        return list(new)
    latest: Dict[Hashable, T] = {}
    for item in new:
        latest[key(item)] = item
    old_keys = set()
    merged: List[T] = []
    for item in old:
        k = key(item)
        old_keys.add(k)
        merged.append(latest.get(k, item))
    merged.extend(item for item in new if key(item) not in old_keys)
    return merged


def _record_key(record: CpeRecord) -> str:
    return record.cpe_name_id


def _product_key(product: OpenCpeProduct) -> str:
    return product.name


def merge_shards(new: ShardData, old: ShardData) -> ShardData:
    return ShardData(
        nist=merge_keyed(new.nist, old.nist, _record_key),
        opencpe=merge_keyed(new.opencpe, old.opencpe, _product_key),
    )

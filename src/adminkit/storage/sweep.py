"""
Snapshot-filter-apply passes over a bucket.

The store forbids mutating a bucket while a cursor over it is open, so every
scan-then-mutate job collects candidate keys in a read transaction first and
applies its changes in a separate write transaction.
"""

from typing import Callable, List, Optional, TypeVar

from loguru import logger

from ..errors import KeyNotFound
from .store import Name, Store

T = TypeVar("T")


def _bucket_label(name: Name) -> str:
    return name.decode("utf-8") if isinstance(name, bytes) else name


def collect(
    store: Store,
    bucket_name: Name,
    predicate: Callable[[T], bool],
    decode: Optional[Callable[[bytes], T]] = None,
) -> List[bytes]:
    """
    Snapshot a bucket and return the keys whose records match predicate.

    Args:
        store: Store to read from
        bucket_name: Top-level bucket to scan
        predicate: Called with each (decoded) record
        decode: Turns raw values into records; raw bytes are passed if None

    Returns:
        Matching keys in key order

    Raises:
        KeyNotFound: If the bucket does not exist
        StorageError: If the read transaction or a decode fails
    """
    keys = []
    with store.view() as tx:
        bucket = tx.bucket(bucket_name)
        if bucket is None:
            raise KeyNotFound(_bucket_label(bucket_name))

        for key, value in bucket.items():
            record = decode(value) if decode else value
            if predicate(record):
                keys.append(key)

    return keys


def delete_keys(store: Store, bucket_name: Name, keys: List[bytes]) -> None:
    """Delete keys from a bucket in one write transaction."""
    if not keys:
        return

    with store.update() as tx:
        bucket = tx.bucket(bucket_name)
        if bucket is None:
            raise KeyNotFound(_bucket_label(bucket_name))
        for key in keys:
            bucket.delete(key)


def sweep(
    store: Store,
    bucket_name: Name,
    predicate: Callable[[T], bool],
    decode: Optional[Callable[[bytes], T]] = None,
) -> List[bytes]:
    """
    Delete every record in a bucket that matches predicate.

    Running a sweep twice with no writes in between deletes nothing the
    second time.

    Returns:
        Keys that were deleted
    """
    stale = collect(store, bucket_name, predicate, decode)
    delete_keys(store, bucket_name, stale)

    if stale:
        logger.debug(f"Swept {len(stale)} records from '{_bucket_label(bucket_name)}'")
    return stale

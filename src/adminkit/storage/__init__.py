"""
Durable storage for adminkit.
"""

from .store import Bucket, Store, Transaction, is_valid_name
from .sweep import collect, delete_keys, sweep

__all__ = [
    "Bucket",
    "Store",
    "Transaction",
    "is_valid_name",
    "collect",
    "delete_keys",
    "sweep",
]

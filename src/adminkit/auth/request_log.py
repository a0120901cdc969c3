"""
Request audit log.

One record per validated request, stored under ``log/<day>/<token>`` and keyed
by the record's own serialized bytes.
"""

import time
from datetime import datetime
from typing import Callable, List

from loguru import logger

from ..constants import DATE_FORMAT, LOG_BUCKET, TIME_FORMAT
from ..errors import InvalidParameter
from ..storage import Store, is_valid_name
from .models import RequestLog


def day_partition(timestamp: float) -> str:
    """Name of the day bucket for a timestamp, e.g. "19-Oct-2026"."""
    return datetime.fromtimestamp(timestamp).strftime(DATE_FORMAT)


def parse_date(value: str) -> datetime:
    """Parse "YYYY-MM-DD hh:mm:ss" (or just "YYYY-MM-DD")."""
    for fmt in (TIME_FORMAT, "%Y-%m-%d"):
        try:
            return datetime.strptime(value, fmt)
        except (TypeError, ValueError):
            continue
    raise InvalidParameter("date")


class AuditLogger:
    """
    Append-only request audit log.

    Appends are single-record write transactions; they hold the store's
    global write lock only for the one put.
    """

    def __init__(self, store: Store, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    def append(self, record: RequestLog) -> None:
        """
        Persist one audit record.

        Raises:
            StorageError: If the write transaction fails
        """
        day = day_partition(record.timestamp or self.clock())
        data = record.to_json()

        with self.store.update() as tx:
            log_bucket = tx.create_bucket_if_not_exists(LOG_BUCKET)
            day_bucket = log_bucket.create_bucket_if_not_exists(day)
            token_bucket = day_bucket.create_bucket_if_not_exists(record.requestor)
            token_bucket.put(data, b"")

    def list(
        self,
        date: str,
        token: str,
        request_type: str = "",
        offset: int = 0,
        page_limit: int = 20,
    ) -> List[RequestLog]:
        """
        List audit records for one day and one session token.

        Args:
            date: Any time on the wanted day, "YYYY-MM-DD hh:mm:ss"
            token: Session token of the requestor
            request_type: Only return this HTTP method (any if empty)
            offset: Page number, starting at 0
            page_limit: Records per page

        Returns:
            Records for the requested page, in key order

        Raises:
            InvalidParameter: If date or token is unusable or paging is negative
        """
        if not is_valid_name(token):
            raise InvalidParameter("token")
        if offset < 0:
            raise InvalidParameter("offset")
        if page_limit <= 0:
            raise InvalidParameter("pagesize")

        day = parse_date(date).strftime(DATE_FORMAT)
        skip = page_limit * offset
        wanted = request_type.lower()
        records: List[RequestLog] = []

        with self.store.view() as tx:
            log_bucket = tx.bucket(LOG_BUCKET)
            day_bucket = log_bucket.bucket(day) if log_bucket is not None else None
            token_bucket = day_bucket.bucket(token) if day_bucket is not None else None
            if token_bucket is None:
                logger.debug(f"No audit records for {token} on {day}")
                return records

            for key, _ in token_bucket.items():
                record = RequestLog.from_json(key)
                if wanted and record.request_type.lower() != wanted:
                    continue
                if skip:
                    skip -= 1
                    continue
                records.append(record)
                if len(records) == page_limit:
                    break

        return records

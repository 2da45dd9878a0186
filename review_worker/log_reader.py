"""Cursor-based pagination over the assertion log."""

import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from review_worker.models.assertion import AssertionRecord
from review_worker.store.base import ResultStore

log = logging.getLogger(__name__)


async def read_page(
    store: ResultStore, partition: str, cursor: int = 0, *, limit: int
) -> Sequence[AssertionRecord]:
    """Read the next page of a partition after the given cursor.

    Args:
        store: Assertion log to read from
        partition: Test class to restrict the page to
        cursor: `message_id` of the last record already consumed
        limit: Page size

    Returns:
        At most `limit` records with `message_id > cursor`, ascending

    """
    if limit <= 0:
        raise ValueError(f"Page size must be positive, got {limit}")
    return await store.select(partition, cursor, limit)


@dataclass(frozen=True, kw_only=True)
class WindowedLogReader:
    """Reads one partition page by page.

    The cursor is always the last key of the previous page, never an offset,
    so rows appended while reading cannot shift or duplicate a page.
    """

    store: ResultStore
    page_size: int = 1000

    async def pages(
        self, partition: str, cursor: int = 0
    ) -> AsyncIterator[Sequence[AssertionRecord]]:
        """Yield pages until a short page signals the end of the partition.

        A final empty page is yielded when the partition size is a multiple
        of the page size, since a full page cannot prove exhaustion.
        """
        while True:
            page = await read_page(self.store, partition, cursor, limit=self.page_size)
            yield page

            if len(page) < self.page_size:
                return

            cursor = page[-1].message_id
            log.debug("Continuing %s from message_id=%d", partition, cursor)

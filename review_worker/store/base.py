"""Abstract base class for assertion result stores."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from review_worker.models.assertion import AssertionRecord

type StatusCountRow = tuple[str, str, int]


class ResultStoreError(Exception):
    """Raised when the assertion log cannot be read."""


class ResultStore(ABC):
    """Read access to the append-only assertion log.

    Implementations must order records by `message_id` ascending and apply
    the cursor as a strictly-greater-than condition, so callers can resume
    reading from the last key they saw while other writers keep appending.
    """

    @abstractmethod
    async def select(
        self, partition: str, cursor: int, limit: int
    ) -> Sequence[AssertionRecord]:
        """Return up to `limit` records of `partition` with a key above `cursor`.

        Args:
            partition: Test class the records belong to
            cursor: Last `message_id` already consumed (0 to start)
            limit: Maximum number of records to return

        Returns:
            Records ordered by ascending `message_id`, empty when exhausted

        """

    @abstractmethod
    async def grouped_status_counts(
        self, partition: str | None = None
    ) -> Sequence[StatusCountRow]:
        """Count records per partition and status.

        Args:
            partition: Restrict counting to a single test class

        Returns:
            `(partition, status, count)` rows

        """

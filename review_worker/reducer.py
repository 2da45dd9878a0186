"""Reduce the assertion log to relevant records with surrounding context."""

import logging
from collections import Counter
from collections.abc import Collection, Mapping, MutableMapping, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Self

from review_worker.log_reader import WindowedLogReader
from review_worker.models.assertion import (
    AssertionRecord,
    PathNormalizer,
    Reduction,
    StatusCounts,
    to_reported,
)
from review_worker.models.job import ReductionSettings
from review_worker.store.base import ResultStore

log = logging.getLogger(__name__)

type RelevantSet = MutableMapping[int, AssertionRecord]


@dataclass(kw_only=True)
class _Budget:
    """Running count of retained records across every partition."""

    max_results: int
    total: int = 0

    @property
    def exhausted(self) -> bool:
        return self.total >= self.max_results


def window_bounds(index: int, size: int, radius: int) -> tuple[int, int]:
    """Return the `[start, stop)` slice around `index` clipped to the buffer.

    The window holds `min(index, radius) + 1 + min(size - index - 1, radius)`
    records.
    """
    start = max(0, index - radius)
    stop = min(size, index + radius + 1)
    return start, stop


def merge_window(target: RelevantSet, window: Sequence[AssertionRecord]) -> int:
    """Insert records missing from `target` and return how many were added."""
    added = 0
    for record in window:
        if record.message_id not in target:
            target[record.message_id] = record
            added += 1
    return added


@dataclass(frozen=True, kw_only=True)
class RelevanceReducer:
    """Builds a size-capped report of relevant assertions.

    Partitions are reduced one at a time, in the order given. Each partition
    is read page by page; the last `context_radius` records of a page are
    carried into the next one so windows spanning a page boundary are
    complete. Once the number of retained records reaches `max_results`,
    reduction stops and returns what it has. Summaries always cover every
    partition.
    """

    store: ResultStore
    page_size: int = 1000
    normalize: PathNormalizer = field(default_factory=PathNormalizer)

    @classmethod
    def from_settings(cls, store: ResultStore, settings: ReductionSettings) -> Self:
        """Create a reducer configured from job settings."""
        return cls(
            store=store,
            page_size=settings.page_size,
            normalize=PathNormalizer(
                root=settings.path_root, basename=settings.basename_paths
            ),
        )

    async def reduce(
        self,
        partitions: Sequence[str],
        relevant_statuses: Collection[str],
        context_radius: int,
        max_results: int,
    ) -> Reduction:
        """Reduce the log of every partition.

        Args:
            partitions: Test classes to report on, in processing order
            relevant_statuses: Statuses that make a record worth keeping
            context_radius: Records kept on each side of a relevant record
            max_results: Retained record count at which reduction stops

        Returns:
            Summaries for all partitions and the retained records

        """
        if self.page_size <= context_radius:
            raise ValueError(
                f"Page size {self.page_size} must exceed context radius "
                f"{context_radius}"
            )

        summaries = await self.summarize(partitions)
        overall: Counter[str] = Counter()
        for counts in summaries.values():
            overall.update(counts)

        relevant: dict[str, RelevantSet] = {}
        budget = _Budget(max_results=max_results)

        for partition in partitions:
            counts = summaries[partition]
            if not any(counts.get(status, 0) for status in relevant_statuses):
                continue

            records = relevant.setdefault(partition, {})
            await self._reduce_partition(
                partition, records, frozenset(relevant_statuses), context_radius, budget
            )
            if budget.exhausted:
                log.warning(
                    "Reached %d retained assertion(s) while reducing %s, "
                    "skipping remaining test classes",
                    budget.total,
                    partition,
                )
                break

        return Reduction(
            summaries=summaries,
            overall=dict(overall),
            records={
                partition: [
                    to_reported(record, self.normalize)
                    for _, record in sorted(records.items())
                ]
                for partition, records in relevant.items()
            },
            max_results=max_results,
            total=budget.total,
        )

    async def summarize(self, partitions: Sequence[str]) -> Mapping[str, StatusCounts]:
        """Count records by status for each partition."""
        summaries: dict[str, dict[str, int]] = {partition: {} for partition in partitions}
        for partition, status, count in await self.store.grouped_status_counts():
            if partition in summaries:
                summaries[partition][status] = count
        return summaries

    async def _reduce_partition(
        self,
        partition: str,
        records: RelevantSet,
        relevant_statuses: frozenset[str],
        context_radius: int,
        budget: _Budget,
    ) -> None:
        # message_id -> (record, relevant); carried entries keep their flag
        buffer: dict[int, tuple[AssertionRecord, bool]] = {}
        reader = WindowedLogReader(store=self.store, page_size=self.page_size)

        async with aclosing(reader.pages(partition)) as pages:
            async for page in pages:
                keep = min(len(buffer), context_radius)
                buffer = dict(list(buffer.items())[len(buffer) - keep :])
                for record in page:
                    buffer.setdefault(
                        record.message_id, (record, record.status in relevant_statuses)
                    )

                entries = list(buffer.values())
                ordered = [record for record, _ in entries]
                for index, (_, is_relevant) in enumerate(entries):
                    if not is_relevant:
                        continue
                    start, stop = window_bounds(index, len(ordered), context_radius)
                    budget.total += merge_window(records, ordered[start:stop])
                    if budget.exhausted:
                        return

        log.debug("Retained %d assertion(s) for %s", len(records), partition)

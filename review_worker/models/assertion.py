"""Models for assertion records read from the result store."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from review_worker.models.base import Model

type StatusCounts = Mapping[str, int]

FAILING_STATUSES: frozenset[str] = frozenset(["fail", "exception"])


@dataclass(frozen=True, kw_only=True)
class AssertionRecord:
    """A single row of the append-only assertion log.

    `message_id` is unique across all partitions and increases monotonically
    with insertion order.
    """

    message_id: int
    test_id: int
    test_class: str
    status: str
    message: str = ""
    message_group: str = ""
    function: str = ""
    file: str = ""
    line: int | None = None


class ReportedAssertion(Model):
    """Public shape of a retained assertion in the report."""

    type: str
    group: str
    message: str
    function: str
    file: str
    line: int | None = None


@dataclass(frozen=True, kw_only=True)
class PathNormalizer:
    """Rewrites source file paths before they leave the worker."""

    root: str = ""
    basename: bool = False

    def __call__(self, path: str) -> str:
        if not path:
            return path
        if self.basename:
            return PurePosixPath(path).name
        root = self.root.rstrip("/")
        if root and (path == root or path.startswith(f"{root}/")):
            return path[len(root) :].lstrip("/")
        return path


def to_reported(
    record: AssertionRecord, normalize: PathNormalizer = PathNormalizer()
) -> ReportedAssertion:
    """Strip bookkeeping fields and rename status fields for the report."""
    return ReportedAssertion(
        type=record.status,
        group=record.message_group,
        message=record.message,
        function=record.function,
        file=normalize(record.file),
        line=record.line,
    )


@dataclass(frozen=True, kw_only=True)
class Reduction:
    """Outcome of reducing the assertion log.

    `summaries` and `overall` count every record; `records` holds only
    relevant assertions plus their context, and may omit partitions when
    the result cap was reached.
    """

    summaries: Mapping[str, StatusCounts]
    overall: StatusCounts
    records: Mapping[str, Sequence[ReportedAssertion]]
    max_results: int
    total: int = field(default=0)

    @property
    def truncated(self) -> bool:
        """Whether the reducer stopped because the cap was reached."""
        return self.total >= self.max_results

    @property
    def passed(self) -> bool:
        """True when no record in any partition failed or raised."""
        return not any(self.overall.get(status, 0) for status in FAILING_STATUSES)

"""Review job coordinating installation, test execution and reporting."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Self

from review_worker.coverage import CoverageMerger, dump_report, load_base_report
from review_worker.file_listing import list_source_files
from review_worker.installers.base import Installer
from review_worker.metadata import parse_listing
from review_worker.models.assertion import Reduction
from review_worker.models.coverage import CoverageEntry
from review_worker.models.job import CoverageSettings, JobDefinition
from review_worker.models.metadata import TestMetadata
from review_worker.models.result import CommandResult
from review_worker.reducer import RelevanceReducer
from review_worker.runner import CommandRunner, CommandRunnerError
from review_worker.store.base import ResultStore, ResultStoreError
from review_worker.store.sqlite import SqliteResultStore

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class ReviewFailure:
    """A job that stopped before any report could be produced."""

    stage: Literal["install", "enable", "execute", "reduce"]
    message: str

    def to_payload(self) -> dict[str, Any]:
        """Format the failure for JSON output."""
        return {"pass": False, "error": {"stage": self.stage, "message": self.message}}


@dataclass(frozen=True, kw_only=True)
class ReviewReport:
    """Everything a finished job reports back."""

    reduction: Reduction
    meta: Mapping[str, TestMetadata]
    executions: Mapping[str, CommandResult]
    coverage: Sequence[CoverageEntry] | None = None

    @property
    def passed(self) -> bool:
        """True when no assertion failed or raised."""
        return self.reduction.passed

    def to_payload(self) -> dict[str, Any]:
        """Format the report for JSON output."""
        return {
            "pass": self.passed,
            "results": {
                "totals": self.reduction.summaries,
                "overall": self.reduction.overall,
                "records": {
                    partition: [record.model_dump() for record in records]
                    for partition, records in self.reduction.records.items()
                },
            },
            "meta": {
                test_class: metadata.model_dump()
                for test_class, metadata in self.meta.items()
            },
            "coverage": (
                dump_report(self.coverage) if self.coverage is not None else False
            ),
        }


@dataclass(frozen=True, kw_only=True)
class ReviewJob:
    """Runs one job definition against a freshly installed site."""

    definition: JobDefinition
    installer: Installer
    runner: CommandRunner
    store: ResultStore

    @classmethod
    def from_definition(cls, definition: JobDefinition, installer: Installer) -> Self:
        """Wire the default runner and result store for a definition."""
        return cls(
            definition=definition,
            installer=installer,
            runner=CommandRunner(
                concurrency=definition.concurrency,
                cwd=definition.working_directory,
            ),
            store=SqliteResultStore(
                db_path=definition.results_database,
                table=definition.results_table,
            ),
        )

    async def run(self) -> ReviewReport | ReviewFailure:
        """Install, run the tests, and build the report.

        Returns:
            The report, or the failure that prevented one

        """
        install = await self.installer.install(self.definition.site)
        if install.error is not None:
            return ReviewFailure(stage="install", message=install.error)

        failed_module = await self.installer.enable_modules(self.definition.modules)
        if failed_module is not None:
            return ReviewFailure(
                stage="enable", message=f"Failed to enable module {failed_module}"
            )

        log.info("Running %d test class(es)...", len(self.definition.tests))
        try:
            executions = await self.runner.run(self.definition.test_commands())
            listing = await self.runner.run_one_shot(self.definition.list_command)
        except CommandRunnerError as exc:
            log.error("Test execution could not start: %s", exc)
            return ReviewFailure(stage="execute", message=str(exc))

        for test_class, execution in executions.items():
            log.info(
                "Test class finished: class=%s returncode=%s duration=%.1fs",
                test_class,
                execution.returncode,
                execution.duration,
            )

        meta = parse_listing(listing, self.definition.tests)

        settings = self.definition.reduction
        reducer = RelevanceReducer.from_settings(self.store, settings)
        try:
            reduction = await reducer.reduce(
                self.definition.tests,
                settings.relevant_statuses,
                settings.context_radius,
                settings.max_results,
            )
        except ResultStoreError as exc:
            log.error("Test results could not be read: %s", exc)
            return ReviewFailure(stage="reduce", message=str(exc))

        coverage = None
        if self.definition.coverage is not None:
            try:
                coverage = await self.collect_coverage(self.definition.coverage)
            except CommandRunnerError as exc:
                log.error("Coverage collection could not start: %s", exc)
                return ReviewFailure(stage="execute", message=str(exc))

        return ReviewReport(
            reduction=reduction, meta=meta, executions=executions, coverage=coverage
        )

    async def collect_coverage(self, settings: CoverageSettings) -> list[CoverageEntry]:
        """Merge this shard's coverage into the report written by the tests."""
        base = await load_base_report(settings.base_report)
        candidates = await asyncio.to_thread(
            list_source_files,
            settings.source_root,
            settings.extensions,
            settings.exclude,
        )

        merger = CoverageMerger(
            runner=CommandRunner(concurrency=settings.concurrency, cwd=self.runner.cwd),
            source_root=settings.source_root,
            instrument_command=settings.instrument_command,
            artifact_dir=self.runner.cwd,
            throttle=settings.throttle,
        )
        return await merger.merge(
            base, candidates, settings.shard_index, settings.shard_count
        )

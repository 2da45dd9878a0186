"""Sharded coverage collection and merging."""

import asyncio
import base64
import logging
import math
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from review_worker.models.coverage import CoverageEntry
from review_worker.models.job import FILE_PLACEHOLDER, fill_placeholder
from review_worker.runner import CommandRunner

log = logging.getLogger(__name__)

_REPORT_ADAPTER = TypeAdapter(list[CoverageEntry])


def shard_slice(
    candidates: Sequence[str], shard_index: int, shard_count: int
) -> Sequence[str]:
    """Return the part of `candidates` owned by one shard.

    Every shard takes `ceil(total / shard_count)` paths; the last shards may
    get fewer or none at all.
    """
    if shard_count < 1:
        raise ValueError(f"Shard count must be at least 1, got {shard_count}")
    if not 0 <= shard_index < shard_count:
        raise ValueError(f"Shard index {shard_index} out of range for {shard_count}")

    size = math.ceil(len(candidates) / shard_count)
    start = size * shard_index
    return candidates[start : start + size]


def parse_coverage_lines(lines: Iterable[str]) -> list[CoverageEntry]:
    """Parse JSON-line coverage output, ignoring anything malformed."""
    entries: list[CoverageEntry] = []
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            entries.append(CoverageEntry.model_validate_json(line))
        except ValidationError:
            log.debug("Ignoring malformed coverage line %d: %.80s", number, line)
    return entries


def merge_entries(
    base: Sequence[CoverageEntry], additions: Iterable[CoverageEntry]
) -> list[CoverageEntry]:
    """Append entries whose path is not already present.

    Existing entries are never replaced, including by later duplicates in
    `additions`.
    """
    merged = list(base)
    seen = {entry.path for entry in merged}
    for entry in additions:
        if entry.path in seen:
            continue
        seen.add(entry.path)
        merged.append(entry)
    return merged


async def load_base_report(path: Path | None) -> list[CoverageEntry]:
    """Load the coverage report written while the tests ran.

    A missing report means no file was measured yet.
    """
    if path is None or not path.exists():
        log.info("No base coverage report found at %s", path)
        return []

    content = await asyncio.to_thread(path.read_text)
    if not content.strip():
        return []
    return _REPORT_ADAPTER.validate_json(content)


def dump_report(entries: Sequence[CoverageEntry]) -> list[dict[str, object]]:
    """Serialize entries for the job report."""
    return [entry.model_dump(mode="json", exclude_none=True) for entry in entries]


@dataclass(frozen=True, kw_only=True)
class CoverageMerger:
    """Completes a base coverage report for one shard.

    Every shard instruments all files the base report lacks, but only embeds
    file contents for the paths in its own slice, so contents end up in the
    combined report exactly once without shards coordinating.
    """

    runner: CommandRunner
    source_root: Path
    instrument_command: str
    artifact_dir: Path
    throttle: int = 100_000

    async def merge(
        self,
        base: Sequence[CoverageEntry],
        candidates: Sequence[str],
        shard_index: int,
        shard_count: int,
    ) -> list[CoverageEntry]:
        """Instrument uncovered files and merge the results into `base`.

        Args:
            base: Entries already measured, kept as they are
            candidates: Every file that should appear in the report
            shard_index: Index of this worker's shard
            shard_count: Number of cooperating workers

        Returns:
            Base entries followed by newly instrumented ones, with contents
            embedded for this shard's files

        """
        owned = set(shard_slice(candidates, shard_index, shard_count))
        covered = {entry.path for entry in base}
        missing = [path for path in candidates if path not in covered]

        log.info(
            "Shard %d/%d owns %d file(s); instrumenting %d of %d uncovered file(s)",
            shard_index + 1,
            shard_count,
            len(owned),
            len(missing),
            len(candidates),
        )

        artifact = self.artifact_dir / f"coverage-{uuid.uuid4().hex}.jsonl"
        try:
            await self.instrument(missing, artifact)
            additions = await asyncio.to_thread(self.read_artifact, artifact)
        finally:
            await asyncio.to_thread(artifact.unlink, missing_ok=True)

        merged = merge_entries(base, additions)
        return [
            await self.embed_contents(entry) if entry.path in owned else entry
            for entry in merged
        ]

    async def instrument(self, paths: Sequence[str], artifact: Path) -> None:
        """Run the instrumentation command per file and append its output."""
        if not paths:
            return

        commands = {
            path: fill_placeholder(self.instrument_command, FILE_PLACEHOLDER, path)
            for path in paths
        }
        results = await self.runner.run(commands, throttle=self.throttle)

        failed = sorted(
            name for name, result in results.items() if not result.succeeded
        )
        if failed:
            log.warning(
                "Instrumentation failed for %d file(s): %s",
                len(failed),
                ", ".join(failed),
            )

        await asyncio.to_thread(
            self.write_artifact, artifact, [results[path].output for path in paths]
        )

    @staticmethod
    def write_artifact(artifact: Path, outputs: Sequence[str]) -> None:
        """Append each command output to the artifact, newline terminated."""
        with artifact.open("a", encoding="utf-8") as handle:
            for output in outputs:
                if output and not output.endswith("\n"):
                    output = f"{output}\n"
                handle.write(output)

    @staticmethod
    def read_artifact(artifact: Path) -> list[CoverageEntry]:
        """Parse the JSON-line artifact of one run."""
        if not artifact.exists():
            return []
        with artifact.open(encoding="utf-8") as handle:
            return parse_coverage_lines(handle)

    async def embed_contents(self, entry: CoverageEntry) -> CoverageEntry:
        """Attach the base64 encoded file body to an entry."""
        source = self.source_root / entry.path
        try:
            content = await asyncio.to_thread(source.read_bytes)
        except OSError as exc:
            log.warning("Cannot embed %s: %s", entry.path, exc)
            return entry
        return entry.model_copy(
            update={"contents": base64.b64encode(content).decode("ascii")}
        )


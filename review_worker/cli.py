"""CLI entry point for the review worker."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from review_worker.definition_loader import load_job_definition
from review_worker.installers.loading import load_installer_manifest
from review_worker.models.job import CoverageSettings, JobDefinition
from review_worker.review import ReviewFailure, ReviewJob, ReviewReport

STATUS_SYMBOLS = {
    "pass": "✅",
    "fail": "❌",
    "exception": "❗",
}


def log_results_summary(log: logging.Logger, report: ReviewReport) -> None:
    """Log a formatted summary of assertion counts per test class."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for test_class, counts in report.reduction.summaries.items():
        metadata = report.meta.get(test_class)
        label = f"{metadata.name} ({test_class})" if metadata else test_class
        tally = ", ".join(
            f"{STATUS_SYMBOLS[status]} {counts.get(status, 0)}"
            for status in STATUS_SYMBOLS
        )
        execution = report.executions.get(test_class)
        if execution is not None:
            log.info("%s: %s (%.2fs)", label, tally, execution.duration)
        else:
            log.info("%s: %s", label, tally)

    if report.reduction.truncated:
        log.info(
            "Details truncated at %d assertion(s)", report.reduction.max_results
        )
    if report.coverage is not None:
        log.info("Coverage entries: %d", len(report.coverage))


def apply_shard(
    definition: JobDefinition, shard_index: int | None, shard_count: int | None
) -> JobDefinition:
    """Override the coverage shard of a definition from the command line."""
    if definition.coverage is None or (shard_index is None and shard_count is None):
        return definition

    coverage = CoverageSettings.model_validate(
        {
            **definition.coverage.model_dump(),
            "shard_index": (
                definition.coverage.shard_index if shard_index is None else shard_index
            ),
            "shard_count": (
                definition.coverage.shard_count if shard_count is None else shard_count
            ),
        }
    )
    return definition.model_copy(update={"coverage": coverage})


async def run(
    job_path: Path,
    installer_key: str,
    installer_config_json: str,
    shard_index: int | None = None,
    shard_count: int | None = None,
) -> int:
    """Run a review job and return exit code."""
    log = logging.getLogger("review_worker")

    log.info("Loading job definition: %s", job_path)
    definition = apply_shard(
        await load_job_definition(job_path), shard_index, shard_count
    )

    log.info("Loading installer: %s", installer_key)
    manifest = load_installer_manifest(installer_key)

    config_dict = json.loads(installer_config_json)
    config = manifest.config_cls(**config_dict)

    async with manifest.installer_factory(config) as installer:
        job = ReviewJob.from_definition(definition, installer)
        outcome = await job.run()

    print(json.dumps(outcome.to_payload(), indent=2))

    if isinstance(outcome, ReviewFailure):
        log.error("Review failed during %s: %s", outcome.stage, outcome.message)
        return 2

    log_results_summary(log, outcome)
    return 0 if outcome.passed else 1


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run a test review job and report reduced results"
    )
    parser.add_argument(
        "--job",
        type=Path,
        required=True,
        help="Path to the job definition (job.yaml)",
    )
    parser.add_argument(
        "--installer",
        default="http",
        help="Installer key (http)",
    )
    parser.add_argument(
        "--installer-config",
        required=True,
        help="JSON configuration for the installer",
    )
    parser.add_argument(
        "--shard-index",
        type=int,
        default=None,
        help="Coverage shard handled by this worker (overrides job.yaml)",
    )
    parser.add_argument(
        "--shard-count",
        type=int,
        default=None,
        help="Number of cooperating coverage workers (overrides job.yaml)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(
        run(
            job_path=args.job,
            installer_key=args.installer,
            installer_config_json=args.installer_config,
            shard_index=args.shard_index,
            shard_count=args.shard_count,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()

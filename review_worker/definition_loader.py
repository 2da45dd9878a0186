"""Load review job definitions from YAML files."""

import asyncio
from pathlib import Path

import yaml
from pydantic import ValidationError

from review_worker.models.job import JobDefinition


async def load_job_definition(path: Path) -> JobDefinition:
    """Load and validate a job.yaml file.

    Relative paths inside the definition are resolved against the directory
    holding the file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the YAML is malformed, empty, or fails validation

    """
    if not path.is_file():
        raise FileNotFoundError(f"Job file not found: {path}")

    content = await asyncio.to_thread(path.read_text)

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ValueError(f"Empty job file: {path}")

    try:
        definition = JobDefinition.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid job definition schema in {path}: {e}") from e

    return resolve_paths(definition, path.parent)


def resolve_paths(definition: JobDefinition, base: Path) -> JobDefinition:
    """Anchor relative paths of a definition at `base`."""

    def anchor(path: Path) -> Path:
        return path if path.is_absolute() else base / path

    update: dict[str, object] = {
        "working_directory": anchor(definition.working_directory),
        "results_database": anchor(definition.results_database),
    }
    if definition.coverage is not None:
        coverage_update: dict[str, object] = {
            "source_root": anchor(definition.coverage.source_root)
        }
        if definition.coverage.base_report is not None:
            coverage_update["base_report"] = anchor(definition.coverage.base_report)
        update["coverage"] = definition.coverage.model_copy(update=coverage_update)
    return definition.model_copy(update=update)

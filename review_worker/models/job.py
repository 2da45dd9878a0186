"""Models for review job definitions loaded from job.yaml files."""

import secrets
import shlex
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Self

from pydantic import Field, SecretStr, field_validator, model_validator

from review_worker.models.base import Model

TEST_CLASS_PLACEHOLDER = "{test_class}"
FILE_PLACEHOLDER = "{file}"


def generate_password() -> SecretStr:
    """Create the admin password used for a single job invocation."""
    return SecretStr(secrets.token_urlsafe(12))


def fill_placeholder(template: str, placeholder: str, value: str) -> str:
    """Substitute the shell-quoted `value` for `placeholder` in a command.

    Only the named placeholder is replaced, so other braces in the template
    (`${VAR}`, awk programs) reach the shell untouched.
    """
    return template.replace(placeholder, shlex.quote(value))


def require_placeholder(template: str, placeholder: str) -> str:
    """Reject command templates that never use their placeholder."""
    if placeholder not in template:
        raise ValueError(f"Command template must contain {placeholder}: {template!r}")
    return template


class SiteSettings(Model):
    """Target application instance the tests run against."""

    url: str = Field(..., description="Base URL of the application under test")
    name: str = Field(default="Review site", description="Site name to install")
    admin_user: str = Field(default="admin", description="Administrator account")
    admin_email: str = Field(default="admin@example.com")
    admin_password: SecretStr = Field(
        default_factory=generate_password,
        description="Administrator password, generated once per job",
    )
    database_url: SecretStr = Field(..., description="Database DSN for the install")


class ReductionSettings(Model):
    """Limits applied when reducing the assertion log into a report."""

    relevant_statuses: frozenset[str] = Field(
        default=frozenset(["fail", "exception"]),
        description="Statuses that cause a record and its context to be kept",
    )
    context_radius: int = Field(default=3, ge=0)
    page_size: int = Field(default=1000, gt=0)
    max_results: int = Field(default=5000, gt=0)
    path_root: str = Field(default="", description="Prefix stripped from file paths")
    basename_paths: bool = Field(
        default=False, description="Reduce file paths to their base name"
    )

    @model_validator(mode="after")
    def check_page_size(self) -> Self:
        """Pages must be larger than the context carried between them."""
        if self.page_size <= self.context_radius:
            raise ValueError(
                f"page_size ({self.page_size}) must be greater than "
                f"context_radius ({self.context_radius})"
            )
        return self


class CoverageSettings(Model):
    """Code coverage collection and sharding."""

    source_root: Path = Field(..., description="Root the candidate files live under")
    extensions: Sequence[str] = Field(default_factory=lambda: [".php", ".inc"])
    exclude: Sequence[str] = Field(default_factory=list)
    instrument_command: str = Field(
        ..., description="Per-file command with a {file} placeholder"
    )
    base_report: Path | None = Field(
        default=None, description="Coverage JSON produced while the tests ran"
    )
    throttle: int = Field(
        default=100_000, ge=0, description="Microseconds between command launches"
    )
    concurrency: int = Field(default=4, gt=0)
    shard_index: int = Field(default=0, ge=0)
    shard_count: int = Field(default=1, gt=0)

    @field_validator("instrument_command")
    @classmethod
    def check_instrument_command(cls, value: str) -> str:
        """The command must receive the file it instruments."""
        return require_placeholder(value, FILE_PLACEHOLDER)

    @model_validator(mode="after")
    def check_shard(self) -> Self:
        """The shard index must address one of the shards."""
        if self.shard_index >= self.shard_count:
            raise ValueError(
                f"shard_index ({self.shard_index}) must be lower than "
                f"shard_count ({self.shard_count})"
            )
        return self


class JobDefinition(Model):
    """Complete job definition loaded from job.yaml."""

    version: str = Field(..., description="Job definition schema version")
    tests: Sequence[str] = Field(default_factory=list, description="Test classes")
    test_command: str = Field(
        ..., description="Command template with a {test_class} placeholder"
    )
    list_command: str = Field(..., description="Command printing the test listing")
    working_directory: Path = Field(default=Path("."))
    concurrency: int = Field(default=4, gt=0)
    results_database: Path = Field(..., description="SQLite file holding assertions")
    results_table: str = Field(default="simpletest")
    modules: Mapping[str, str] = Field(
        default_factory=dict, description="Modules to enable, name to version"
    )
    site: SiteSettings
    reduction: ReductionSettings = Field(default_factory=ReductionSettings)
    coverage: CoverageSettings | None = None

    @field_validator("test_command")
    @classmethod
    def check_test_command(cls, value: str) -> str:
        """The command must receive the test class it runs."""
        return require_placeholder(value, TEST_CLASS_PLACEHOLDER)

    def test_commands(self) -> Mapping[str, str]:
        """Build one shell command per test class."""
        return {
            test_class: fill_placeholder(
                self.test_command, TEST_CLASS_PLACEHOLDER, test_class
            )
            for test_class in self.tests
        }

"""Test factories for generating test data."""

from collections.abc import Sequence

from polyfactory import Use
from polyfactory.factories import DataclassFactory
from polyfactory.factories.pydantic_factory import ModelFactory
from pydantic import SecretStr

from review_worker.models.assertion import AssertionRecord
from review_worker.models.coverage import CoverageEntry
from review_worker.models.job import SiteSettings
from review_worker.models.result import CommandResult


class AssertionRecordFactory(DataclassFactory[AssertionRecord]):
    """Factory for AssertionRecord."""

    __model__ = AssertionRecord

    test_id = 1
    test_class = "ExampleTestCase"
    status = "pass"
    message_group = "Other"
    line = None


class CommandResultFactory(DataclassFactory[CommandResult]):
    """Factory for CommandResult."""

    __model__ = CommandResult

    output = ""
    returncode = 0


class CoverageEntryFactory(ModelFactory[CoverageEntry]):
    """Factory for CoverageEntry."""

    data = Use(dict[int, int])
    contents = None


class SiteSettingsFactory(ModelFactory[SiteSettings]):
    """Factory for SiteSettings."""

    url = "http://site.test"
    admin_password = Use(lambda: SecretStr("generated-password"))
    database_url = Use(lambda: SecretStr("sqlite:///tmp/site.sqlite"))


def build_log(
    statuses: Sequence[str], *, test_class: str = "ExampleTestCase", first_id: int = 1
) -> list[AssertionRecord]:
    """Build consecutive records of one test class with the given statuses."""
    return [
        AssertionRecordFactory.build(
            message_id=first_id + offset,
            test_class=test_class,
            status=status,
            message=f"assertion {first_id + offset}",
        )
        for offset, status in enumerate(statuses)
    ]

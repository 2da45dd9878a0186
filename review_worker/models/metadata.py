"""Models for test class metadata parsed from listing output."""

from review_worker.models.base import Model


class TestMetadata(Model):
    """Human readable name and group of a test class."""

    __test__ = False

    name: str
    group: str

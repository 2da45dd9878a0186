"""Parse the test listing printed by the application under test."""

import logging
import re
from collections.abc import Collection, Iterable, Mapping

from review_worker.models.metadata import TestMetadata

log = logging.getLogger(__name__)

CLASS_PREFIX = " - "
CLASS_LINE = re.compile(r"^- (?P<name>.+) \((?P<class_name>[^()\s]+)\)$")


def parse_listing(
    lines: Iterable[str], classes: Collection[str]
) -> Mapping[str, TestMetadata]:
    """Map test classes to their name and group.

    The listing is a sequence of group headers, each followed by class lines
    such as ``" - Block functionality (BlockTestCase)"``.

    Args:
        lines: Listing output, one entry per line
        classes: Test classes to keep

    Returns:
        Metadata for the requested classes found in the listing

    """
    metadata: dict[str, TestMetadata] = {}
    group = ""

    for line in lines:
        line = line.rstrip("\r\n")
        if not line.startswith(CLASS_PREFIX):
            if line.strip():
                group = line.strip()
            continue

        match = CLASS_LINE.match(line.strip())
        if match is None:
            log.debug("Skipping malformed listing line: %r", line)
            continue

        class_name = match["class_name"]
        if class_name in classes:
            metadata[class_name] = TestMetadata(name=match["name"], group=group)

    return metadata

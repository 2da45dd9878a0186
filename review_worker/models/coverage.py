"""Models for per-file coverage entries."""

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field


class CoverageEntry(BaseModel):
    """Instrumentation result for one source file.

    `data` maps a line number to 1 when the line was executed and 0 when it
    is executable but was never reached. `contents` carries the base64 file
    body and is only set for files in the current worker's shard.
    """

    model_config = ConfigDict(extra="ignore")

    path: str
    executed: int = 0
    executable: int = 0
    data: Mapping[int, int] = Field(default_factory=dict)
    contents: str | None = None

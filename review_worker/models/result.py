"""Models for command execution results."""

from dataclasses import dataclass


@dataclass(frozen=True, kw_only=True)
class CommandResult:
    """Outcome of one subprocess run.

    `output` holds stdout and stderr interleaved as the process wrote them.
    """

    duration: float
    output: str
    returncode: int | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the process exited with status zero."""
        return self.returncode == 0

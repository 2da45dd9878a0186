"""Run shell commands as subprocesses with a concurrency ceiling."""

import asyncio
import logging
import os
import signal
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from review_worker.models.result import CommandResult

log = logging.getLogger(__name__)


class CommandRunnerError(RuntimeError):
    """Raised when the runner cannot launch commands at all."""


@dataclass(kw_only=True)
class _LaunchThrottle:
    """Spaces consecutive launches at least `delay` seconds apart."""

    delay: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_launch: float = float("-inf")

    async def wait(self) -> None:
        async with self.lock:
            loop = asyncio.get_running_loop()
            remaining = self.last_launch + self.delay - loop.time()
            if remaining > 0:
                await asyncio.sleep(remaining)
            self.last_launch = loop.time()


@dataclass(frozen=True, kw_only=True)
class CommandRunner:
    """Executes named shell commands in parallel.

    Up to `concurrency` commands run at the same time and new ones start as
    soon as a slot frees up. Completion order is not guaranteed. If the
    calling task is cancelled the process group of every running command is
    killed before the cancellation propagates, so pipelines and background
    jobs started by a command do not outlive it.
    """

    concurrency: int = field(default_factory=lambda: os.cpu_count() or 1)
    cwd: Path = field(default_factory=Path.cwd)

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"Concurrency must be at least 1, got {self.concurrency}")

    async def run(
        self, commands: Mapping[str, str], throttle: int = 0
    ) -> Mapping[str, CommandResult]:
        """Run every command and collect its duration and output.

        Args:
            commands: Shell commands keyed by a unique name
            throttle: Minimum delay between two launches, in microseconds

        Returns:
            Command results keyed by the same names

        Raises:
            CommandRunnerError: If the working directory is unusable or the
                shell cannot be started

        """
        if not self.cwd.is_dir():
            raise CommandRunnerError(f"Working directory does not exist: {self.cwd}")
        if not commands:
            return {}

        log.info(
            "Running %d command(s) with concurrency=%d, throttle=%dus",
            len(commands),
            self.concurrency,
            throttle,
        )
        semaphore = asyncio.Semaphore(self.concurrency)
        launch = _LaunchThrottle(delay=throttle / 1_000_000)

        async def run_slot(name: str, command: str) -> tuple[str, CommandResult]:
            async with semaphore:
                await launch.wait()
                return name, await self.execute(command)

        tasks = [
            asyncio.create_task(run_slot(name, command))
            for name, command in commands.items()
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return dict(results)

    async def execute(self, command: str) -> CommandResult:
        """Run one command and capture its combined output."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=self.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                start_new_session=True,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise CommandRunnerError(f"Failed to start command: {exc}") from exc

        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        duration = loop.time() - started
        output = stdout.decode(errors="replace")
        if process.returncode != 0:
            log.warning(
                "Command exited with status %s after %.2fs: %s",
                process.returncode,
                duration,
                command,
            )
        return CommandResult(
            duration=duration, output=output, returncode=process.returncode
        )

    async def run_one_shot(self, command: str) -> list[str]:
        """Run a single command and return its stdout lines."""
        if not self.cwd.is_dir():
            raise CommandRunnerError(f"Working directory does not exist: {self.cwd}")
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=self.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                start_new_session=True,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CommandRunnerError(f"Failed to start command: {exc}") from exc

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        if process.returncode != 0:
            log.warning(
                "Command exited with status %s: %s (%s)",
                process.returncode,
                command,
                stderr.decode(errors="replace").strip(),
            )
        return stdout.decode(errors="replace").splitlines()

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        # The shell leads its own session, so the group holds every descendant.
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await process.wait()

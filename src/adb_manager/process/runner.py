"""Process runner - spawn external tools, collect output, supervise liveness."""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import structlog

from adb_manager.config import DEFAULT_SEARCH_PATHS
from adb_manager.errors import (
    process_failed_error,
    spawn_failed_error,
    tool_not_found_error,
)

logger = structlog.get_logger()

# Long-running children (scrcpy) keep writing; keep only the tail
MAX_BUFFER_BYTES = 64 * 1024
_READ_CHUNK = 4096

# Output still buffered in the pipes is collected for at most this long after exit
DRAIN_TIMEOUT = 1.0
_EXIT_POLL_INTERVAL = 0.05


@dataclass
class ProcessOutcome:
    """Result of a finished external command."""

    command: str
    args: list[str]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    timeout: float | None = None

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Stdout, falling back to stderr (some tools report success there)."""
        return self.stdout.strip() or self.stderr.strip()

    @property
    def error(self) -> str:
        """Best available failure text: stderr, then stdout, then a synthesized line."""
        if self.timed_out:
            return f"{self.command} timeout after {self.timeout}s"
        return (
            self.stderr.strip()
            or self.stdout.strip()
            or f"{self.command} exited with code {self.returncode}"
        )

    def raise_for_status(self) -> None:
        """Raise ManagerError if the command failed."""
        if not self.success:
            raise process_failed_error(self.command, self.returncode, self.error)


class _OutputBuffer:
    """Accumulates a stream as it arrives, keeping at most MAX_BUFFER_BYTES."""

    def __init__(self) -> None:
        self._data = bytearray()

    def feed(self, chunk: bytes) -> None:
        self._data.extend(chunk)
        if len(self._data) > MAX_BUFFER_BYTES:
            del self._data[: len(self._data) - MAX_BUFFER_BYTES]

    def text(self) -> str:
        return self._data.decode(errors="replace")


async def _pump(stream: asyncio.StreamReader | None, buffer: _OutputBuffer) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        buffer.feed(chunk)


async def _wait_exit(process: asyncio.subprocess.Process) -> int:
    """Wait until the child itself has exited.

    ``Process.wait()`` also waits for the pipes to close, which never happens
    while a grandchild (e.g. a forked adb server) holds them.
    """
    while process.returncode is None:
        await asyncio.sleep(_EXIT_POLL_INTERVAL)
    return process.returncode


async def _drain(pumps: list[asyncio.Task[None]], timeout: float = DRAIN_TIMEOUT) -> None:
    """Let the pumps reach EOF, cancelling whatever is still reading at ``timeout``."""
    _, pending = await asyncio.wait(pumps, timeout=timeout)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pumps, return_exceptions=True)


@dataclass
class StartResult:
    """How a supervised process settled its start decision.

    ``running`` is True when the process outlived the grace window. Otherwise
    ``outcome`` holds the exit that happened first.
    """

    running: bool
    outcome: ProcessOutcome | None = None

    @property
    def success(self) -> bool:
        return self.running or (self.outcome is not None and self.outcome.success)


class SupervisedProcess:
    """A long-lived child process with a grace-window start decision.

    The start decision is a race between a grace timer and process exit; the
    first one to settle wins and the other is ignored.
    """

    def __init__(
        self,
        command: str,
        args: list[str],
        process: asyncio.subprocess.Process,
        grace: float,
    ) -> None:
        self.command = command
        self.args = args
        self.grace = grace
        self._process = process
        self._stdout = _OutputBuffer()
        self._stderr = _OutputBuffer()
        loop = asyncio.get_running_loop()
        self._result: asyncio.Future[StartResult] = loop.create_future()
        self._timer: asyncio.TimerHandle | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self.outcome: ProcessOutcome | None = None

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def is_alive(self) -> bool:
        return self._process.returncode is None

    def begin(self) -> None:
        """Arm the grace timer and start watching for exit."""
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.grace, self._on_grace_elapsed)
        self._watch_task = asyncio.create_task(self._watch())

    async def wait_started(self) -> StartResult:
        """Wait for the start decision."""
        return await asyncio.shield(self._result)

    def _settle(self, result: StartResult) -> bool:
        if self._result.done():
            return False
        self._result.set_result(result)
        return True

    def _on_grace_elapsed(self) -> None:
        if self._process.returncode is not None:
            # Exit already observed; the watcher settles with the real outcome
            return
        if self._settle(StartResult(running=True)):
            logger.info("process_running", command=self.command, pid=self.pid, grace=self.grace)

    async def _watch(self) -> None:
        pumps = [
            asyncio.create_task(_pump(self._process.stdout, self._stdout)),
            asyncio.create_task(_pump(self._process.stderr, self._stderr)),
        ]
        try:
            returncode = await _wait_exit(self._process)
            await _drain(pumps)
        except asyncio.CancelledError:
            for task in pumps:
                task.cancel()
            raise
        finally:
            if self._timer is not None:
                self._timer.cancel()

        self.outcome = ProcessOutcome(
            command=self.command,
            args=self.args,
            returncode=returncode,
            stdout=self._stdout.text(),
            stderr=self._stderr.text(),
        )
        settled = self._settle(StartResult(running=False, outcome=self.outcome))
        logger.info(
            "process_exited",
            command=self.command,
            pid=self.pid,
            returncode=returncode,
            during_grace=settled,
        )
        if not settled and returncode != 0:
            logger.warning(
                "process_failed_after_start",
                command=self.command,
                pid=self.pid,
                returncode=returncode,
                error=self.outcome.error,
            )

    async def wait(self) -> ProcessOutcome | None:
        """Wait for the process to exit and return its outcome."""
        if self._watch_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._watch_task
        return self.outcome

    async def terminate(self, timeout: float = 3.0) -> ProcessOutcome | None:
        """Stop the process: SIGTERM, then SIGKILL after ``timeout`` seconds."""
        if self.is_alive:
            with contextlib.suppress(ProcessLookupError):
                self._process.terminate()
            try:
                await asyncio.wait_for(_wait_exit(self._process), timeout=timeout)
            except TimeoutError:
                logger.warning("process_kill", command=self.command, pid=self.pid)
                with contextlib.suppress(ProcessLookupError):
                    self._process.kill()
                await _wait_exit(self._process)
        return await self.wait()


class ProcessRunner:
    """Spawns external commands with an augmented executable search path."""

    def __init__(self, extra_search_paths: Sequence[str] = DEFAULT_SEARCH_PATHS) -> None:
        self.extra_search_paths = tuple(extra_search_paths)

    def build_env(self, extra_env: Mapping[str, str] | None = None) -> dict[str, str]:
        """Inherit the current environment and prepend the extra search paths."""
        env = dict(os.environ)
        env.update(extra_env or {})
        parts = [*self.extra_search_paths, env.get("PATH", "")]
        env["PATH"] = os.pathsep.join(p for p in parts if p)
        return env

    async def _spawn(
        self,
        command: str,
        args: Sequence[str],
        extra_env: Mapping[str, str] | None,
    ) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.build_env(extra_env),
            )
        except FileNotFoundError as exc:
            logger.error("process_spawn_failed", command=command, error=str(exc))
            raise tool_not_found_error(command) from exc
        except OSError as exc:
            logger.error("process_spawn_failed", command=command, error=str(exc))
            raise spawn_failed_error(command, str(exc)) from exc

    async def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        extra_env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> ProcessOutcome:
        """Run a command to completion.

        Args:
            command: Executable name (resolved through PATH)
            args: Argument vector, without the executable
            extra_env: Variables merged over the inherited environment
            timeout: Kill the process after this many seconds (None = no deadline)

        Returns:
            ProcessOutcome; a non-zero exit is not raised

        Raises:
            ManagerError: If the process cannot be started
        """
        arg_list = list(args)
        process = await self._spawn(command, arg_list, extra_env)
        stdout, stderr = _OutputBuffer(), _OutputBuffer()
        pumps = [
            asyncio.create_task(_pump(process.stdout, stdout)),
            asyncio.create_task(_pump(process.stderr, stderr)),
        ]

        timed_out = False
        try:
            await asyncio.wait_for(_wait_exit(process), timeout=timeout)
        except TimeoutError:
            timed_out = True
            logger.warning("process_timeout", command=command, timeout=timeout)
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await _wait_exit(process)
        await _drain(pumps)

        outcome = ProcessOutcome(
            command=command,
            args=arg_list,
            returncode=process.returncode,
            stdout=stdout.text(),
            stderr=stderr.text(),
            timed_out=timed_out,
            timeout=timeout,
        )
        logger.debug(
            "process_finished",
            command=command,
            returncode=outcome.returncode,
            timed_out=timed_out,
        )
        return outcome

    async def start_supervised(
        self,
        command: str,
        args: Sequence[str],
        *,
        grace: float,
        extra_env: Mapping[str, str] | None = None,
    ) -> SupervisedProcess:
        """Spawn a long-lived process and arm its grace-window start decision.

        Raises:
            ManagerError: If the process cannot be started
        """
        arg_list = list(args)
        process = await self._spawn(command, arg_list, extra_env)
        supervised = SupervisedProcess(command, arg_list, process, grace)
        supervised.begin()
        logger.info("process_started", command=command, pid=process.pid, grace=grace)
        return supervised

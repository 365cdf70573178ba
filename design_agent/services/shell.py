"""Shell execution engine.

Each invocation moves through ``Spawned -> Running -> Completed | TimedOut | Killed``.
A timeout or a cancellation escalates the same way: SIGTERM to the whole
process group, a one second grace window, then SIGKILL to the group.
"""

import asyncio
import os
import re
import signal
import sys
import time
from collections.abc import Mapping
from pathlib import Path

from design_agent.models.results import ProcessResult, ProcessState
from design_agent.services.cancellation import CancellationToken
from design_agent.services.process import ProcessGroup, process_group_for
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 30_000
GRACE_PERIOD_SECONDS = 1.0
OUTPUT_DRAIN_SECONDS = 0.5

UNSAFE_COMMAND_PATTERNS = [
    # Recursive delete of a filesystem root, with flags on either side of a possibly quoted target
    re.compile(r"""\brm\s+(?:[^\s;&|]+\s+)*["']?(?:/|/\*|~/?)["']?(?=\s|$|[;&|])""", re.IGNORECASE),
    re.compile(r"\b(format|fdisk|mkfs)\b", re.IGNORECASE),
    re.compile(r"\b(curl|wget)\b[^|]*\|\s*(sudo\s+(-\S+\s+)*)?(bash|sh|zsh|python\d?|ruby|perl)\b", re.IGNORECASE),
    re.compile(r"\b(kill|killall|pkill)\s+(-\w+\s+)*1\b", re.IGNORECASE),
    re.compile(r"\b(shutdown|reboot|halt|init\s+0)\b", re.IGNORECASE),
    re.compile(r"\b(sudo\s+su|sudo\s+.*passwd|chmod\s+(-R\s+)?777)", re.IGNORECASE),
    re.compile(r"\.\.[/\\]"),
    re.compile(r">\s*/(dev|proc|sys)/", re.IGNORECASE),
]


def is_unsafe_command(command: str) -> bool:
    """Check a command against the deny-list of destructive patterns."""
    return any(pattern.search(command) for pattern in UNSAFE_COMMAND_PATTERNS)


def _shell_argv(command: str) -> list[str]:
    if sys.platform == "win32":
        return ["cmd.exe", "/c", command]
    return ["bash", "-c", command]


async def _read_stream(stream: asyncio.StreamReader | None, chunks: list[bytes]) -> None:
    if stream is None:
        return
    while chunk := await stream.read(65536):
        chunks.append(chunk)


def _decode(chunks: list[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace").strip()


class ShellExecutor:
    """Runs shell commands with a bounded lifetime."""

    def __init__(self, grace_period: float = GRACE_PERIOD_SECONDS):
        self.grace_period = grace_period

    async def run(
        self,
        command: str,
        cwd: Path,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        capture_output: bool = True,
        env: Mapping[str, str] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ProcessResult:
        """Execute ``command`` with bash in ``cwd``.

        The caller is responsible for the deny-list and directory checks.
        Cancelling the awaiting task escalates like a timeout before the
        ``CancelledError`` propagates.

        Args:
            command: Shell command line
            cwd: Working directory
            timeout_ms: Time allowed before escalation starts
            capture_output: Capture stdout/stderr instead of inheriting them
            env: Extra environment variables
            cancellation: Token that kills the command when fired

        Returns:
            Process result with the final state
        """
        started = time.monotonic()
        pipe = asyncio.subprocess.PIPE if capture_output else None
        process = await asyncio.create_subprocess_exec(
            *_shell_argv(command),
            cwd=str(cwd),
            env={**os.environ, **(env or {})},
            stdin=asyncio.subprocess.DEVNULL,
            stdout=pipe,
            stderr=pipe,
            start_new_session=True,
        )
        group = process_group_for(process.pid)
        logger.debug(f"Spawned pid {process.pid}: {command}")

        stdout: list[bytes] = []
        stderr: list[bytes] = []
        readers = [
            asyncio.ensure_future(_read_stream(process.stdout, stdout)),
            asyncio.ensure_future(_read_stream(process.stderr, stderr)),
        ]

        exited = asyncio.ensure_future(process.wait())
        watchers: set[asyncio.Future] = {exited}
        cancelled = asyncio.ensure_future(cancellation.wait()) if cancellation else None
        if cancelled:
            watchers.add(cancelled)

        state = ProcessState.COMPLETED
        try:
            done, _ = await asyncio.wait(watchers, timeout=timeout_ms / 1000, return_when=asyncio.FIRST_COMPLETED)
            if exited not in done:
                if cancelled in done:
                    state = ProcessState.KILLED
                    logger.info(f"Command cancelled, stopping pid {process.pid}")
                else:
                    state = ProcessState.TIMED_OUT
                    logger.warning(f"Command timed out after {timeout_ms}ms, stopping pid {process.pid}")
                await self._escalate(process, group)
        except asyncio.CancelledError:
            logger.info(f"Command interrupted, stopping pid {process.pid}")
            await self._escalate(process, group)
            for reader in readers:
                reader.cancel()
            raise
        finally:
            if cancelled:
                cancelled.cancel()

        await self._drain(readers)

        returncode = process.returncode
        signal_name = None
        if returncode is not None and returncode < 0:
            signal_name = signal.Signals(-returncode).name
            returncode = None

        return ProcessResult(
            exit_code=returncode,
            signal=signal_name,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            duration_ms=int((time.monotonic() - started) * 1000),
            timed_out=state is ProcessState.TIMED_OUT,
            state=state,
            pid=process.pid,
        )

    async def _escalate(self, process: asyncio.subprocess.Process, group: ProcessGroup) -> None:
        """SIGTERM the group, wait out the grace window, then SIGKILL it."""
        if process.returncode is None:
            group.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self.grace_period)
            except TimeoutError:
                logger.warning(f"pid {process.pid} ignored SIGTERM, sending SIGKILL")
        # Forked children may outlive the leader, so the group is killed regardless
        group.kill()
        await process.wait()

    @staticmethod
    async def _drain(readers: list[asyncio.Future]) -> None:
        """Collect remaining output; pipes still held open by stray descendants are abandoned."""
        _, pending = await asyncio.wait(readers, timeout=OUTPUT_DRAIN_SECONDS)
        for reader in pending:
            reader.cancel()


shell_executor = ShellExecutor()

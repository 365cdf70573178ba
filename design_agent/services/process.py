"""Signal delivery to a spawned command and everything it forked."""

import os
import signal
from abc import ABC, abstractmethod

import psutil

from design_agent.utils.logging import get_logger

logger = get_logger(__name__)


class ProcessGroup(ABC):
    """Handle on a spawned command and its descendants."""

    def __init__(self, pid: int):
        self.pid = pid

    @abstractmethod
    def terminate(self) -> None:
        """Ask every process to exit."""

    @abstractmethod
    def kill(self) -> None:
        """Forcefully stop every process."""


class PosixProcessGroup(ProcessGroup):
    """Signals the whole process group led by ``pid``.

    The command must have been started with ``start_new_session=True`` so
    its process group id equals its pid.
    """

    def _signal(self, sig: signal.Signals) -> None:
        try:
            os.killpg(self.pid, sig)
            logger.debug(f"Sent {sig.name} to process group {self.pid}")
        except ProcessLookupError:
            logger.debug(f"Process group {self.pid} already exited")
        except PermissionError as e:
            logger.warning(f"Cannot signal process group {self.pid}: {e}")

    def terminate(self) -> None:
        self._signal(signal.SIGTERM)

    def kill(self) -> None:
        self._signal(signal.SIGKILL)


class ProcessTree(ProcessGroup):
    """Walks the process tree with psutil, for platforms without process groups.

    Descendants seen by an earlier walk are remembered, so ``kill`` still
    reaches children orphaned when the leader exits after ``terminate``.
    """

    def __init__(self, pid: int):
        super().__init__(pid)
        self._seen: dict[int, psutil.Process] = {}

    def _processes(self) -> list[psutil.Process]:
        try:
            parent = psutil.Process(self.pid)
            found = [parent, *parent.children(recursive=True)]
        except psutil.NoSuchProcess:
            found = []
        for process in found:
            self._seen.setdefault(process.pid, process)
        # Leaves first so a parent cannot respawn a child we already stopped
        return [process for process in reversed(self._seen.values()) if process.is_running()]

    def _signal(self, action: str) -> None:
        for process in self._processes():
            try:
                getattr(process, action)()
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied as e:
                logger.warning(f"Cannot {action} process {process.pid}: {e}")

    def terminate(self) -> None:
        self._signal("terminate")

    def kill(self) -> None:
        self._signal("kill")


def process_group_for(pid: int) -> ProcessGroup:
    """Pick the termination strategy supported by this platform."""
    if hasattr(os, "killpg"):
        return PosixProcessGroup(pid)
    return ProcessTree(pid)

from __future__ import annotations

import subprocess
import threading
from typing import Any

import psutil

from ..errors import TerminationTimeout
from ..utils.logging import get_logger
from .handle import ProcessCell

# Seconds granted to each stop attempt (graceful, then forceful)
PROCESS_TERMINATION_TIMEOUT_SEC = 15.0


def _descendants(proc: subprocess.Popen[Any]) -> list[psutil.Process]:
    try:
        return psutil.Process(proc.pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []


class ProcessTerminator:
    """
    Stops a launched process and everything it spawned.

    The process is taken out of its ProcessCell before any signal is sent, so
    when the normal stop path and an interrupt path race, only one of them
    ever sees the process. Failures are logged and never raised: a stuck
    emulator must not hide the pipeline's real result.
    """

    def __init__(self, timeout: float = PROCESS_TERMINATION_TIMEOUT_SEC) -> None:
        self.timeout = timeout
        self._lock = threading.RLock()
        self._log = get_logger(__name__)

    def terminate(self, cell: ProcessCell) -> None:
        """Stop the process held by `cell`, if any, and clear the cell."""
        with self._lock:
            proc = cell.take()
            if proc is None:
                return
            try:
                self._destroy(proc)
            except TerminationTimeout as e:
                self._log.warning(
                    "Process did not confirm exit", pid=e.pid, timeout=e.timeout, error=str(e)
                )
            except KeyboardInterrupt:
                # Abandon the wait; the host's own teardown takes care of the rest.
                self._log.debug("Interrupted while waiting for process to be destroyed", pid=proc.pid)
            except Exception as e:
                self._log.exception("Failed to stop process", pid=proc.pid, error=str(e))

    def _destroy(self, proc: subprocess.Popen[Any]) -> None:
        # Descendants may fork further once signalled, so snapshot them first.
        descendants = _descendants(proc) if proc.poll() is None else []
        timed_out: TerminationTimeout | None = None

        if proc.poll() is None:
            # SIGTERM first: the emulator saves a snapshot for the next warm boot.
            self._log.info("Stopping process", pid=proc.pid, descendants=len(descendants))
            self._signal(proc, force=False)
            if not self._wait(proc):
                self._log.warning(
                    "Process ignored graceful stop, killing", pid=proc.pid, timeout=self.timeout
                )
                self._signal(proc, force=True)
                if not self._wait(proc):
                    timed_out = TerminationTimeout(proc.pid, self.timeout)
        else:
            self._log.debug("Process already exited", pid=proc.pid, returncode=proc.returncode)

        # Helpers the emulator did not reap itself
        for child in descendants:
            try:
                if child.is_running():
                    child.kill()
                    self._log.debug("Killed descendant process", pid=child.pid)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue

        if timed_out is not None:
            raise timed_out

    @staticmethod
    def _signal(proc: subprocess.Popen[Any], *, force: bool) -> None:
        # Popen.terminate/kill are no-ops once the process has been reaped.
        try:
            if force:
                proc.kill()
            else:
                proc.terminate()
        except ProcessLookupError:
            pass

    def _wait(self, proc: subprocess.Popen[Any]) -> bool:
        try:
            proc.wait(timeout=self.timeout)
            return True
        except subprocess.TimeoutExpired:
            return False

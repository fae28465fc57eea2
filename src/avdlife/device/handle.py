from __future__ import annotations

import subprocess
import threading
from typing import Any

from .ports import InstanceId


class ProcessCell:
    """
    A single slot holding at most one process, shared between threads.

    All access goes through a lock, so `take()` hands a given process to
    exactly one caller even when several threads race to clear the slot.
    """

    def __init__(self, proc: subprocess.Popen[Any] | None = None) -> None:
        self._proc = proc
        self._lock = threading.Lock()

    def get(self) -> subprocess.Popen[Any] | None:
        with self._lock:
            return self._proc

    def set(self, proc: subprocess.Popen[Any] | None) -> None:
        with self._lock:
            self._proc = proc

    def compare_and_set(
        self, expected: subprocess.Popen[Any] | None, new: subprocess.Popen[Any] | None
    ) -> bool:
        """Store `new` only if the slot still holds `expected` (identity check)."""
        with self._lock:
            if self._proc is not expected:
                return False
            self._proc = new
            return True

    def take(self) -> subprocess.Popen[Any] | None:
        """Atomically return the current process and clear the slot."""
        with self._lock:
            proc, self._proc = self._proc, None
            return proc

    def __bool__(self) -> bool:
        return self.get() is not None


class LaunchHandle:
    """
    State of one emulator launch, shared by the launcher, the boot poller,
    the exit watcher and the terminator.
    """

    def __init__(self) -> None:
        self.emulator = ProcessCell()  # The emulator process
        self.poll = ProcessCell()  # In-flight boot wait (adb) process
        self.instance: InstanceId | None = None
        self._exit_code: int | None = None
        self._exited = threading.Event()
        self._lock = threading.Lock()

    @property
    def exit_code(self) -> int | None:
        with self._lock:
            return self._exit_code

    def record_exit(self, code: int) -> None:
        with self._lock:
            self._exit_code = code
        self._exited.set()

    def wait_exited(self, timeout: float | None = None) -> bool:
        """Block until the exit watcher has recorded the emulator's exit code."""
        return self._exited.wait(timeout)

    @property
    def died_abnormally(self) -> bool:
        code = self.exit_code
        return code is not None and code != 0

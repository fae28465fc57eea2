from __future__ import annotations

import atexit
import contextvars
import signal
import subprocess
import threading
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from types import FrameType
from typing import IO, Any, cast

from ..errors import ProcessLaunchError
from ..utils.cli import run_cmd
from ..utils.logging import get_logger
from .handle import LaunchHandle
from .ports import InstanceId
from .terminator import ProcessTerminator

_GUARDED_SIGNALS = tuple(
    s for s in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None)) if s is not None
)


def emulator_command(
    emulator: Path | str,
    avd_name: str,
    instance: InstanceId,
    extra_args: Sequence[str] = (),
) -> list[str]:
    """
    Build the emulator command line.

    `-shell` keeps the emulator attached to its parent; without it the emulator
    detaches and cannot be supervised or stopped through its process handle.
    """
    return [
        str(emulator),
        f"@{avd_name}",
        "-shell",
        "-port",
        str(instance.port),
        *extra_args,
    ]


def _start_thread(target: Callable[..., None], *args: Any, name: str) -> threading.Thread:
    # Run inside a copy of the caller's context so bound log fields (avd, serial) follow.
    ctx = contextvars.copy_context()
    t = threading.Thread(target=ctx.run, args=(target, *args), name=name, daemon=True)
    t.start()
    return t


class ShutdownGuard:
    """
    Runs a cleanup callback if the host process goes away before the normal stop.

    Hooks `atexit` and SIGTERM/SIGHUP (signal handlers only when installed from
    the main thread). The callback runs at most once; previous signal handlers
    are chained afterwards.
    """

    def __init__(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._fired = False
        self._lock = threading.Lock()
        self._previous: dict[int, Any] = {}
        self._installed = False
        self._log = get_logger(__name__)

    def install(self) -> ShutdownGuard:
        if self._installed:
            return self
        atexit.register(self.fire)
        if threading.current_thread() is threading.main_thread():
            for sig in _GUARDED_SIGNALS:
                try:
                    self._previous[sig] = signal.signal(sig, self._on_signal)
                except (ValueError, OSError):
                    continue
        self._installed = True
        return self

    def uninstall(self) -> None:
        if not self._installed:
            return
        atexit.unregister(self.fire)
        if threading.current_thread() is threading.main_thread():
            for sig, previous in self._previous.items():
                try:
                    signal.signal(sig, previous)
                except (ValueError, OSError, TypeError):
                    continue
        self._previous.clear()
        self._installed = False

    def fire(self) -> None:
        with self._lock:
            if self._fired:
                return
            self._fired = True
        try:
            self._callback()
        except Exception as e:
            self._log.exception("Shutdown cleanup failed", error=str(e))

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        self._log.warning("Host received signal, stopping emulator", signal=signum)
        self.fire()
        previous = self._previous.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_IGN:
            return
        else:
            raise SystemExit(128 + signum)


class EmulatorLauncher:
    """
    Starts the emulator process and supervises it in the background.

    - Relay mode pipes stdout/stderr into the log through one reader thread per stream.
    - An exit watcher records the exit code; on a non-zero exit it cancels the
      in-flight boot wait so callers do not block on a device that will never boot.
    - A ShutdownGuard stops the emulator if the host exits without calling stop.
    """

    def __init__(
        self,
        handle: LaunchHandle,
        terminator: ProcessTerminator,
        *,
        env: Mapping[str, str] | None = None,
        relay_output: bool = False,
    ) -> None:
        self.handle = handle
        self.terminator = terminator
        self.env = dict(env or {})
        self.relay_output = relay_output
        self.guard: ShutdownGuard | None = None
        self.threads: list[threading.Thread] = []
        self._log = get_logger(__name__)

    def launch(self, command: Sequence[str]) -> subprocess.Popen[Any]:
        """
        Spawn `command` and start supervision.

        Raises:
            ProcessLaunchError: If the OS refuses to start the process.
        """
        popen_kwargs: dict[str, Any] = {}
        if self.relay_output:
            popen_kwargs.update(
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )

        self._log.debug("Starting emulator", cmd=" ".join(command), env=self.env)
        try:
            proc = cast(
                subprocess.Popen[Any],
                run_cmd(command, spawn=True, env=self.env, **popen_kwargs),
            )
        except OSError as e:
            self._log.error("Emulator failed to start", cmd=" ".join(command), error=str(e))
            raise ProcessLaunchError(f"Emulator failed to start successfully: {e}") from e

        self.handle.emulator.set(proc)
        self._log.info("Emulator process started", pid=proc.pid)

        if self.relay_output:
            self.threads.append(
                _start_thread(self._relay, proc.stdout, "stdout", name="emulator-stdout")
            )
            self.threads.append(
                _start_thread(self._relay, proc.stderr, "stderr", name="emulator-stderr")
            )
        self.threads.append(_start_thread(self._watch, proc, name="emulator-watcher"))

        self.guard = ShutdownGuard(lambda: self.terminator.terminate(self.handle.emulator)).install()
        return proc

    def remove_guard(self) -> None:
        if self.guard is not None:
            self.guard.uninstall()
            self.guard = None

    def _relay(self, stream: IO[str] | None, name: str) -> None:
        if stream is None:
            return
        try:
            with stream:
                for line in stream:
                    self._log.info("Emulator output", stream=name, line=line.rstrip("\r\n"))
        except (ValueError, OSError):
            # Stream closed underneath us when the process went away
            self._log.debug("Emulator output stream closed", stream=name)

    def _watch(self, proc: subprocess.Popen[Any]) -> None:
        code = proc.wait()
        self.handle.record_exit(code)
        if code == 0:
            self._log.info("Emulator exited", returncode=code)
            return

        poll = self.handle.poll.get()
        if poll is not None and poll.poll() is None:
            self._log.info("Cancelling boot wait", pid=poll.pid)
            try:
                poll.terminate()
            except ProcessLookupError:
                pass
        if self.handle.emulator.get() is not proc:
            # The terminator already took the handle: this exit was requested.
            self._log.info("Emulator stopped", returncode=code)
            return
        self._log.warning("Emulator exited abnormally", returncode=code)

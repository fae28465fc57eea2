from __future__ import annotations

import subprocess
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

from ..errors import BootFailed, BootTimeout, ProcessLaunchError
from ..utils.cli import run_cmd
from ..utils.logging import get_logger
from .handle import LaunchHandle
from .ports import InstanceId

# Runs on the device: loop until sys.boot_completed turns into 1.
BOOT_COMPLETED_LOOP = "while $(exit $(getprop sys.boot_completed)) ; do sleep 1; done;"

DEFAULT_BOOT_TIMEOUT_SEC = 300.0


def boot_wait_command(adb: Path | str, instance: InstanceId) -> list[str]:
    """adb invocation that returns once the given instance has finished booting."""
    return [str(adb), "-s", instance.serial, "wait-for-device", "shell", BOOT_COMPLETED_LOOP]


class ReadinessPoller:
    """
    Blocks until one specific emulator instance reports boot completion.

    The wait runs as its own adb child process (not through the synchronous
    command runner) and is published in `handle.poll`, so the emulator's exit
    watcher can kill it early when the emulator dies.
    """

    def __init__(
        self,
        handle: LaunchHandle,
        *,
        env: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_BOOT_TIMEOUT_SEC,
    ) -> None:
        self.handle = handle
        self.env = dict(env or {})
        self.timeout = timeout
        self._log = get_logger(__name__)

    def wait(self, adb: Path | str, instance: InstanceId | None = None) -> None:
        """
        Wait for `instance` (defaults to the handle's negotiated instance).

        Raises:
            BootTimeout: If the instance is not booted within `timeout` seconds.
            BootFailed: If the wait was cancelled or adb failed.
            ProcessLaunchError: If adb cannot be started.
        """
        target = instance or self.handle.instance
        if target is None:
            raise ValueError("No emulator instance negotiated yet; start the emulator first")

        command = boot_wait_command(adb, target)
        self._log.info("Waiting for emulator boot", serial=target.serial, timeout=self.timeout)
        try:
            proc = cast(
                subprocess.Popen[Any],
                run_cmd(
                    command,
                    spawn=True,
                    env=self.env,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                ),
            )
        except OSError as e:
            raise ProcessLaunchError(f"Unable to wait for emulator {target.serial}: {e}") from e

        self.handle.poll.set(proc)
        try:
            # The watcher may have seen the emulator die before the poll was published.
            if self.handle.died_abnormally and proc.poll() is None:
                self._log.info("Emulator already exited, cancelling boot wait", pid=proc.pid)
                proc.terminate()

            try:
                code = proc.wait(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                self._log.error(
                    "Emulator did not boot within the timeout",
                    serial=target.serial,
                    timeout=self.timeout,
                )
                raise BootTimeout(target.serial, self.timeout) from None
        finally:
            self.handle.poll.compare_and_set(proc, None)
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        if code != 0:
            self._log.error(
                "Waiting for emulator boot failed",
                serial=target.serial,
                returncode=code,
                emulator_exit_code=self.handle.exit_code,
            )
            raise BootFailed(target.serial, code, self.handle.exit_code)

        self._log.info("Emulator is ready", serial=target.serial)

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any, cast

from ..config.models import Settings
from ..errors import AvdLifeError, ToolInvocationError
from ..sdk.locator import ToolLocator, ensure_executable
from ..utils.cli import Completed, run_cmd
from ..utils.logging import bind_context, get_logger
from .adb import AdbProxy
from .base import EmulatorManager
from .handle import LaunchHandle
from .launcher import EmulatorLauncher, emulator_command
from .ports import InstanceId, PortNegotiator
from .readiness import ReadinessPoller
from .terminator import ProcessTerminator


class AndroidEmulatorManager(EmulatorManager):
    """
    Manages the lifecycle of an Android emulator process.

    start():            resolve SDK tools, negotiate a free port, launch the emulator
    wait_until_ready(): block until that exact instance reports boot completion
    stop():             graceful-then-forceful termination of the emulator and its helpers

    Launch and boot failures stop the emulator before the error propagates,
    and `stop()` may be called any number of times from any thread.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        locator: ToolLocator | None = None,
        negotiator: PortNegotiator | None = None,
    ) -> None:
        """
        Initialize AndroidEmulatorManager.

        Args:
            settings (Settings): Lifecycle configuration.
            locator (ToolLocator | None): SDK tool resolver; built from settings.sdk_root if omitted.
            negotiator (PortNegotiator | None): Port picker; built from settings.ports if omitted.
        """
        self.settings = settings
        self.locator = locator or ToolLocator(settings.require_sdk_root())
        ports = settings.ports
        self.negotiator = negotiator or PortNegotiator(
            ports.high, ports.low, ports.step, probe_sockets=ports.probe_sockets
        )
        self.handle = LaunchHandle()
        self.terminator = ProcessTerminator(settings.termination_timeout)
        self.launcher: EmulatorLauncher | None = None
        self._env = settings.environment()
        self._log = get_logger(__name__)

    # ------------------------
    # Public API
    # ------------------------
    @property
    def avd(self) -> str:
        return self.settings.emulator_name

    @property
    def environment(self) -> dict[str, str]:
        """The variable overlay every spawned tool receives."""
        return dict(self._env)

    @property
    def instance(self) -> InstanceId | None:
        return self.handle.instance

    @property
    def serial(self) -> str | None:
        return self.handle.instance.serial if self.handle.instance else None

    def adb(self) -> AdbProxy:
        adb = ensure_executable(self.locator.adb())
        return AdbProxy(adb, env=self._env)

    def start(self) -> None:
        """
        Launch the emulator bound to a freshly negotiated port.

        Raises:
            ToolNotFound, ToolNotExecutable: Before anything is spawned.
            PortExhaustion: Before anything is spawned.
            ProcessLaunchError: If the emulator cannot be started.
        """
        if self.handle.emulator:
            raise AvdLifeError(f"Emulator {self.avd} is already running as {self.serial}")

        emulator = ensure_executable(self.locator.emulator())
        # One handle per launch: a previous run's exit code must not cancel this boot wait.
        self.handle = LaunchHandle()
        instance = self.negotiator.negotiate(self.adb().devices())
        # Recorded before launch: both the command line and the boot wait target it.
        self.handle.instance = instance
        bind_context(avd=self.avd, serial=instance.serial)

        command = emulator_command(
            emulator, self.avd, instance, self.settings.emulator_arguments()
        )
        self._log.info(
            "Starting Android emulator",
            action="emulator_start",
            avd=self.avd,
            port=instance.port,
            cmd=" ".join(command),
        )
        self.launcher = EmulatorLauncher(
            self.handle,
            self.terminator,
            env=self._env,
            relay_output=self.settings.log_emulator_output,
        )
        try:
            self.launcher.launch(command)
        except BaseException:
            self.stop()
            raise

    def wait_until_ready(self, timeout: float | None = None) -> None:
        """
        Wait until the launched emulator reports `sys.boot_completed=1`.

        Args:
            timeout (float | None): Max wait time in seconds; defaults to settings.boot_timeout.

        Raises:
            BootTimeout: If the emulator does not finish booting within the timeout.
            BootFailed: If the emulator died or adb failed while waiting.
        """
        poller = ReadinessPoller(
            self.handle,
            env=self._env,
            timeout=timeout if timeout is not None else self.settings.boot_timeout,
        )
        try:
            poller.wait(self.locator.adb())
        except BaseException:
            self.stop()
            raise

    def stop(self) -> None:
        """
        Stop the running emulator instance.

        Safe to call when the emulator was never started or is already stopped.
        """
        if self.handle.emulator:
            self._log.info("Stopping Android emulator", action="emulator_stop", avd=self.avd)
        self.terminator.terminate(self.handle.emulator)
        if self.launcher is not None:
            self.launcher.remove_guard()

    def create_avd(self) -> Path:
        """
        Create (or overwrite) the virtual device under settings.avd_root with avdmanager.

        Returns:
            Path: The created `<name>.avd` directory.

        Raises:
            ToolInvocationError: If avdmanager fails.
        """
        avdmanager = ensure_executable(self.locator.avd_manager())
        args = [
            str(avdmanager),
            "create",
            "avd",
            "--name",
            self.avd,
            "--package",
            self.settings.system_image_package,
            "--force",
        ]
        if self.settings.emulator.device:
            args += ["--device", self.settings.emulator.device]

        self.settings.avd_root.mkdir(parents=True, exist_ok=True)
        self._log.info(
            "Creating virtual device",
            avd=self.avd,
            package=self.settings.system_image_package,
        )
        try:
            # avdmanager asks whether to create a custom hardware profile; answer "no".
            out = cast(Completed, run_cmd(args, check=True, env=self._env, input="no\n"))
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else e.stderr
            raise ToolInvocationError(args, e.returncode, stderr or "") from e
        self._log.debug("avdmanager output", stdout=out.stdout)
        return self.settings.avd_root / f"{self.avd}.avd"

    def __repr__(self) -> str:
        proc: Any = self.handle.emulator.get()
        pid = getattr(proc, "pid", None)
        return f"AndroidEmulatorManager(avd={self.avd!r}, serial={self.serial!r}, pid={pid})"

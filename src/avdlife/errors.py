from __future__ import annotations


class AvdLifeError(RuntimeError):
    """Base class for every failure raised by the emulator lifecycle."""


class ToolNotFound(AvdLifeError):
    """No candidate location under the SDK root holds the requested tool."""

    def __init__(self, tool: str, sdk_root: object | None = None) -> None:
        self.tool = tool
        self.sdk_root = sdk_root
        where = f" under {sdk_root}" if sdk_root is not None else ""
        super().__init__(f"Unable to find a valid {tool} to use{where}.")


class ToolNotExecutable(AvdLifeError):
    """The tool exists but cannot be made executable by this process."""

    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"Unable to ensure {path} is executable")


class ToolInvocationError(AvdLifeError):
    """A short-lived tool invocation exited with a non-zero code."""

    def __init__(self, command: list[str], returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"{' '.join(command)} exited with code {returncode}{detail}")


class PortExhaustion(AvdLifeError):
    """Every emulator port in the configured range is already taken."""

    def __init__(self, high: int, low: int, step: int) -> None:
        self.high, self.low, self.step = high, low, step
        super().__init__(f"No viable emulator ports found in range {low}-{high} (step {step})")


class ProcessLaunchError(AvdLifeError):
    """The OS refused to spawn the emulator process."""


class BootError(AvdLifeError):
    """The launched instance never reported boot completion."""


class BootTimeout(BootError):
    def __init__(self, serial: str, timeout: float) -> None:
        self.serial = serial
        self.timeout = timeout
        super().__init__(f"{serial} did not finish booting within {timeout:g} seconds")


class BootFailed(BootError):
    def __init__(self, serial: str, returncode: int, emulator_exit_code: int | None = None) -> None:
        self.serial = serial
        self.returncode = returncode
        self.emulator_exit_code = emulator_exit_code
        msg = f"Waiting for {serial} failed with code {returncode}"
        if emulator_exit_code is not None:
            msg += f" (emulator exited with code {emulator_exit_code})"
        super().__init__(msg)


class TerminationTimeout(AvdLifeError):
    """Raised internally when a process outlives both stop attempts. Only ever logged."""

    def __init__(self, pid: int, timeout: float) -> None:
        self.pid = pid
        self.timeout = timeout
        super().__init__(f"Process {pid} did not exit within {timeout:g} seconds of SIGKILL")


__all__ = [
    "AvdLifeError",
    "ToolNotFound",
    "ToolNotExecutable",
    "ToolInvocationError",
    "PortExhaustion",
    "ProcessLaunchError",
    "BootError",
    "BootTimeout",
    "BootFailed",
    "TerminationTimeout",
]

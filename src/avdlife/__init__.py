from .device.android_emulator import AndroidEmulatorManager
from .device.handle import LaunchHandle, ProcessCell
from .device.ports import InstanceId, PortNegotiator
from .errors import (
    AvdLifeError,
    BootError,
    BootFailed,
    BootTimeout,
    PortExhaustion,
    ProcessLaunchError,
    TerminationTimeout,
    ToolNotFound,
)
from .sdk.locator import ToolLocator
from .utils.versions import compare_versions

__all__ = [
    "AndroidEmulatorManager",
    "LaunchHandle",
    "ProcessCell",
    "InstanceId",
    "PortNegotiator",
    "ToolLocator",
    "compare_versions",
    "AvdLifeError",
    "BootError",
    "BootFailed",
    "BootTimeout",
    "PortExhaustion",
    "ProcessLaunchError",
    "TerminationTimeout",
    "ToolNotFound",
]

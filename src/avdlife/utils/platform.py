from __future__ import annotations

import os
import platform

from ..platform import Abi


def is_windows() -> bool:
    """Return True when the host uses Windows executable naming (.bat/.exe)."""
    return os.name == "nt"


def host_abi(machine: str | None = None) -> str | None:
    """
    Return the emulator ABI matching the host CPU, or None if it is unknown.

    `machine` defaults to `platform.machine()`.
    """
    abi = Abi.from_machine(machine if machine is not None else platform.machine())
    return abi.value if abi is not None else None

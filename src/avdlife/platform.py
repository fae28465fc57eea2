from __future__ import annotations

from enum import Enum


class Abi(str, Enum):
    """
    Emulator system image ABIs.

    The value is the name the SDK uses in system image package names;
    `aliases` lists the host machine names that map onto it.
    """

    ARMEABI_V7A = "armeabi-v7a"
    ARMEABI = "armeabi"
    ARM64_V8A = "arm64-v8a"
    X86 = "x86"
    X86_64 = "x86_64"

    @property
    def aliases(self) -> frozenset[str]:
        return _ALIASES[self] | {self.value}

    @classmethod
    def from_machine(cls, machine: str | None) -> Abi | None:
        """Map a host machine name (as in `platform.machine()`) to an ABI."""
        if not machine:
            return None
        name = machine.strip().lower()
        for abi in cls:
            if name in abi.aliases:
                return abi
        return None


_ALIASES: dict[Abi, frozenset[str]] = {
    Abi.ARMEABI_V7A: frozenset({"arm-v7", "armv7", "armv7l", "arm", "arm32"}),
    Abi.ARMEABI: frozenset(),
    Abi.ARM64_V8A: frozenset({"arm64", "aarch64"}),
    Abi.X86: frozenset({"i386", "ia-32", "i686"}),
    Abi.X86_64: frozenset({"amd64", "x64", "x86-64", "ia-64", "ia64"}),
}

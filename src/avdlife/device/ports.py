from __future__ import annotations

import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass

from ..errors import PortExhaustion
from ..utils.logging import get_logger
from ..utils.net import is_listening, owner_info

# Matches `adb devices` rows for running emulators. Example output:
#
#   List of devices attached
#   emulator-5554       device
#   192.168.1.2:42839   device
ADB_EMULATOR_PATTERN = re.compile(r"(emulator-(\d{1,5}))\s+device")

_log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class InstanceId:
    """Console port of one emulator instance and the adb serial derived from it."""

    port: int

    @property
    def serial(self) -> str:
        return f"emulator-{self.port}"

    def __str__(self) -> str:
        return self.serial


def reserved_ports(lines: Iterable[str]) -> set[int]:
    """Ports of the emulators `adb devices` reports as attached and online."""
    ports: set[int] = set()
    for line in lines:
        m = ADB_EMULATOR_PATTERN.fullmatch(line.strip())
        if m:
            ports.add(int(m.group(2)))
    return ports


class PortNegotiator:
    """
    Picks a console port no visible emulator is using.

    Scans from `high` down to `low`. Concurrently starting instances tend to
    take the low end of the range first, so starting at the top makes
    collisions less likely. Ports handed out once are never handed out again
    by the same negotiator.
    """

    def __init__(
        self,
        high: int = 5680,
        low: int = 5554,
        step: int = 2,
        *,
        probe_sockets: bool = False,
        host: str = "127.0.0.1",
    ) -> None:
        self.high, self.low, self.step = high, low, step
        self.probe_sockets = probe_sockets
        self.host = host
        self._issued: set[int] = set()
        self._lock = threading.Lock()

    def candidates(self) -> range:
        return range(self.high, self.low - 1, -self.step)

    def negotiate(self, device_lines: Iterable[str]) -> InstanceId:
        """
        Return the first free port for the given `adb devices` output.

        Raises:
            PortExhaustion: If every port in the range is reserved.
        """
        attached = reserved_ports(device_lines)
        with self._lock:
            taken = attached | self._issued
            for port in self.candidates():
                if port in taken:
                    continue
                if self.probe_sockets and is_listening(self.host, port):
                    _log.info(
                        "Skipping emulator port already bound locally",
                        port=port,
                        owner=owner_info(port),
                    )
                    continue
                self._issued.add(port)
                _log.info("Negotiated emulator port", port=port, reserved=sorted(attached))
                return InstanceId(port)

        _log.error(
            "No free emulator port", high=self.high, low=self.low, reserved=sorted(taken)
        )
        raise PortExhaustion(self.high, self.low, self.step)

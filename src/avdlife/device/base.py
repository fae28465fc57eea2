from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import TypeVar

_M = TypeVar("_M", bound="EmulatorManager")


class EmulatorManager(ABC):
    """
    Lifecycle contract for one emulator instance.

    `start` launches without blocking, `wait_until_ready` blocks until the
    instance is usable, `stop` tears everything down. Used as a context
    manager the instance is started and booted on entry and always stopped
    on exit.
    """

    @property
    @abstractmethod
    def serial(self) -> str | None:
        """adb serial of the launched instance, None before `start`."""

    @abstractmethod
    def start(self) -> None:
        """
        Launch the emulator process.

        Must not block until the device has booted; that is the job of
        `wait_until_ready`.
        """

    @abstractmethod
    def stop(self) -> None:
        """
        Stop the emulator and whatever it spawned.

        Idempotent: calling it on a manager that never started, or twice, is a no-op.
        """

    @abstractmethod
    def wait_until_ready(self, timeout: float | None = None) -> None:
        """
        Block until the launched instance has finished booting.

        Args:
            timeout (float | None): Maximum wait time in seconds; None uses the configured default.
        """

    def __enter__(self: _M) -> _M:
        self.start()
        self.wait_until_ready()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

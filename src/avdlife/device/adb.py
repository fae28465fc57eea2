from __future__ import annotations

import shlex
import subprocess
from collections.abc import Mapping
from pathlib import Path
from typing import cast

from ..errors import ToolInvocationError
from ..utils.cli import Completed, run_cmd
from ..utils.logging import get_logger


class AdbProxy:
    """
    Simplified synchronous access to adb for short-lived queries.

    Long-running adb calls that must stay cancellable (the boot wait) do not
    go through here.
    """

    def __init__(
        self, adb: Path | str, *, env: Mapping[str, str] | None = None, timeout: float = 30
    ) -> None:
        self.adb = str(adb)
        self.env = dict(env or {})
        self.timeout = timeout
        self._log = get_logger(__name__)

    def execute(self, *args: str) -> list[str]:
        """
        Run adb with `args` and return its stdout lines, stripped.

        Stderr is discarded.

        Raises:
            ToolInvocationError: If adb exits with a non-zero code or times out.
        """
        cmd = [self.adb, *args]
        self._log.debug("ADB: %s", " ".join(map(shlex.quote, cmd)))
        try:
            out = cast(
                Completed,
                run_cmd(cmd, check=False, env=self.env, timeout=self.timeout),
            )
        except subprocess.TimeoutExpired:
            raise ToolInvocationError(cmd, 124, f"timed out after {self.timeout}s") from None
        if out.returncode != 0:
            raise ToolInvocationError(cmd, out.returncode, out.stderr)
        self._log.debug("ADB stdout", stdout=out.stdout)
        return out.lines

    def devices(self) -> list[str]:
        """Rows of `adb devices`."""
        return self.execute("devices")

from __future__ import annotations

import subprocess
from typing import Any

import pytest

from avdlife.device.adb import AdbProxy
from avdlife.errors import ToolInvocationError


class R:
    def __init__(self, rc: int = 0, out: str = "", err: str = "") -> None:
        self.returncode: int = rc
        self.stdout: str = out
        self.stderr: str = err

    @property
    def lines(self) -> list[str]:
        return [line.strip() for line in self.stdout.split("\n")]


def test_devices_returns_stripped_lines(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[list[str], dict[str, Any]]] = []

    def fake_run_cmd(args: list[str], **kw: Any) -> R:
        calls.append((list(args), kw))
        return R(0, "List of devices attached\r\nemulator-5554\tdevice\r\n")

    monkeypatch.setattr("avdlife.device.adb.run_cmd", fake_run_cmd)
    proxy = AdbProxy("/sdk/platform-tools/adb", env={"ANDROID_HOME": "/sdk"})

    assert proxy.devices() == ["List of devices attached", "emulator-5554\tdevice", ""]
    (args, kw), = calls
    assert args == ["/sdk/platform-tools/adb", "devices"]
    assert kw["check"] is False
    assert kw["env"] == {"ANDROID_HOME": "/sdk"}


def test_non_zero_exit_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "avdlife.device.adb.run_cmd", lambda args, **kw: R(1, "", "daemon not running")
    )
    with pytest.raises(ToolInvocationError, match="daemon not running") as exc:
        AdbProxy("adb").execute("get-state")
    assert exc.value.returncode == 1
    assert exc.value.command == ["adb", "get-state"]


def test_timeout_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    def slow(args: list[str], **kw: Any) -> R:
        raise subprocess.TimeoutExpired(args, kw["timeout"])

    monkeypatch.setattr("avdlife.device.adb.run_cmd", slow)
    with pytest.raises(ToolInvocationError) as exc:
        AdbProxy("adb", timeout=0.1).devices()
    assert exc.value.returncode == 124

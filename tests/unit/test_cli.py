from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from avdlife.errors import BootTimeout
from avdlife.runner.main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("ANDROID_SDK_ROOT", "ANDROID_HOME", "AVDLIFE_SDK_ROOT"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture()
def config(tmp_path: Path) -> Path:
    sdk = tmp_path / "sdk"
    adb = sdk / "platform-tools" / "adb"
    adb.parent.mkdir(parents=True)
    adb.write_text("#!/bin/sh\n", encoding="utf-8")
    adb.chmod(0o755)
    cfg = tmp_path / "avdlife.yaml"
    cfg.write_text(
        f"sdk_root: {sdk}\navd_root: {tmp_path / 'avd'}\nemulator:\n  abi: x86_64\n",
        encoding="utf-8",
    )
    return cfg


class FakeManager:
    """Stands in for AndroidEmulatorManager inside the `run` command."""

    instances: list[FakeManager] = []
    fail_boot = False

    def __init__(self, settings: Any) -> None:
        self.settings = settings
        self.calls: list[str] = []
        FakeManager.instances.append(self)

    @property
    def environment(self) -> dict[str, str]:
        return {"ANDROID_HOME": "/sdk"}

    @property
    def serial(self) -> str:
        return "emulator-5584"

    def start(self) -> None:
        self.calls.append("start")

    def wait_until_ready(self, timeout: float | None = None) -> None:
        self.calls.append(f"wait:{timeout}")
        if FakeManager.fail_boot:
            raise BootTimeout("emulator-5584", timeout or 300)

    def stop(self) -> None:
        self.calls.append("stop")


@pytest.fixture()
def fake_manager(monkeypatch: pytest.MonkeyPatch) -> type[FakeManager]:
    FakeManager.instances = []
    FakeManager.fail_boot = False
    monkeypatch.setattr("avdlife.runner.main.AndroidEmulatorManager", FakeManager)
    return FakeManager


def test_locate_prints_tool_path(config: Path) -> None:
    result = runner.invoke(app, ["locate", "adb", "--config", str(config)])
    assert result.exit_code == 0, result.output
    assert result.output.strip().endswith("platform-tools/adb")


def test_locate_unknown_tool_fails(config: Path) -> None:
    result = runner.invoke(app, ["locate", "fastboot", "--config", str(config)])
    assert result.exit_code == 1
    assert "Unable to find a valid fastboot" in result.output


def test_info_shows_derived_values(config: Path) -> None:
    result = runner.invoke(app, ["info", "-c", str(config)])
    assert result.exit_code == 0, result.output
    assert "system_image: system-images;android-10;default;x86_64" in result.output
    assert "emulator: generated-android-10_x86_64-default" in result.output
    assert "ANDROID_AVD_HOME=" in result.output


def test_port_prints_negotiated_serial(config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class R:
        returncode = 0
        stdout = "List of devices attached\nemulator-5680\tdevice\n"
        stderr = ""
        lines = ["List of devices attached", "emulator-5680\tdevice", ""]

    monkeypatch.setattr("avdlife.device.adb.run_cmd", lambda args, **kw: R())
    result = runner.invoke(app, ["port", "--config", str(config)])
    assert result.exit_code == 0, result.output
    assert result.stdout.strip().splitlines()[-1] == "5678 emulator-5678"


def test_missing_sdk_root_is_a_usage_error(tmp_path: Path) -> None:
    result = runner.invoke(app, ["port", "--config", str(tmp_path / "absent.yaml")])
    assert result.exit_code == 2
    assert "No Android SDK root configured" in result.output


def test_run_requires_a_command(config: Path, fake_manager: type[FakeManager]) -> None:
    result = runner.invoke(app, ["run", "--config", str(config)])
    assert result.exit_code == 2
    assert fake_manager.instances == []


def test_run_passes_serial_and_exit_code(config: Path, fake_manager: type[FakeManager]) -> None:
    code = (
        "import os, sys; "
        "sys.exit(7 if os.environ['ANDROID_SERIAL'] == 'emulator-5584' "
        "and os.environ['ANDROID_HOME'] == '/sdk' else 3)"
    )
    result = runner.invoke(
        app,
        ["run", "--config", str(config), "--boot-timeout", "42", "--", sys.executable, "-c", code],
    )
    assert result.exit_code == 7, result.output
    (mgr,) = fake_manager.instances
    assert mgr.calls == ["start", "wait:42.0", "stop"]


def test_run_boot_failure_stops_and_fails(config: Path, fake_manager: type[FakeManager]) -> None:
    fake_manager.fail_boot = True
    result = runner.invoke(app, ["run", "--config", str(config), "--", sys.executable, "-V"])
    assert result.exit_code == 1
    assert "did not finish booting" in result.output
    assert fake_manager.instances[0].calls[-1] == "stop"


def test_run_missing_command_binary(
    config: Path, fake_manager: type[FakeManager], tmp_path: Path
) -> None:
    result = runner.invoke(app, ["run", "--config", str(config), "--", str(tmp_path / "nope")])
    assert result.exit_code == 127
    assert fake_manager.instances[0].calls[-1] == "stop"

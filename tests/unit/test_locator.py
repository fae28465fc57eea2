from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from avdlife.errors import ToolNotExecutable, ToolNotFound
from avdlife.sdk.locator import ToolLocator, ensure_executable, executable_name, sdk_file


def _make_tool(root: Path, *parts: str, name: str = "sdkmanager") -> Path:
    folder = root.joinpath(*parts)
    folder.mkdir(parents=True)
    tool = folder / name
    tool.write_text("#!/bin/sh\n", encoding="utf-8")
    return tool


def _delete(path: Path) -> None:
    """Delete a file and every parent directory left empty by it."""
    path.unlink()
    parent = path.parent
    while parent.exists() and not any(parent.iterdir()):
        parent.rmdir()
        parent = parent.parent


@pytest.fixture()
def locator(tmp_path: Path) -> ToolLocator:
    return ToolLocator(tmp_path, windows=False)


def test_empty_sdk_root_raises(locator: ToolLocator) -> None:
    with pytest.raises(ToolNotFound, match="Unable to find a valid sdkmanager"):
        locator.sdk_manager()


def test_missing_sdk_root_raises(tmp_path: Path) -> None:
    with pytest.raises(ToolNotFound):
        ToolLocator(tmp_path / "nope", windows=False).adb()


def test_unrelated_folder_is_ignored(tmp_path: Path, locator: ToolLocator) -> None:
    _make_tool(tmp_path, "foo")
    with pytest.raises(ToolNotFound):
        locator.sdk_manager()


@pytest.mark.parametrize(
    "parts",
    [
        ("cmdline-tools", "tools", "bin"),
        ("cmdline-tools", "latest", "bin"),
        ("cmdline-tools", "2.1", "bin"),
        ("tools", "bin"),
    ],
)
def test_each_layout_resolves(tmp_path: Path, locator: ToolLocator, parts: tuple[str, ...]) -> None:
    tool = _make_tool(tmp_path, *parts)
    assert locator.sdk_manager() == tool


def test_invalid_version_directory_still_allowed(tmp_path: Path, locator: ToolLocator) -> None:
    tool = _make_tool(tmp_path, "cmdline-tools", "madeupversion", "bin")
    assert locator.sdk_manager() == tool


def test_prefers_valid_versions(tmp_path: Path, locator: ToolLocator) -> None:
    for name in ("invalid", "0invalid", "1invalid", "1.invalid", "1-tagged", "2invalid"):
        _make_tool(tmp_path, "cmdline-tools", name, "bin")
    valid = _make_tool(tmp_path, "cmdline-tools", "1.0", "bin")
    assert locator.sdk_manager() == valid


def test_version_order_of_precedence(tmp_path: Path, locator: ToolLocator) -> None:
    v1 = _make_tool(tmp_path, "cmdline-tools", "1", "bin")
    v2 = _make_tool(tmp_path, "cmdline-tools", "2.1", "bin")
    v3 = _make_tool(tmp_path, "cmdline-tools", "3", "bin")
    v10 = _make_tool(tmp_path, "cmdline-tools", "10.0.1", "bin")

    for expected in (v10, v3, v2, v1):
        assert locator.sdk_manager() == expected
        _delete(expected)

    with pytest.raises(ToolNotFound):
        locator.sdk_manager()


def test_candidate_priority_order(tmp_path: Path, locator: ToolLocator) -> None:
    # Created in reverse so directory creation order cannot influence the result.
    legacy = _make_tool(tmp_path, "tools", "bin")
    version = _make_tool(tmp_path, "cmdline-tools", "2.1", "bin")
    latest = _make_tool(tmp_path, "cmdline-tools", "latest", "bin")
    cmdline_tools = _make_tool(tmp_path, "cmdline-tools", "tools", "bin")

    for expected in (cmdline_tools, latest, version, legacy):
        assert locator.sdk_manager() == expected
        _delete(expected)

    with pytest.raises(ToolNotFound):
        locator.sdk_manager()


def test_highest_version_without_tool_fails_candidate(tmp_path: Path, locator: ToolLocator) -> None:
    """The wildcard picks one directory; a lower version is not consulted if it lacks the tool."""
    (tmp_path / "cmdline-tools" / "9" / "bin").mkdir(parents=True)
    _make_tool(tmp_path, "cmdline-tools", "1", "bin")
    legacy = _make_tool(tmp_path, "tools", "bin")
    assert locator.sdk_manager() == legacy


def test_wildcard_skips_files(tmp_path: Path) -> None:
    base = tmp_path / "cmdline-tools"
    (base / "2").mkdir(parents=True)
    (base / "99").write_text("not a directory", encoding="utf-8")
    assert sdk_file(tmp_path, "cmdline-tools", None) == base / "2"


def test_wildcard_without_children(tmp_path: Path) -> None:
    (tmp_path / "cmdline-tools").mkdir()
    assert sdk_file(tmp_path, "cmdline-tools", None, "bin") is None
    assert sdk_file(tmp_path, "missing", None) is None


def test_fixed_locations(tmp_path: Path, locator: ToolLocator) -> None:
    emulator = _make_tool(tmp_path, "emulator", name="emulator")
    adb = _make_tool(tmp_path, "platform-tools", name="adb")
    assert locator.emulator() == emulator
    assert locator.adb() == adb
    assert locator.tool("adb") == adb
    with pytest.raises(ToolNotFound):
        locator.tool("fastboot")


def test_windows_suffixes(tmp_path: Path) -> None:
    win = ToolLocator(tmp_path, windows=True)
    bat = _make_tool(tmp_path, "cmdline-tools", "latest", "bin", name="avdmanager.bat")
    exe = _make_tool(tmp_path, "platform-tools", name="adb.exe")
    assert win.avd_manager() == bat
    assert win.adb() == exe
    assert executable_name("emulator", ".exe", windows=False) == "emulator"


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_ensure_executable_adds_bits(tmp_path: Path) -> None:
    tool = _make_tool(tmp_path, "platform-tools", name="adb")
    tool.chmod(0o644)
    assert ensure_executable(tool) == tool
    assert tool.stat().st_mode & stat.S_IXUSR


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_ensure_executable_fails_when_chmod_fails(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    tool = _make_tool(tmp_path, "platform-tools", name="adb")
    tool.chmod(0o644)

    def deny(self: Path, mode: int) -> None:
        raise PermissionError("not the owner")

    monkeypatch.setattr(Path, "chmod", deny)
    monkeypatch.setattr("avdlife.sdk.locator.os.access", lambda p, m: False)
    with pytest.raises(ToolNotExecutable):
        ensure_executable(tool)

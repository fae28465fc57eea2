from __future__ import annotations

import os
import stat
from collections.abc import Sequence
from pathlib import Path

from ..errors import ToolNotExecutable, ToolNotFound
from ..utils.logging import get_logger
from ..utils.platform import is_windows
from ..utils.versions import version_key

# A candidate is a path relative to the SDK root. None marks a directory level
# holding version-numbered siblings, resolved to the highest version present.
Candidate = Sequence[str | None]

# Folders that may contain sdkmanager/avdmanager, earlier entries preferred.
SDK_MANAGER_PATHS: tuple[Candidate, ...] = (
    # cmdline-tools downloaded separately and copied into the SDK root
    ("cmdline-tools", "tools", "bin"),
    # cmdline-tools;latest installed by sdkmanager
    ("cmdline-tools", "latest", "bin"),
    # a specific cmdline-tools version installed by sdkmanager
    ("cmdline-tools", None, "bin"),
    # legacy SDK tools
    ("tools", "bin"),
)
EMULATOR_PATHS: tuple[Candidate, ...] = (("emulator",),)
ADB_PATHS: tuple[Candidate, ...] = (("platform-tools",),)

_log = get_logger(__name__)


def _highest_version_child(directory: Path) -> Path | None:
    try:
        children = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError:
        return None

    best: Path | None = None
    for child in children:
        try:
            if not child.is_dir():
                continue
        except OSError:
            continue
        # Strictly greater only, so the first of equally ranked names wins.
        if best is None or version_key(child.name) > version_key(best.name):
            best = child
    return best


def sdk_file(root: Path, *segments: str | None) -> Path | None:
    """
    Walk `segments` below `root`.

    A literal segment must exist as a directory entry; a None segment descends
    into the highest-versioned child directory. Returns None as soon as a step
    cannot be taken. The final path is not checked for existence.
    """
    path = Path(root)
    for segment in segments:
        if segment is not None:
            path = path / segment
            continue
        if not path.is_dir():
            return None
        child = _highest_version_child(path)
        if child is None:
            return None
        path = child
    return path


def executable_name(name: str, windows_suffix: str, *, windows: bool | None = None) -> str:
    """Apply the Windows-only suffix (".bat", ".exe") to a tool name."""
    if windows is None:
        windows = is_windows()
    return name + windows_suffix if windows else name


class ToolLocator:
    """
    Resolves SDK command-line tools under an SDK root.

    Each tool has an ordered list of candidate folders; the first candidate
    holding a regular file with the tool's name wins.
    """

    def __init__(self, sdk_root: Path | str, *, windows: bool | None = None) -> None:
        self.sdk_root = Path(sdk_root)
        self.windows = is_windows() if windows is None else windows

    def resolve(self, tool: str, candidates: Sequence[Candidate], windows_suffix: str = "") -> Path:
        """
        Return the first existing `tool` executable among `candidates`.

        Raises:
            ToolNotFound: If the SDK root is missing or no candidate resolves.
        """
        if not self.sdk_root.is_dir():
            raise ToolNotFound(tool, self.sdk_root)

        filename = executable_name(tool, windows_suffix, windows=self.windows)
        for candidate in candidates:
            folder = sdk_file(self.sdk_root, *candidate)
            if folder is None:
                continue
            path = folder / filename
            if path.is_file():
                _log.debug("Resolved SDK tool", tool=tool, path=str(path))
                return path

        _log.error("SDK tool not found", tool=tool, sdk_root=str(self.sdk_root))
        raise ToolNotFound(tool, self.sdk_root)

    def sdk_manager(self) -> Path:
        return self.resolve("sdkmanager", SDK_MANAGER_PATHS, ".bat")

    def avd_manager(self) -> Path:
        return self.resolve("avdmanager", SDK_MANAGER_PATHS, ".bat")

    def emulator(self) -> Path:
        return self.resolve("emulator", EMULATOR_PATHS, ".exe")

    def adb(self) -> Path:
        return self.resolve("adb", ADB_PATHS, ".exe")

    def tool(self, name: str) -> Path:
        """Resolve one of "sdkmanager", "avdmanager", "emulator" or "adb" by name."""
        lookups = {
            "sdkmanager": self.sdk_manager,
            "avdmanager": self.avd_manager,
            "emulator": self.emulator,
            "adb": self.adb,
        }
        try:
            return lookups[name]()
        except KeyError:
            raise ToolNotFound(name, self.sdk_root) from None


def ensure_executable(path: Path) -> Path:
    """
    Make sure `path` can be executed, adding exec bits if needed.

    SDK binaries are normally executable already. In containers and on some CI
    systems the current user does not own them and cannot chmod; then they must
    already be executable.
    """
    if os.access(path, os.X_OK):
        return path
    try:
        mode = path.stat().st_mode
        path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as e:
        _log.warning("Unable to change tool permissions", path=str(path), error=str(e))
    if not os.access(path, os.X_OK):
        raise ToolNotExecutable(path)
    _log.info("Marked SDK tool executable", path=str(path))
    return path

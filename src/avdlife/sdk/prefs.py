from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

_MODERN_VARS = ("ANDROID_USER_HOME", "ANDROID_PREFS_ROOT")


@dataclass(frozen=True, slots=True)
class ModernPrefs:
    """Preferences layout understood by cmdline-tools and current emulators."""

    environ: Mapping[str, str]
    home: Path

    def folder(self) -> Path:
        if self.environ.get("ANDROID_USER_HOME"):
            return Path(self.environ["ANDROID_USER_HOME"])
        if self.environ.get("ANDROID_PREFS_ROOT"):
            return Path(self.environ["ANDROID_PREFS_ROOT"]) / ".android"
        return self.home / ".android"


@dataclass(frozen=True, slots=True)
class LegacyPrefs:
    """Preferences layout of the old SDK tools (ANDROID_SDK_HOME)."""

    environ: Mapping[str, str]
    home: Path

    def folder(self) -> Path:
        if self.environ.get("ANDROID_SDK_HOME"):
            return Path(self.environ["ANDROID_SDK_HOME"]) / ".android"
        return self.home / ".android"


PrefsLocation = ModernPrefs | LegacyPrefs


def detect_prefs_location(
    sdk_root: Path | None,
    environ: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> PrefsLocation:
    """
    Pick the preferences layout once, from the environment and the installed tools.

    Modern when any modern variable is set or the SDK ships cmdline-tools,
    legacy otherwise.
    """
    env = dict(os.environ if environ is None else environ)
    home_dir = home if home is not None else Path.home()
    if any(env.get(var) for var in _MODERN_VARS):
        return ModernPrefs(env, home_dir)
    if sdk_root is not None and (Path(sdk_root) / "cmdline-tools").is_dir():
        return ModernPrefs(env, home_dir)
    return LegacyPrefs(env, home_dir)

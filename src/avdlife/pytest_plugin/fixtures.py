from __future__ import annotations

from collections.abc import Generator

import pytest

from ..config.loader import load_settings
from ..config.models import Settings
from ..device.android_emulator import AndroidEmulatorManager
from ..utils.logging import get_logger, setup_logging
from .options import pytest_addoption  # noqa: F401

_logger = get_logger(__name__)


@pytest.fixture(scope="session")
def avd_settings(pytestconfig: pytest.Config) -> Settings:
    """
    Load emulator configuration once per session.

    Supports overriding the configuration file path via `--avd-config <path>`.
    """
    setup_logging()
    cfg_path: str | None = pytestconfig.getoption("--avd-config")
    return load_settings(cfg_path)


@pytest.fixture(scope="session")
def android_emulator(
    avd_settings: Settings, pytestconfig: pytest.Config
) -> Generator[AndroidEmulatorManager, None, None]:
    """
    A booted emulator shared by the whole session.

    - Picks a free port, launches the configured AVD and waits for boot completion.
    - Yields the manager (`.serial`, `.environment`, `.adb()` for test code).
    - Stops the emulator at session end, also when boot or the tests fail.

    Boot failures stop the emulator before the error reaches pytest, so a
    failed boot never leaks an emulator process.
    """
    timeout: float | None = pytestconfig.getoption("--avd-boot-timeout")
    mgr = AndroidEmulatorManager(avd_settings)
    mgr.start()
    try:
        mgr.wait_until_ready(timeout)
        _logger.info("Android emulator ready for tests", serial=mgr.serial)
        yield mgr
    finally:
        mgr.stop()
        _logger.info("Android emulator stopped")

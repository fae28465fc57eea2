import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    """
    Registers custom command-line (CLI) options for pytest.

    Adds options to configure the emulator used by the test session:
      --avd-config <path>      : Path to the YAML configuration file.
      --avd-boot-timeout <sec> : Override of the configured boot timeout.

    These options are used by the session fixtures to load settings and boot the emulator.
    """
    g = parser.getgroup("avdlife")
    g.addoption(
        "--avd-config", action="store", default=None, help="Path to YAML emulator configuration"
    )
    g.addoption(
        "--avd-boot-timeout",
        action="store",
        type=float,
        default=None,
        help="Seconds to wait for the emulator to finish booting",
    )

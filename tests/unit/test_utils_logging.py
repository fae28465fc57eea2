from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

import avdlife.utils.logging as logmod
from avdlife.utils.logging import bind_context, clear_contextvars, setup_logging


@pytest.fixture()
def fresh_logging(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Reconfigure logging inside the test and send the file sink to tmp_path."""
    sink = tmp_path / "avdlife.log"
    monkeypatch.setattr(logmod, "_LOG_DIR", tmp_path)
    monkeypatch.setattr(logmod, "_LIFECYCLE_LOG", sink)
    logmod._CONFIGURED = False
    yield sink
    clear_contextvars()
    structlog.reset_defaults()
    # capsys has already restored sys.stderr here
    logmod._CONFIGURED = False
    monkeypatch.delenv("AVDLIFE_LOG_LEVEL", raising=False)
    setup_logging()


def test_setup_logging_produces_json(
    fresh_logging: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Configure logging and verify that structlog outputs JSON via JSONRenderer."""
    setup_logging()
    log = structlog.get_logger()
    log.info("hello", foo=123)

    captured = capsys.readouterr()
    # Records go to stderr so stdout stays free for wrapped commands
    assert captured.out == ""
    data = json.loads(captured.err.strip().splitlines()[-1])
    assert data["event"] == "hello"
    assert data["message"] == "hello"
    assert data["level"] in ("info", "INFO")
    assert "timestamp" in data
    assert data["foo"] == 123


def test_records_are_duplicated_to_file(
    fresh_logging: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    setup_logging()
    bind_context(avd="Pixel_8", serial="emulator-5584")
    structlog.get_logger().warning("Emulator exited abnormally", returncode=137)

    lines = fresh_logging.read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "Emulator exited abnormally"
    assert record["avd"] == "Pixel_8"
    assert record["serial"] == "emulator-5584"
    assert record["returncode"] == 137


def test_unset_context_fields_are_dropped(
    fresh_logging: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    setup_logging()
    bind_context(avd="Pixel_8")
    structlog.get_logger().info("Negotiated emulator port", port=5584)

    data = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert data["avd"] == "Pixel_8"
    assert "serial" not in data


def test_log_level_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AVDLIFE_LOG_LEVEL", "trace")
    assert logmod._level_from_env() == 10
    monkeypatch.setenv("AVDLIFE_LOG_LEVEL", "warning")
    assert logmod._level_from_env() == 30
    monkeypatch.setenv("AVDLIFE_LOG_LEVEL", "bogus")
    assert logmod._level_from_env() == 20


def test_trace_level_configures_and_logs_debug(
    fresh_logging: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """TRACE selects the most verbose level the filtering logger supports."""
    monkeypatch.setenv("AVDLIFE_LOG_LEVEL", "TRACE")
    setup_logging()
    logmod.get_logger("avdlife.test").debug("Polling boot state", attempt=1)

    data = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert data["event"] == "Polling boot state"
    assert data["level"] in ("debug", "DEBUG")
    assert data["attempt"] == 1

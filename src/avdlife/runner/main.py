from __future__ import annotations

import subprocess
from typing import Any

import typer

from ..config.loader import load_settings
from ..device.android_emulator import AndroidEmulatorManager
from ..errors import AvdLifeError
from ..sdk.locator import ToolLocator
from ..sdk.prefs import detect_prefs_location
from ..utils.cli import merged_env
from ..utils.logging import get_logger, lifecycle_log_path

# Create a CLI application using Typer
app = typer.Typer(add_completion=False, no_args_is_help=True)

_log = get_logger(__name__)

_CONFIG_HELP = "Path to the YAML configuration file"


def _manager(config: str | None) -> AndroidEmulatorManager:
    """Build a manager from the config file; a missing SDK root is a usage error."""
    try:
        return AndroidEmulatorManager(load_settings(config))
    except ValueError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(2) from None


@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run(
    ctx: typer.Context,
    config: str = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
    boot_timeout: float | None = typer.Option(None, help="Override the boot timeout (seconds)"),
) -> Any:
    """
    Boot the emulator, run a command against it, then shut the emulator down.

    The command receives the SDK environment plus ANDROID_SERIAL of the launched
    instance, and its exit code becomes ours.

    Example usage:
        avdlife run --config avdlife.yaml -- ./gradlew connectedCheck
    """
    command = list(ctx.args)
    if not command:
        typer.echo("No command given. Usage: avdlife run [OPTIONS] -- COMMAND...", err=True)
        raise typer.Exit(2)

    mgr = _manager(config)
    try:
        mgr.start()
        mgr.wait_until_ready(boot_timeout)
        env = mgr.environment
        env["ANDROID_SERIAL"] = mgr.serial or ""
        _log.info("Running command against emulator", cmd=" ".join(command))
        code = subprocess.call(command, env=merged_env(env))
    except AvdLifeError as e:
        typer.echo(f"error: {e}", err=True)
        code = 1
    except OSError as e:
        typer.echo(f"error: cannot run {command[0]}: {e}", err=True)
        code = 127
    finally:
        mgr.stop()

    raise typer.Exit(code)


@app.command()
def locate(
    tool: str = typer.Argument(..., help="sdkmanager | avdmanager | emulator | adb"),
    config: str = typer.Option(None, "--config", "-c", help=_CONFIG_HELP),
) -> None:
    """Print the resolved path of an SDK command-line tool."""
    try:
        settings = load_settings(config)
        path = ToolLocator(settings.require_sdk_root()).tool(tool)
    except (AvdLifeError, ValueError) as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1) from None
    typer.echo(str(path))


@app.command()
def port(config: str = typer.Option(None, "--config", "-c", help=_CONFIG_HELP)) -> None:
    """Print the port and serial the next emulator launch would use."""
    mgr = _manager(config)
    try:
        instance = mgr.negotiator.negotiate(mgr.adb().devices())
    except AvdLifeError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1) from None
    typer.echo(f"{instance.port} {instance.serial}")


@app.command()
def create(config: str = typer.Option(None, "--config", "-c", help=_CONFIG_HELP)) -> None:
    """Create the configured virtual device with avdmanager."""
    mgr = _manager(config)
    try:
        path = mgr.create_avd()
    except AvdLifeError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1) from None
    typer.echo(str(path))


@app.command()
def info(config: str = typer.Option(None, "--config", "-c", help=_CONFIG_HELP)) -> None:
    """Show the derived emulator configuration and environment."""
    settings = load_settings(config)
    prefs = detect_prefs_location(settings.sdk_root)
    typer.echo(f"sdk_root: {settings.sdk_root}")
    typer.echo(f"avd_root: {settings.avd_root.absolute()}")
    typer.echo(f"emulator: {settings.emulator_name}")
    typer.echo(f"system_image: {settings.system_image_package}")
    typer.echo(f"prefs: {prefs.folder()} ({type(prefs).__name__})")
    typer.echo(f"log: {lifecycle_log_path()}")
    if settings.sdk_root is not None:
        for key, value in settings.environment().items():
            typer.echo(f"{key}={value}")


if __name__ == "__main__":
    app()

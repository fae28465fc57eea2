from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence
from typing import Any


def _text(data: bytes | bytearray | str | None) -> str:
    # SDK tools occasionally print non-UTF-8 bytes (device names, locale output)
    if isinstance(data, bytes | bytearray):
        return data.decode(errors="replace")
    return data or ""


class Completed:
    """Result of a finished command with stdout and stderr decoded to text."""

    def __init__(self, proc: subprocess.CompletedProcess):
        self.args = proc.args
        self.returncode = proc.returncode
        self.stdout = _text(proc.stdout)
        self.stderr = _text(proc.stderr)

    @property
    def lines(self) -> list[str]:
        """Stdout split on newlines, each line stripped (drops Windows carriage returns)."""
        return [line.strip() for line in self.stdout.split("\n")]


def merged_env(overlay: Mapping[str, str] | None) -> dict[str, str] | None:
    """
    Return os.environ with `overlay` applied on top, or None when there is no overlay
    (subprocess then inherits the parent environment unchanged).
    """
    if not overlay:
        return None
    env = dict(os.environ)
    env.update({k: str(v) for k, v in overlay.items()})
    return env


def run_cmd(
    args: Sequence[str],
    *,
    check: bool = True,
    spawn: bool = False,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
    input: str | None = None,
    **popen_kwargs: Any,
) -> Completed | subprocess.Popen:
    """
    Run an SDK tool, either to completion or in the background.

    Args:
        args (Sequence[str]): Command and arguments to execute.
        check (bool): Raise CalledProcessError on a non-zero exit (synchronous mode).
        spawn (bool): Start the process and return its Popen without waiting.
        timeout (float | None): Seconds to wait for completion (synchronous mode).
        env (Mapping[str, str] | None): Variables overlaid on the current environment.
        input (str | None): Text written to the child's standard input (synchronous mode).
        **popen_kwargs: Extra subprocess.Popen arguments (spawn mode), e.g. pipes for relaying.

    Returns:
        Completed | subprocess.Popen: Captured result, or the running process if `spawn=True`.

    Raises:
        subprocess.CalledProcessError: If `check=True` and the command exits non-zero.
        subprocess.TimeoutExpired: If the command outlives `timeout`.
        OSError: If the executable cannot be started.
    """
    full_env = merged_env(env)
    if spawn:
        if full_env is not None:
            popen_kwargs["env"] = full_env
        return subprocess.Popen(list(args), **popen_kwargs)

    proc = subprocess.run(
        list(args),
        capture_output=True,
        timeout=timeout,
        check=False,
        env=full_env,
        input=input.encode() if input is not None else None,
    )
    if check and proc.returncode != 0:
        raise subprocess.CalledProcessError(proc.returncode, args, proc.stdout, proc.stderr)
    return Completed(proc)

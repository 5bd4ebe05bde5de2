from __future__ import annotations

import subprocess
from collections.abc import Mapping

from loguru import logger

from datacol.exceptions import ProviderError, SubprocessError

log = logger.bind(component="gcp")


def run(binary: str, *args: str, env: Mapping[str, str] | None = None) -> bytes:
    cmd = [binary, *args]
    log.debug("Running {cmd}", cmd=" ".join(cmd))
    try:
        proc = subprocess.run(cmd, capture_output=True, env=env, check=False)
    except OSError as e:
        raise SubprocessError(f"could not launch {binary}: {e}") from e
    if proc.returncode != 0:
        stderr = proc.stderr.decode(errors="replace").strip()
        raise ProviderError(f"{' '.join(cmd)} failed (exit {proc.returncode}): {stderr}")
    return proc.stdout


def run_text(binary: str, *args: str, env: Mapping[str, str] | None = None) -> str:
    return run(binary, *args, env=env).decode().strip()


def succeeds(binary: str, *args: str) -> bool:
    """Run a lookup command (describe, list) and report whether it exited 0."""
    cmd = [binary, *args]
    log.debug("Checking {cmd}", cmd=" ".join(cmd))
    try:
        proc = subprocess.run(cmd, capture_output=True, check=False)
    except OSError as e:
        raise SubprocessError(f"could not launch {binary}: {e}") from e
    return proc.returncode == 0

"""Run commands inside an app's live pod through the cluster-exec tool.

The pod is resolved through the provider, then the tool is run as a
child process with stdout and stderr captured separately. Once it
exits, one buffer is written out unchanged: stderr when the exit
status is non-zero, stdout otherwise. The status becomes the CLI's exit code.
"""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

from loguru import logger

from .config import ConfigPaths
from .exceptions import SubprocessError
from .models import ExecResult
from .providers.provider import Provider

log = logger.bind(component="exec")


def build_exec_args(kubeconfig: Path, stack: str, pod: str, args: Sequence[str]) -> list[str]:
    return ["--kubeconfig", str(kubeconfig), "-n", stack, "--pod", pod, "exec", *args]


def exit_status(returncode: int) -> int:
    """Map a child return code to the status to propagate.

    Negative codes mean the child was killed by a signal; that is not
    a normal exit and maps to 0.
    """
    return returncode if returncode > 0 else 0


class ExecBridge:
    def __init__(self, provider: Provider, paths: ConfigPaths, binary: str = "kubectl") -> None:
        self._provider = provider
        self._paths = paths
        self._binary = binary

    def execute(self, stack: str, pod: str, args: Sequence[str]) -> ExecResult:
        argv = build_exec_args(self._paths.kubeconfig_path(stack), stack, pod, args)
        log.debug("{binary} {argv}", binary=self._binary, argv=argv)

        try:
            proc = subprocess.run([self._binary, *argv], capture_output=True, check=False)
        except OSError as e:
            raise SubprocessError(f"could not launch {self._binary}: {e}") from e

        return ExecResult(
            status=exit_status(proc.returncode),
            stdout=proc.stdout,
            stderr=proc.stderr,
        )

    def run(
        self,
        stack: str,
        app: str,
        args: Sequence[str],
        out: BinaryIO | None = None,
    ) -> int:
        """Run args in a running pod of app and print the captured output.

        Returns the exit status of the remote command.
        """
        pod = self._provider.get_running_pods(app)
        result = self.execute(stack, pod, args)

        if out is None:
            out = sys.stdout.buffer
        out.write(result.output)
        out.flush()
        return result.status

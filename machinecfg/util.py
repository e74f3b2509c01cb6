from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from machinecfg.errors import CommandExecutionError


def expand_path(s: str) -> Path:
    # Expand ~ and $VARS
    return Path(os.path.expandvars(os.path.expanduser(s)))


def sh_join(args: Sequence[str]) -> str:
    return shlex.join(list(args))


DEFAULT_SHELL = "/bin/sh"


def default_shell() -> str:
    return os.environ.get("SHELL") or DEFAULT_SHELL


def abspath_no_resolve(p: Path) -> Path:
    # Normalize ".." etc but do NOT resolve symlinks.
    return Path(os.path.abspath(str(p)))


@dataclass(frozen=True)
class RunResult:
    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs installer and package-set scripts, or only logs them in dry-run mode."""

    def __init__(self, *, dry_run: bool, logger: logging.Logger) -> None:
        self._dry_run = dry_run
        self._logger = logger

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def run(self, args: Iterable[str], *, env: Mapping[str, str] | None = None) -> RunResult:
        """
        Run a program to completion and return its exit status and captured output.

        `env` is merged over the current process environment. OSError from a program
        that cannot be launched propagates to the caller.
        """
        argv = list(args)

        self._logger.debug("RUN %s", sh_join(argv))
        if self._dry_run:
            self._logger.info("[dry-run] %s", sh_join(argv))
            return RunResult(args=argv, returncode=0, stdout="", stderr="")

        merged_env = None
        if env is not None:
            merged_env = dict(os.environ)
            merged_env.update(dict(env))

        cp = subprocess.run(argv, text=True, capture_output=True, check=False, env=merged_env)
        return RunResult(
            args=argv,
            returncode=cp.returncode,
            stdout=cp.stdout or "",
            stderr=cp.stderr or "",
        )

    def run_script(
        self,
        script: str,
        *,
        shell: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> RunResult:
        """
        Run `script` as `<shell> -c <script>` in one shell session.

        The shell defaults to `$SHELL`, then `/bin/sh`. A shell that cannot be launched
        raises CommandExecutionError with no exit status.
        """
        program = shell or default_shell()
        try:
            return self.run([program, "-c", script], env=env)
        except OSError as e:
            self._logger.error("could not launch %s: %s", program, e)
            raise CommandExecutionError(program, None, script) from e


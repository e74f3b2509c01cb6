from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from machinecfg.errors import CommandExecutionError
from machinecfg.util import CommandRunner
from machinecfg.variables import substitute, vars_to_env

_QUOTE_RE = re.compile(r'(\\*)"')
_TRAILING_BACKSLASHES_RE = re.compile(r"\\+\Z")


def _escape_quote(m: re.Match[str]) -> str:
    backslashes = m.group(1)
    # An odd run already escapes the quote; an even run only escapes itself.
    if len(backslashes) % 2:
        return m.group(0)
    return backslashes + '\\"'


def make_safe(s: str) -> str:
    r"""
    Escape a value for use inside a double-quoted shell string.

    A `"` preceded by an even run of backslashes (none included) gets one more, so
    `"` becomes `\"` and `\\"` becomes `\\\"`, while `\"` is left as it is. An odd
    run of backslashes at the end is doubled up so it cannot escape the closing quote
    of the template. Applying it twice gives the same result as applying it once.
    """
    s = _QUOTE_RE.sub(_escape_quote, s)
    m = _TRAILING_BACKSLASHES_RE.search(s)
    if m is not None and len(m.group(0)) % 2:
        s += "\\"
    return s


def render(template: str, variables: Mapping[str, str], logger: logging.Logger) -> str:
    safe = {k: make_safe(v) for k, v in variables.items()}
    return substitute(template, safe, logger)


def _log_lines(logger: logging.Logger, level: int, label: str, text: str) -> None:
    if not logger.isEnabledFor(level):
        return
    for line in text.splitlines():
        if line:
            logger.log(level, "%s: %s", label, line)


@dataclass(frozen=True)
class ShellCommand:
    """A command template run through the user's shell with a set of variables."""

    runner: CommandRunner
    logger: logging.Logger
    variables: Mapping[str, str]
    local_bin: Path | None = None
    shell: str | None = None

    def script_for(self, template: str) -> str:
        return render(template, self.variables, self.logger)

    def execute(self, template: str) -> None:
        script = self.script_for(template)
        env = vars_to_env(self.variables, local_bin=self.local_bin)

        res = self.runner.run_script(script, shell=self.shell, env=env)

        _log_lines(self.logger, logging.DEBUG, "stdout", res.stdout)
        if not res.ok:
            _log_lines(self.logger, logging.ERROR, "stderr", res.stderr)
            raise CommandExecutionError(res.args[0], res.returncode, script)
        _log_lines(self.logger, logging.DEBUG, "stderr", res.stderr)


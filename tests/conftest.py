from __future__ import annotations

import logging
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Mapping

import pytest

from machinecfg import kinds
from machinecfg.core import Context, Options, build_context
from machinecfg.kinds import Platform
from machinecfg.paths import MachinePaths
from machinecfg.util import CommandRunner, RunResult


@dataclass
class Call:
    argv: list[str]
    env: dict[str, str] = field(default_factory=dict)

    @property
    def script(self) -> str:
        return self.argv[-1]


class RecordingRunner(CommandRunner):
    """Records every command instead of running it; scripts containing `fail_on` exit 1."""

    def __init__(self, logger: logging.Logger, *, fail_on: str | None = None, stdout: str = "", stderr: str = ""):
        super().__init__(dry_run=False, logger=logger)
        self.calls: list[Call] = []
        self.fail_on = fail_on
        self.stdout = stdout
        self.stderr = stderr

    def run(self, args: Iterable[str], *, env: Mapping[str, str] | None = None) -> RunResult:
        argv = list(args)
        self.calls.append(Call(argv, dict(env or {})))
        rc = 0
        if self.fail_on is not None and self.fail_on in argv[-1]:
            rc = 1
        return RunResult(args=argv, returncode=rc, stdout=self.stdout, stderr=self.stderr)

    @property
    def scripts(self) -> list[str]:
        return [c.script for c in self.calls]


@pytest.fixture(autouse=True)
def current_platform(monkeypatch: pytest.MonkeyPatch) -> Callable[[Platform], None]:
    """Pins the detected platform to linux; call the fixture value to switch."""
    monkeypatch.setattr(kinds, "CURRENT_PLATFORM", Platform.LINUX)
    monkeypatch.setenv("SHELL", "/bin/sh")

    def _set(platform: Platform) -> None:
        monkeypatch.setattr(kinds, "CURRENT_PLATFORM", platform)

    return _set


@pytest.fixture
def logger() -> logging.Logger:
    # Not below the "machinecfg" logger: the CLI turns off its propagation, which would hide records from caplog.
    lg = logging.getLogger("test-machinecfg")
    lg.setLevel(logging.DEBUG)
    return lg


@pytest.fixture
def paths(tmp_path: Path) -> MachinePaths:
    p = MachinePaths.under(tmp_path)
    p.repository_path.mkdir(parents=True)
    return p


@pytest.fixture
def runner(logger: logging.Logger) -> RecordingRunner:
    return RecordingRunner(logger)


@pytest.fixture
def make_runner(logger: logging.Logger) -> Callable[..., RecordingRunner]:
    def _make(**kwargs) -> RecordingRunner:
        return RecordingRunner(logger, **kwargs)

    return _make


@pytest.fixture
def make_ctx(paths: MachinePaths, logger: logging.Logger, runner: RecordingRunner) -> Callable[..., Context]:
    def _make(**options) -> Context:
        return build_context(paths=paths, options=Options(**options), logger=logger, runner=runner)

    return _make


@pytest.fixture
def ctx(make_ctx: Callable[..., Context]) -> Context:
    return make_ctx()


@pytest.fixture
def write_set(paths: MachinePaths) -> Callable[[str, str, str], Path]:
    """write_set("group", "file.yml" or "dir/package-set.yml", yaml) -> path of the written file."""

    def _write(group: str, relpath: str, text: str) -> Path:
        path = paths.repository_path / group / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_installers(paths: MachinePaths) -> Callable[[str], Path]:
    def _write(text: str) -> Path:
        paths.installers_file.parent.mkdir(parents=True, exist_ok=True)
        paths.installers_file.write_text(textwrap.dedent(text), encoding="utf-8")
        return paths.installers_file

    return _write

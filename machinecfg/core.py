from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from machinecfg.command import ShellCommand
from machinecfg.paths import MachinePaths
from machinecfg.reporter import Reporter
from machinecfg.util import CommandRunner

LINK_CONFLICT_MODES = ("fail", "skip", "replace")


@dataclass(frozen=True)
class Options:
    dry_run: bool = False
    link_conflict: str = "fail"  # fail|skip|replace


@dataclass(frozen=True)
class Context:
    paths: MachinePaths
    logger: logging.Logger
    runner: CommandRunner
    reporter: Reporter
    options: Options

    def shell(self, variables: Mapping[str, str]) -> ShellCommand:
        return ShellCommand(
            runner=self.runner,
            logger=self.logger,
            variables=variables,
            local_bin=self.paths.repo_local_bin_path,
        )


def build_context(
    *,
    paths: MachinePaths,
    options: Options,
    logger: logging.Logger,
    interactive: bool = False,
    runner: CommandRunner | None = None,
) -> Context:
    if options.link_conflict not in LINK_CONFLICT_MODES:
        raise ValueError(f"link_conflict must be one of {', '.join(LINK_CONFLICT_MODES)}")
    if runner is None:
        runner = CommandRunner(dry_run=options.dry_run, logger=logger)
    reporter = Reporter(logger=logger, interactive=interactive)

    return Context(
        paths=paths,
        logger=logger,
        runner=runner,
        reporter=reporter,
        options=options,
    )

"""
Runs an install action across the package repository.

Every selected package set goes through the same phases, in order:

1. `run-before` script
2. its actions: each package through its installer, or the matching script
3. env-file link (created on install, removed on update)
4. link-files (created on install, removed on update)
5. `run-after` script

The first failing phase stops that package set and the run; nothing already done is
undone. A history record is written for each package whose command exited zero.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from machinecfg.core import Context
from machinecfg.errors import NoInstallerForKindError
from machinecfg.history import InstalledPackage, PackageLog
from machinecfg.installers import InstallerRegistry
from machinecfg.kinds import InstallAction, current_platform
from machinecfg.links import LinkManager
from machinecfg.packages import Package, PackageRepository, PackageSet, PackageSetGroup
from machinecfg.util import expand_path
from machinecfg.variables import (
    PACKAGE_NAME,
    Variables,
    add_action_vars,
    add_package_set_vars,
    add_package_vars,
    default_vars,
    substitute,
)

_LINKING_ACTIONS = {InstallAction.INSTALL, InstallAction.UPDATE}


class Orchestrator:
    def __init__(
        self,
        ctx: Context,
        registry: InstallerRegistry,
        repository: PackageRepository,
        log: PackageLog,
    ) -> None:
        self.ctx = ctx
        self.registry = registry
        self.repository = repository
        self.log = log
        self.links = LinkManager(
            logger=ctx.logger,
            reporter=ctx.reporter,
            conflict=ctx.options.link_conflict,
            dry_run=ctx.options.dry_run,
        )

    def execute(
        self,
        action: InstallAction,
        *,
        group: str | None = None,
        package_set: str | None = None,
    ) -> None:
        logger = self.ctx.logger
        logger.debug("execute %s (group=%r, package_set=%r)", action, group, package_set)
        action_vars = add_action_vars(action, default_vars(self.ctx.paths, logger))

        if group is not None:
            found = self.repository.group(group)
            if found is None:
                logger.warning("No package set group found named %r, skipping", group)
            else:
                self._execute_group(action, found, package_set, action_vars)
        else:
            for g in self.repository.groups:
                self._execute_group(action, g, package_set, action_vars)

    def _execute_group(
        self,
        action: InstallAction,
        group: PackageSetGroup,
        package_set: str | None,
        action_vars: Variables,
    ) -> None:
        if package_set is not None:
            found = group.package_set(package_set)
            if found is None:
                self.ctx.logger.warning(
                    "No package set found named %r in group %r, skipping", package_set, str(group.name)
                )
            else:
                self._execute_package_set(action, group, found, action_vars)
        else:
            for ps in group.package_sets:
                self._execute_package_set(action, group, ps, action_vars)

    def _execute_package_set(
        self,
        action: InstallAction,
        group: PackageSetGroup,
        package_set: PackageSet,
        action_vars: Variables,
    ) -> None:
        ctx = self.ctx
        if not package_set.is_platform_match():
            ctx.reporter.report(
                f"Skipping package-set {package_set.name} (in group {group.name}), "
                f"not for platform {current_platform()}"
            )
            return
        ctx.reporter.report(f"Performing {action} on package-set {package_set.name} (in group {group.name})")

        variables = add_package_set_vars(package_set, action_vars, ctx.logger)

        if package_set.run_before is not None:
            ctx.logger.debug("running run-before script")
            ctx.shell(variables).execute(package_set.run_before)

        packages = package_set.packages()
        if packages is not None:
            self._package_actions(action, group, package_set, packages, variables)

        scripts = package_set.scripts()
        if scripts is not None:
            script = scripts.get(action)
            if script is None:
                ctx.logger.info("package set %s has no %s script", package_set.name, action)
            else:
                ctx.shell(variables).execute(script)

        self._env_file(action, package_set)
        self._link_files(action, package_set, variables)

        if package_set.run_after is not None:
            after_vars = dict(variables)
            after_vars.pop(PACKAGE_NAME, None)
            ctx.logger.debug("running run-after script")
            ctx.shell(after_vars).execute(package_set.run_after)

    def _package_actions(
        self,
        action: InstallAction,
        group: PackageSetGroup,
        package_set: PackageSet,
        packages: tuple[Package, ...],
        variables: Mapping[str, str],
    ) -> None:
        ctx = self.ctx
        for package in packages:
            if not package.is_platform_match():
                ctx.logger.warning(
                    "ignoring package %r, not applicable for platform %s", str(package.name), current_platform()
                )
                continue
            installer = self.registry.installer_for(package.resolved_platform(), package.kind)
            if installer is None:
                raise NoInstallerForKindError(package.resolved_platform(), package.kind, package=str(package.name))

            ran = installer.package_action(ctx, action, package, add_package_vars(package, variables))
            if ran and not ctx.options.dry_run:
                self.log.log(
                    InstalledPackage.now(
                        group=str(group.name),
                        package_set=str(package_set.name),
                        package=str(package.name),
                        installer=str(installer.name),
                    )
                )

    def _env_file_link(self, package_set: PackageSet) -> tuple[Path, Path] | None:
        """The (link, source) pair for a package set's env-file, if it has one."""
        source = package_set.env_file_path()
        if source is None:
            return None
        link = package_set.directory / str(package_set.name) / source.name
        return link, source

    def _env_file(self, action: InstallAction, package_set: PackageSet) -> None:
        pair = self._env_file_link(package_set)
        if pair is None or action not in _LINKING_ACTIONS:
            return
        link, source = pair
        if action is InstallAction.INSTALL:
            self.links.link(link, source)
        else:
            self.links.unlink(link)

    def _link_files(self, action: InstallAction, package_set: PackageSet, variables: Mapping[str, str]) -> None:
        if action not in _LINKING_ACTIONS:
            return
        logger = self.ctx.logger
        for source, target in package_set.link_files.items():
            source_path = package_set.directory / substitute(source, variables, logger)
            link = expand_path(substitute(target, variables, logger))
            if action is InstallAction.INSTALL:
                self.links.link(link, source_path)
            else:
                self.links.unlink(link)


def execute_action(
    ctx: Context,
    action: InstallAction,
    *,
    group: str | None = None,
    package_set: str | None = None,
) -> None:
    repository = PackageRepository.open(ctx.paths.repository_path, ctx.logger)
    if repository.is_empty():
        ctx.reporter.report("No package sets found in repository")
        return
    registry = InstallerRegistry.load(ctx.paths.installers_file, ctx.logger)
    with PackageLog(ctx.paths.history_file, ctx.logger) as log:
        Orchestrator(ctx, registry, repository, log).execute(action, group=group, package_set=package_set)
    ctx.reporter.report("Done.")

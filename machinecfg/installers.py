from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Mapping

from machinecfg.config_loader import (
    load_yaml_file,
    optional_str,
    reject_unknown_fields,
    require_str_map,
    require_table,
)
from machinecfg.errors import ConfigError, WrongInstallerForKindError
from machinecfg.kinds import (
    InstallAction,
    Name,
    PackageKind,
    Platform,
    current_platform,
    is_current_platform,
)
from machinecfg.packages import Package
from machinecfg.variables import add_action_vars, default_vars

if TYPE_CHECKING:
    from machinecfg.core import Context

_INSTALLER_FIELDS = {"name", "platform", "kind", "if-exists", "commands", "update-self"}

RegistryKey = tuple[Platform, PackageKind]


@dataclass(frozen=True)
class Installer:
    name: Name
    kind: PackageKind
    platform: Platform | None = None
    if_exists: str | None = None
    commands: Mapping[InstallAction, str] = field(default_factory=dict)
    update_self: str | None = None

    def resolved_platform(self) -> Platform:
        return self.platform if self.platform is not None else current_platform()

    def is_platform_match(self) -> bool:
        return is_current_platform(self.platform)

    def if_exists_match(self) -> bool:
        if self.if_exists is None:
            return True
        return Path(self.if_exists).expanduser().exists()

    @property
    def key(self) -> RegistryKey:
        return (self.resolved_platform(), self.kind)

    def command_for(self, action: InstallAction) -> str | None:
        return self.commands.get(action)

    def package_action(
        self,
        ctx: "Context",
        action: InstallAction,
        package: Package,
        variables: Mapping[str, str],
    ) -> bool:
        """
        Run this installer's command for `action` on `package`.

        Returns True when a command ran and exited zero. Returns False when there was
        nothing to do: the installer or the package is for another platform, or the
        installer has no command for this action.
        """
        if not (self.is_platform_match() and package.is_platform_match()):
            # A package set may list different packages per platform.
            ctx.logger.warning(
                "ignoring package %r, not applicable for platform %s", str(package.name), current_platform()
            )
            return False
        if self.kind != package.kind:
            ctx.logger.error("installer %s cannot handle package %s", self.name, package.name)
            raise WrongInstallerForKindError(str(self.name), self.kind, package.kind)

        template = self.command_for(action)
        if template is None:
            ctx.logger.info("installer %s has no command for action %s", self.name, action)
            return False
        ctx.reporter.report(f"* performing {action} on {self.name} package {package.name}")
        ctx.shell(variables).execute(template)
        return True

    @classmethod
    def from_dict(cls, raw: Any, *, path: Path | None = None) -> "Installer":
        table = require_table(raw, what="installer", path=path)
        reject_unknown_fields(table, _INSTALLER_FIELDS, what="installer", path=path)
        try:
            name = Name(table.get("name"))
            platform = Platform.parse(table["platform"]) if table.get("platform") is not None else None
            if "kind" not in table:
                raise ConfigError(f"installer {name!r} requires 'kind'", field="kind", value=None)
            kind = PackageKind.parse(table["kind"])
            commands = {
                InstallAction.parse(action, what="commands"): cmd
                for action, cmd in require_str_map(table.get("commands"), what="commands").items()
            }
        except ConfigError as e:
            raise e.located(path)
        return cls(
            name=name,
            kind=kind,
            platform=platform,
            if_exists=optional_str(table.get("if-exists"), what="if-exists", path=path),
            commands=commands,
            update_self=optional_str(table.get("update-self"), what="update-self", path=path),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": str(self.name)}
        if self.platform is not None:
            out["platform"] = str(self.platform)
        out["kind"] = self.kind.to_raw()
        if self.if_exists is not None:
            out["if-exists"] = self.if_exists
        if self.commands:
            out["commands"] = {str(a): c for a, c in self.commands.items()}
        if self.update_self is not None:
            out["update-self"] = self.update_self
        return out


class InstallerRegistry:
    """
    Installers usable on this machine, indexed by (platform, package kind).

    Installers for another platform, or whose `if-exists` path is missing, are dropped
    when the registry is built. An installer with no platform is keyed under the
    current platform.
    """

    def __init__(self, installers: Iterable[Installer], logger: logging.Logger) -> None:
        self._logger = logger
        by_key: dict[RegistryKey, Installer] = {}
        for installer in installers:
            key = installer.key
            other = by_key.get(key)
            if other is not None:
                logger.warning(
                    "Duplicate installer for %s/%s: %s replaces %s",
                    key[0],
                    key[1],
                    installer.name,
                    other.name,
                )
            by_key[key] = installer
        self._by_key = by_key

    @classmethod
    def from_list(cls, raw: Any, logger: logging.Logger, *, path: Path | None = None) -> "InstallerRegistry":
        if raw is None:
            raw = []
        if not isinstance(raw, list):
            raise ConfigError("installer registry must be a list of installers", path=path, value=type(raw).__name__)
        installers = [Installer.from_dict(item, path=path) for item in raw]
        logger.debug("read %d installers", len(installers))

        keep: list[Installer] = []
        for installer in installers:
            if not installer.is_platform_match():
                logger.info("discarding installer %s, not for platform %s", installer.name, current_platform())
            elif not installer.if_exists_match():
                logger.info("discarding installer %s, %s does not exist", installer.name, installer.if_exists)
            else:
                keep.append(installer)
        return cls(keep, logger)

    @classmethod
    def load(cls, path: Path, logger: logging.Logger) -> "InstallerRegistry":
        logger.info("loading installers from %s", path)
        return cls.from_list(load_yaml_file(path), logger, path=path)

    def __len__(self) -> int:
        return len(self._by_key)

    def is_empty(self) -> bool:
        return not self._by_key

    def installers(self) -> Iterator[Installer]:
        return iter(self._by_key.values())

    @property
    def registered_keys(self) -> list[str]:
        return sorted(f"{p}/{k}" for (p, k) in self._by_key.keys())

    def installer_for(self, platform: Platform, kind: PackageKind) -> Installer | None:
        return self._by_key.get((platform, kind))

    def update_self(self, ctx: "Context") -> int:
        """Run the `update-self` command of every installer that has one; returns how many ran."""
        variables = add_action_vars(InstallAction.UPDATE, default_vars(ctx.paths, ctx.logger))
        count = 0
        for installer in sorted(self.installers(), key=lambda i: str(i.name)):
            if installer.update_self is None:
                self._logger.debug("installer %s has no update-self command", installer.name)
                continue
            ctx.reporter.report(f"Updating installer {installer.name}")
            ctx.shell(variables).execute(installer.update_self)
            count += 1
        return count



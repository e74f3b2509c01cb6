from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Iterator, Literal, Mapping

from machinecfg.config_loader import (
    load_yaml_file,
    optional_str,
    reject_unknown_fields,
    require_bool,
    require_str_map,
    require_table,
)
from machinecfg.errors import ConfigError
from machinecfg.kinds import (
    InstallAction,
    Name,
    PackageKind,
    Platform,
    current_platform,
    is_current_platform,
)

PACKAGE_SET_FILE = "package-set.yml"
PACKAGE_SET_SUFFIXES = {".yml", ".yaml"}

_ORDER_PREFIX_RE = re.compile(r"^\d+[-_.]?")

_PACKAGE_FIELDS = {"name", "platform", "kind"}
_PACKAGE_SET_FIELDS = {
    "name",
    "description",
    "platform",
    "optional",
    "env-vars",
    "run-before",
    "actions",
    "env-file",
    "link-files",
    "run-after",
}


@dataclass(frozen=True)
class Package:
    name: Name
    platform: Platform | None = None
    kind: PackageKind = field(default_factory=PackageKind.default)

    def resolved_platform(self) -> Platform:
        return self.platform if self.platform is not None else current_platform()

    def is_platform_match(self) -> bool:
        return is_current_platform(self.platform)

    @classmethod
    def from_dict(cls, raw: Any, *, path: Path | None = None) -> "Package":
        table = require_table(raw, what="package", path=path)
        reject_unknown_fields(table, _PACKAGE_FIELDS, what="package", path=path)
        try:
            name = Name(table.get("name"))
            platform = Platform.parse(table["platform"]) if table.get("platform") is not None else None
            kind = PackageKind.parse(table.get("kind"))
        except ConfigError as e:
            raise e.located(path)
        return cls(name=name, platform=platform, kind=kind)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": str(self.name)}
        if self.platform is not None:
            out["platform"] = str(self.platform)
        if self.kind != PackageKind.default():
            out["kind"] = self.kind.to_raw()
        return out


@dataclass(frozen=True)
class PackageActions:
    tag: ClassVar[Literal["packages"]] = "packages"
    packages: tuple[Package, ...]


@dataclass(frozen=True)
class ScriptActions:
    tag: ClassVar[Literal["scripts"]] = "scripts"
    scripts: Mapping[InstallAction, str]


Actions = PackageActions | ScriptActions


def _parse_actions(raw: Any, *, path: Path) -> Actions | None:
    if raw is None:
        return None
    table = require_table(raw, what="actions", path=path)
    reject_unknown_fields(table, {"packages", "scripts"}, what="actions", path=path)
    if len(table) != 1:
        raise ConfigError(
            "'actions' must contain exactly one of 'packages' or 'scripts'",
            path=path,
            field="actions",
            value=sorted(table.keys()),
        )
    if "packages" in table:
        items = table["packages"]
        if not isinstance(items, list):
            raise ConfigError("'actions.packages' must be a list", path=path, field="actions.packages", value=items)
        return PackageActions(tuple(Package.from_dict(p, path=path) for p in items))

    scripts = require_str_map(table["scripts"], what="actions.scripts", path=path)
    parsed: dict[InstallAction, str] = {}
    for action, cmd in scripts.items():
        try:
            parsed[InstallAction.parse(action, what="actions.scripts")] = cmd
        except ConfigError as e:
            raise e.located(path)
    return ScriptActions(parsed)


@dataclass(frozen=True)
class PackageSet:
    path: Path
    name: Name
    description: str | None = None
    platform: Platform | None = None
    optional: bool = False
    env_vars: Mapping[str, str] = field(default_factory=dict)
    run_before: str | None = None
    actions: Actions | None = None
    env_file: str | None = None
    link_files: Mapping[str, str] = field(default_factory=dict)
    run_after: str | None = None

    @property
    def directory(self) -> Path:
        return self.path.parent

    def has_actions(self) -> bool:
        return self.actions is not None

    def packages(self) -> tuple[Package, ...] | None:
        if isinstance(self.actions, PackageActions):
            return self.actions.packages
        return None

    def scripts(self) -> Mapping[InstallAction, str] | None:
        if isinstance(self.actions, ScriptActions):
            return self.actions.scripts
        return None

    def is_platform_match(self) -> bool:
        return is_current_platform(self.platform)

    def env_file_path(self) -> Path | None:
        if self.env_file is None:
            return None
        return self.directory / self.env_file

    @classmethod
    def from_dict(cls, raw: Any, *, path: Path) -> "PackageSet":
        table = require_table(raw, what="package set", path=path)
        reject_unknown_fields(table, _PACKAGE_SET_FIELDS, what="package set", path=path)
        try:
            name = Name(table.get("name"))
            platform = Platform.parse(table["platform"]) if table.get("platform") is not None else None
        except ConfigError as e:
            raise e.located(path)
        optional = table.get("optional", False)
        return cls(
            path=path,
            name=name,
            description=optional_str(table.get("description"), what="description", path=path),
            platform=platform,
            optional=require_bool(optional, what="optional", path=path),
            env_vars=require_str_map(table.get("env-vars"), what="env-vars", path=path),
            run_before=optional_str(table.get("run-before"), what="run-before", path=path),
            actions=_parse_actions(table.get("actions"), path=path),
            env_file=optional_str(table.get("env-file"), what="env-file", path=path),
            link_files=require_str_map(table.get("link-files"), what="link-files", path=path),
            run_after=optional_str(table.get("run-after"), what="run-after", path=path),
        )

    @classmethod
    def read(cls, path: Path, logger: logging.Logger) -> "PackageSet":
        logger.debug("reading package set file %s", path)
        return cls.from_dict(load_yaml_file(path), path=path)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": str(self.name)}
        if self.description is not None:
            out["description"] = self.description
        if self.platform is not None:
            out["platform"] = str(self.platform)
        if self.optional:
            out["optional"] = True
        if self.env_vars:
            out["env-vars"] = dict(self.env_vars)
        if self.run_before is not None:
            out["run-before"] = self.run_before
        if isinstance(self.actions, PackageActions):
            out["actions"] = {"packages": [p.to_dict() for p in self.actions.packages]}
        elif isinstance(self.actions, ScriptActions):
            out["actions"] = {"scripts": {str(a): c for a, c in self.actions.scripts.items()}}
        if self.env_file is not None:
            out["env-file"] = self.env_file
        if self.link_files:
            out["link-files"] = dict(self.link_files)
        if self.run_after is not None:
            out["run-after"] = self.run_after
        return out


def display_name(group_name: str) -> str:
    return _ORDER_PREFIX_RE.sub("", group_name).replace("-", " ")


@dataclass(frozen=True)
class PackageSetGroup:
    path: Path
    name: Name
    package_sets: tuple[PackageSet, ...] = ()

    @property
    def display_name(self) -> str:
        return display_name(self.name)

    def package_set(self, name: str) -> PackageSet | None:
        for ps in self.package_sets:
            if ps.name == name:
                return ps
        return None

    @classmethod
    def read(cls, path: Path, logger: logging.Logger) -> "PackageSetGroup":
        logger.debug("reading package set group %s", path)
        try:
            name = Name(path.name)
        except ConfigError as e:
            raise e.located(path)

        sets: list[PackageSet] = []
        for entry in sorted(path.iterdir()):
            # A "*.yml" file directly in the group, or a directory holding "package-set.yml".
            if entry.is_file() and entry.suffix.lower() in PACKAGE_SET_SUFFIXES:
                sets.append(PackageSet.read(entry, logger))
            elif entry.is_dir() and (entry / PACKAGE_SET_FILE).is_file():
                sets.append(PackageSet.read(entry / PACKAGE_SET_FILE, logger))
            else:
                logger.debug("ignoring %s", entry)
        sets.sort(key=lambda ps: str(ps.name))
        return cls(path=path, name=name, package_sets=tuple(sets))


@dataclass(frozen=True)
class PackageRepository:
    path: Path
    groups: tuple[PackageSetGroup, ...] = ()

    def is_empty(self) -> bool:
        return not self.groups

    def group(self, name: str) -> PackageSetGroup | None:
        for g in self.groups:
            if g.name == name:
                return g
        return None

    def has_group(self, name: str) -> bool:
        return self.group(name) is not None

    def package_sets(self) -> Iterator[tuple[PackageSetGroup, PackageSet]]:
        for g in self.groups:
            for ps in g.package_sets:
                yield g, ps

    @classmethod
    def open(cls, root: Path, logger: logging.Logger) -> "PackageRepository":
        logger.info("reading package repository %s", root)
        if not root.is_dir():
            raise ConfigError("package repository directory not found", path=root)
        groups: list[PackageSetGroup] = []
        for entry in sorted(root.iterdir()):
            if not entry.is_dir():
                continue
            if entry.name.startswith("."):
                logger.debug("ignoring hidden directory %s", entry)
                continue
            groups.append(PackageSetGroup.read(entry, logger))
        groups.sort(key=lambda g: str(g.name))
        return cls(path=root, groups=tuple(groups))

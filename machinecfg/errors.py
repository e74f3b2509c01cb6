from __future__ import annotations

from pathlib import Path
from typing import Any


class MachineCfgError(Exception):
    """Base class for every error reported by machinecfg."""


class ConfigError(MachineCfgError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        field: str | None = None,
        value: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.field = field
        self.value = value

    def located(self, path: Path | None) -> "ConfigError":
        if self.path is None:
            self.path = path
        return self

    def __str__(self) -> str:
        parts = []
        if self.path is not None:
            parts.append(f"{self.path}: ")
        parts.append(self.message)
        if self.field is not None:
            parts.append(f" (field {self.field!r}, value {self.value!r})")
        return "".join(parts)


class InvalidNameError(ConfigError):
    def __init__(self, value: Any) -> None:
        super().__init__(
            "invalid name, expected a non-empty string of letters, digits or '.+-_@/'",
            field="name",
            value=value,
        )


class NoInstallerForKindError(MachineCfgError, LookupError):
    def __init__(self, platform: Any, kind: Any, *, package: str | None = None) -> None:
        self.platform = platform
        self.kind = kind
        self.package = package
        msg = f"No installer found for platform '{platform}' and package kind '{kind}'"
        if package is not None:
            msg += f" (package {package!r})"
        super().__init__(msg)


class WrongInstallerForKindError(MachineCfgError, RuntimeError):
    def __init__(self, installer: str, installer_kind: Any, package_kind: Any) -> None:
        self.installer = installer
        self.installer_kind = installer_kind
        self.package_kind = package_kind
        super().__init__(
            f"Installer {installer!r} handles kind '{installer_kind}', "
            f"not package kind '{package_kind}'"
        )


class CommandExecutionError(MachineCfgError, RuntimeError):
    def __init__(self, program: str, status: int | None, command: str) -> None:
        self.program = program
        self.status = status
        self.command = command
        if status is None:
            msg = f"Command execution failed, could not launch {program!r}: {command}"
        else:
            msg = f"Command execution failed ({program} exited {status}): {command}"
        super().__init__(msg)


class LinkError(MachineCfgError, RuntimeError):
    def __init__(self, message: str, *, link: Path, source: Path | None = None) -> None:
        self.link = link
        self.source = source
        super().__init__(message)


class HistoryLogError(MachineCfgError, RuntimeError):
    pass

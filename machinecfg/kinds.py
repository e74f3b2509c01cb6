from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any

from machinecfg.errors import ConfigError, InvalidNameError

_NAME_RE = re.compile(r"[A-Za-z0-9.+\-_@/]+")


class Name(str):
    """
    A validated identifier used for package, package set, group and installer names.

    Letters, digits and `. + - _ @ /` only, so names such as `python@3.9` or
    `homebrew/cask/firefox` are accepted while empty or whitespace names are not.
    """

    def __new__(cls, value: Any) -> "Name":
        if not cls.is_valid(value):
            raise InvalidNameError(value)
        return super().__new__(cls, value)

    @staticmethod
    def is_valid(value: Any) -> bool:
        return isinstance(value, str) and _NAME_RE.fullmatch(value) is not None


class Platform(str, Enum):
    MACOS = "macos"
    LINUX = "linux"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any, *, what: str = "platform") -> "Platform":
        try:
            return cls(value)
        except ValueError:
            known = ", ".join(p.value for p in cls)
            raise ConfigError(f"unknown platform (expected one of: {known})", field=what, value=value) from None

    def is_match(self, other: "Platform | None") -> bool:
        # No explicit constraint means "the current platform", not "every platform".
        return self == (other if other is not None else current_platform())


def _detect_platform() -> Platform:
    if sys.platform == "darwin":
        return Platform.MACOS
    return Platform.LINUX


CURRENT_PLATFORM: Platform = _detect_platform()


def current_platform() -> Platform:
    return CURRENT_PLATFORM


def is_current_platform(platform: Platform | None) -> bool:
    return current_platform().is_match(platform)


@dataclass(frozen=True)
class PackageKind:
    kind: str  # default|application|language
    language: Name | None = None

    def __post_init__(self) -> None:
        if self.kind not in {"default", "application", "language"}:
            raise ConfigError("unknown package kind", field="kind", value=self.kind)
        if (self.kind == "language") != (self.language is not None):
            raise ConfigError("only language kinds carry a language name", field="kind", value=self.kind)

    @classmethod
    def default(cls) -> "PackageKind":
        return cls("default")

    @classmethod
    def application(cls) -> "PackageKind":
        return cls("application")

    @classmethod
    def for_language(cls, language: str) -> "PackageKind":
        return cls("language", Name(language))

    @classmethod
    def parse(cls, value: Any) -> "PackageKind":
        # Accepts `default`, `application`, `{language: ruby}` and the `language:ruby` shorthand.
        if value is None:
            return cls.default()
        if isinstance(value, str):
            if value in {"default", "application"}:
                return cls(value)
            if value.startswith("language:"):
                return cls.for_language(value.split(":", 1)[1])
        if isinstance(value, dict) and set(value.keys()) == {"language"}:
            return cls.for_language(value["language"])
        raise ConfigError(
            "kind must be 'default', 'application' or {language: <name>}",
            field="kind",
            value=value,
        )

    def to_raw(self) -> Any:
        if self.language is not None:
            return {"language": str(self.language)}
        return self.kind

    def __str__(self) -> str:
        if self.language is not None:
            return f"language:{self.language}"
        return self.kind


class InstallAction(str, Enum):
    INSTALL = "install"
    UPDATE = "update"
    UNINSTALL = "uninstall"
    LINK_FILES = "link-files"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any, *, what: str = "action") -> "InstallAction":
        try:
            return cls(value)
        except ValueError:
            known = ", ".join(a.value for a in cls)
            raise ConfigError(f"unknown action (expected one of: {known})", field=what, value=value) from None

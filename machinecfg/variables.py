"""
Layered template variables.

Each layer copies the previous one and adds to it:

    default -> action -> package set (+ its env-vars) -> package

Templates reference variables as `{{name}}`; names are letters, digits, `-`, `_`
and `:`. The same variables are handed to commands as environment variables named
`MACHINECFG_<NAME>`.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Mapping

from platformdirs import user_config_dir, user_data_dir, user_downloads_dir, user_log_dir

from machinecfg import ENV_PREFIX
from machinecfg.kinds import InstallAction, current_platform
from machinecfg.paths import MachinePaths
from machinecfg.util import default_shell

if TYPE_CHECKING:
    from machinecfg.packages import Package, PackageSet

Variables = dict[str, str]

VARIABLE_RE = re.compile(r"\{\{([A-Za-z0-9\-_:]+)\}\}")

PACKAGE_NAME = "package_name"


def substitute(template: str, variables: Mapping[str, str], logger: logging.Logger) -> str:
    def _replace(m: re.Match[str]) -> str:
        name = m.group(1)
        value = variables.get(name)
        if value is None:
            logger.warning("No variable named %r in replacements, using the bare name", name)
            return name
        return value

    return VARIABLE_RE.sub(_replace, template)


def _platform_os() -> str:
    if sys.platform == "darwin":
        return "macos"
    return sys.platform.rstrip("0123456789")


def default_vars(paths: MachinePaths, logger: logging.Logger) -> Variables:
    replacements: Variables = {
        "home": str(Path.home()),
        "command_log_level": logging.getLevelName(logger.getEffectiveLevel()).lower(),
        "command_shell": default_shell(),
        "local_download_path": user_downloads_dir(),
        "platform": str(current_platform()),
        "platform_family": "unix" if os.name == "posix" else os.name,
        "platform_os": _platform_os(),
        "platform_arch": platform.machine(),
        "repo_config_path": str(paths.repo_config_path),
        "repo_local_path": str(paths.repo_local_path),
    }
    logger.debug("default vars: %r", replacements)
    return replacements


def add_action_vars(action: InstallAction, variables: Mapping[str, str]) -> Variables:
    replacements = dict(variables)
    replacements["command_action"] = str(action)
    return replacements


def add_other_vars(
    variables: Mapping[str, str],
    other: Mapping[str, str],
    logger: logging.Logger,
) -> Variables:
    # Keys and values may themselves use earlier variables, including earlier entries of `other`.
    replacements = dict(variables)
    for key, value in other.items():
        replacements[substitute(key, replacements, logger)] = substitute(value, replacements, logger)
    return replacements


def add_package_set_vars(
    package_set: "PackageSet",
    variables: Mapping[str, str],
    logger: logging.Logger,
) -> Variables:
    replacements = dict(variables)
    replacements["package_set_name"] = str(package_set.name)
    replacements["package_set_file"] = package_set.path.name
    replacements["package_set_path"] = str(package_set.path.parent)
    replacements = add_other_vars(replacements, package_set.env_vars, logger)
    logger.debug("package set vars (%s): %r", package_set.name, replacements)
    return replacements


def add_package_vars(package: "Package", variables: Mapping[str, str]) -> Variables:
    replacements = dict(variables)
    name = str(package.name)
    replacements[PACKAGE_NAME] = name
    replacements["package_config_path"] = user_config_dir(name, appauthor=False)
    replacements["package_data_local_path"] = user_data_dir(name, appauthor=False)
    replacements["package_log_path"] = user_log_dir(name, appauthor=False)
    return replacements


def vars_to_env(
    variables: Mapping[str, str],
    *,
    local_bin: Path | None = None,
    base_path: str | None = None,
) -> dict[str, str]:
    env = {f"{ENV_PREFIX}_{k.upper()}": v for k, v in variables.items()}
    if local_bin is not None:
        current = os.environ.get("PATH", "") if base_path is None else base_path
        env["PATH"] = f"{current}{os.pathsep}{local_bin}" if current else str(local_bin)
    return env

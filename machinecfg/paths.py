"""
Per-user locations for the installer registry, the history log and the package repository.

Defaults come from `platformdirs`; each root can be moved with an environment
variable (MACHINECFG_CONFIG_DIR, MACHINECFG_LOG_DIR, MACHINECFG_DATA_DIR).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

from platformdirs import PlatformDirs

from machinecfg import APP_NAME, ENV_PREFIX

INSTALLERS_FILE = "installers.yml"
HISTORY_FILE = "install-log.sqlite"
REPOSITORY_DIR = "repository"

# Sub-directories of the repository reserved for machinecfg itself.
REPO_CONFIG_DIR = ".config"
REPO_LOCAL_DIR = ".local"


def _override(env: Mapping[str, str], name: str) -> Path | None:
    value = env.get(f"{ENV_PREFIX}_{name}")
    if not value:
        return None
    return Path(value).expanduser()


@dataclass(frozen=True)
class MachinePaths:
    repository_path: Path
    installers_file: Path
    history_file: Path

    @classmethod
    def default(cls, env: Mapping[str, str] | None = None) -> "MachinePaths":
        env = os.environ if env is None else env
        dirs = PlatformDirs(appname=APP_NAME, appauthor=False)
        config = _override(env, "CONFIG_DIR") or Path(dirs.user_config_dir)
        log = _override(env, "LOG_DIR") or Path(dirs.user_log_dir)
        data = _override(env, "DATA_DIR") or Path(dirs.user_data_dir)
        return cls(
            repository_path=data / REPOSITORY_DIR,
            installers_file=config / INSTALLERS_FILE,
            history_file=log / HISTORY_FILE,
        )

    @classmethod
    def under(cls, root: Path) -> "MachinePaths":
        """All locations below one directory, as laid out by default on disk."""
        return cls(
            repository_path=root / "data" / REPOSITORY_DIR,
            installers_file=root / "config" / INSTALLERS_FILE,
            history_file=root / "logs" / HISTORY_FILE,
        )

    @property
    def repo_config_path(self) -> Path:
        return self.repository_path / REPO_CONFIG_DIR

    @property
    def repo_local_path(self) -> Path:
        return self.repository_path / REPO_LOCAL_DIR

    @property
    def repo_local_bin_path(self) -> Path:
        return self.repo_local_path / "bin"

    def with_overrides(
        self,
        *,
        repository: Path | None = None,
        installers_file: Path | None = None,
        history_file: Path | None = None,
    ) -> "MachinePaths":
        changes: dict[str, Path] = {}
        if repository is not None:
            changes["repository_path"] = repository
        if installers_file is not None:
            changes["installers_file"] = installers_file
        if history_file is not None:
            changes["history_file"] = history_file
        return replace(self, **changes)

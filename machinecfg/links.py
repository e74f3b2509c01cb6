from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from machinecfg.errors import LinkError
from machinecfg.reporter import Reporter
from machinecfg.util import abspath_no_resolve


def _symlink_points_to(link: Path) -> Path | None:
    # Returns the absolute (but non-resolved) path the symlink points to.
    try:
        raw = os.readlink(link)
    except OSError:
        return None
    target = Path(raw)
    if not target.is_absolute():
        target = link.parent / target
    return abspath_no_resolve(target)


def _existing_state(link: Path) -> str:
    if link.is_symlink():
        try:
            raw = os.readlink(link)
        except OSError:
            raw = "<unreadable>"
        return f"{link} -> {raw} (resolves to {link.resolve(strict=False)})"
    if link.is_dir():
        return f"{link} (directory)"
    if link.exists():
        return f"{link} (file)"
    return f"{link} (missing)"


@dataclass(frozen=True)
class LinkManager:
    logger: logging.Logger
    reporter: Reporter
    conflict: str = "fail"  # fail|skip|replace
    dry_run: bool = False

    def _already_linked(self, link: Path, source: Path) -> bool:
        if not link.is_symlink():
            return False
        current = _symlink_points_to(link)
        if current is not None and current == abspath_no_resolve(source):
            return True
        return link.resolve(strict=False) == source.resolve(strict=False)

    def _create(self, link: Path, source: Path) -> None:
        if self.dry_run:
            self.reporter.report(f"Would link {link} -> {source}")
            return
        link.parent.mkdir(parents=True, exist_ok=True)
        try:
            link.symlink_to(source)
        except OSError as e:
            raise LinkError(f"Could not create link {link} -> {source}: {e}", link=link, source=source) from e
        self.reporter.report(f"Linked {link} -> {source}")

    def link(self, link: Path, source: Path) -> None:
        self.logger.debug("link %s -> %s", link, source)
        if not source.exists():
            raise LinkError(f"Link source does not exist: {source}", link=link, source=source)

        if self._already_linked(link, source):
            self.logger.info("link %s already points to %s", link, source)
            return

        if not link.exists() and not link.is_symlink():
            self._create(link, source)
            return

        existing = _existing_state(link)
        if self.conflict == "skip":
            self.logger.warning("Link conflict, skipping.")
            self.logger.warning("Existing: %s", existing)
            self.logger.warning("Desired:  %s -> %s", link, source)
            return
        if self.conflict == "replace":
            if link.is_dir() and not link.is_symlink():
                raise LinkError(f"Refusing to replace directory {link} with a link", link=link, source=source)
            if not self.dry_run:
                link.unlink()
            self.logger.info("replacing %s", existing)
            self._create(link, source)
            return
        raise LinkError(f"Link target already exists: {existing}", link=link, source=source)

    def unlink(self, link: Path) -> None:
        self.logger.debug("unlink %s", link)
        if link.is_symlink():
            if self.dry_run:
                self.reporter.report(f"Would remove link {link}")
                return
            link.unlink()
            self.reporter.report(f"Removed link {link}")
            return
        if link.exists():
            raise LinkError(f"Not removing {link}, it is not a symbolic link", link=link)
        self.logger.debug("link %s does not exist, nothing to remove", link)

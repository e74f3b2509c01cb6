from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from machinecfg.errors import HistoryLogError

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS installed (
    date_time TEXT NOT NULL,
    package_set_group TEXT NOT NULL,
    package_set TEXT NOT NULL,
    package TEXT NOT NULL,
    installer TEXT NOT NULL
)
"""

_INSERT = (
    "INSERT INTO installed (date_time, package_set_group, package_set, package, installer) "
    "VALUES (?, ?, ?, ?, ?)"
)

_SELECT = (
    "SELECT date_time, package_set_group, package_set, package, installer "
    "FROM installed ORDER BY rowid DESC"
)


@dataclass(frozen=True)
class InstalledPackage:
    date_time: datetime
    group: str
    package_set: str
    package: str
    installer: str

    @classmethod
    def now(cls, *, group: str, package_set: str, package: str, installer: str) -> "InstalledPackage":
        return cls(
            date_time=datetime.now(timezone.utc),
            group=group,
            package_set=package_set,
            package=package,
            installer=installer,
        )

    @property
    def date_time_str(self) -> str:
        return self.date_time.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


class PackageLog:
    """
    Append-only record of package actions that completed successfully.

    The database file is created on the first `log()`; reading a log that was never
    written to returns no rows.
    """

    def __init__(self, path: Path, logger: logging.Logger) -> None:
        self._path = path
        self._logger = logger
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> Path:
        return self._path

    def __enter__(self) -> "PackageLog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connect(self, *, create: bool) -> sqlite3.Connection | None:
        if self._conn is not None:
            return self._conn
        if not self._path.is_file():
            if not create:
                return None
            self._logger.debug("creating install log %s", self._path)
            self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(self._path))
            conn.execute(_CREATE_TABLE)
            conn.commit()
        except sqlite3.Error as e:
            raise HistoryLogError(f"Failed to open install log {self._path}: {e}") from e
        self._conn = conn
        return conn

    def log(self, record: InstalledPackage) -> None:
        conn = self._connect(create=True)
        self._logger.debug(
            "logging %s/%s/%s via %s", record.group, record.package_set, record.package, record.installer
        )
        try:
            conn.execute(
                _INSERT,
                (
                    record.date_time.isoformat(),
                    record.group,
                    record.package_set,
                    record.package,
                    record.installer,
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise HistoryLogError(f"Failed to write install log {self._path}: {e}") from e

    def history(self, limit: int = 0) -> list[InstalledPackage]:
        """Most recent first; `limit` of 0 means every record."""
        if limit < 0:
            raise ValueError("limit must not be negative")
        return list(self._iter_history(limit))

    def _iter_history(self, limit: int) -> Iterator[InstalledPackage]:
        conn = self._connect(create=False)
        if conn is None:
            return
        sql = _SELECT
        params: tuple[int, ...] = ()
        if limit > 0:
            sql += " LIMIT ?"
            params = (limit,)
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise HistoryLogError(f"Failed to read install log {self._path}: {e}") from e
        for date_time, group, package_set, package, installer in rows:
            yield InstalledPackage(
                date_time=datetime.fromisoformat(date_time),
                group=group,
                package_set=package_set,
                package=package,
                installer=installer,
            )

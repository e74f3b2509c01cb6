from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import yaml

from machinecfg.errors import ConfigError


def require_table(value: Any, *, what: str, path: Path | None = None) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"'{what}' must be a mapping", path=path, field=what, value=value)
    return value


def require_str(value: Any, *, what: str, path: Path | None = None) -> str:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"'{what}' must be a non-empty string", path=path, field=what, value=value)
    return value


def optional_str(value: Any, *, what: str, path: Path | None = None) -> str | None:
    if value is None:
        return None
    return require_str(value, what=what, path=path)


def require_bool(value: Any, *, what: str, path: Path | None = None) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"'{what}' must be a boolean if present", path=path, field=what, value=value)
    return value


def require_str_map(value: Any, *, what: str, path: Path | None = None) -> dict[str, str]:
    if value is None:
        return {}
    table = require_table(value, what=what, path=path)
    out: dict[str, str] = {}
    for k, v in table.items():
        if not isinstance(k, str) or not k:
            raise ConfigError(f"'{what}' keys must be non-empty strings", path=path, field=what, value=k)
        # YAML happily reads `port: 8080` as an int; template values are always strings.
        if isinstance(v, bool) or not isinstance(v, (str, int, float)):
            raise ConfigError(f"'{what}.{k}' must be a string", path=path, field=f"{what}.{k}", value=v)
        out[k] = str(v)
    return out


def reject_unknown_fields(
    table: dict[str, Any],
    allowed: Iterable[str],
    *,
    what: str,
    path: Path | None = None,
) -> None:
    extra = set(table.keys()) - set(allowed)
    if extra:
        names = ", ".join(sorted(str(k) for k in extra))
        raise ConfigError(f"unknown field(s) in {what}: {names}", path=path, field=what, value=names)


def load_yaml_file(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ConfigError(f"not a UTF-8 text file: {e}", path=path) from e
    except OSError as e:
        raise ConfigError(f"cannot read file: {e.strerror or e}", path=path) from e
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is not None and hasattr(mark, "line") and hasattr(mark, "column"):
            line = int(mark.line) + 1
            col = int(mark.column) + 1
            raise ConfigError(f"invalid YAML at line {line}, column {col}: {e}", path=path) from e
        raise ConfigError(f"invalid YAML: {e}", path=path) from e


def dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)

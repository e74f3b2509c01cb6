from __future__ import annotations

import argparse
import logging
from pathlib import Path

from machinecfg import APP_NAME, __version__
from machinecfg.config_loader import dump_yaml
from machinecfg.core import LINK_CONFLICT_MODES, Context, Options, build_context
from machinecfg.errors import ConfigError, MachineCfgError
from machinecfg.history import PackageLog
from machinecfg.installers import InstallerRegistry
from machinecfg.kinds import InstallAction
from machinecfg.orchestrator import execute_action
from machinecfg.packages import PackageRepository
from machinecfg.paths import MachinePaths


def _setup_logger(verbosity: int) -> logging.Logger:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logger = logging.getLogger(APP_NAME)
    logger.setLevel(level)
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.handlers[:] = [handler]
    logger.propagate = False
    return logger


def _cmd_action(ctx: Context, args: argparse.Namespace) -> int:
    execute_action(ctx, InstallAction(args.command), group=args.group, package_set=args.set)
    return 0


def _cmd_update_self(ctx: Context, args: argparse.Namespace) -> int:
    registry = InstallerRegistry.load(ctx.paths.installers_file, ctx.logger)
    count = registry.update_self(ctx)
    ctx.reporter.report(f"Updated {count} installer(s).")
    return 0


def _cmd_list(ctx: Context, args: argparse.Namespace) -> int:
    repository = PackageRepository.open(ctx.paths.repository_path, ctx.logger)
    if repository.is_empty():
        ctx.reporter.report("No package sets found in repository")
        return 0
    if args.group is not None and not repository.has_group(args.group):
        ctx.logger.warning("No package set group found named %r", args.group)
        return 0
    shown = None
    for group, ps in repository.package_sets():
        if args.group is not None and group.name != args.group:
            continue
        if group is not shown:
            ctx.reporter.report(f"{group.display_name} ({group.name})")
            shown = group
        line = f"  - {ps.name}"
        if ps.description:
            line += f": {ps.description}"
        if ps.optional:
            line += " [optional]"
        if not ps.has_actions():
            line += " [no actions]"
        ctx.reporter.report(line)
    return 0


def _cmd_history(ctx: Context, args: argparse.Namespace) -> int:
    with PackageLog(ctx.paths.history_file, ctx.logger) as log:
        records = log.history(limit=args.limit)
    if not records:
        ctx.reporter.report("No install history.")
        return 0
    for r in records:
        ctx.reporter.report(f"{r.date_time_str}  {r.group}/{r.package_set}/{r.package}  ({r.installer})")
    return 0


def _paths_dict(paths: MachinePaths) -> dict[str, str]:
    return {
        "repository": str(paths.repository_path),
        "installers": str(paths.installers_file),
        "history": str(paths.history_file),
    }


def _cmd_paths(ctx: Context, args: argparse.Namespace) -> int:
    for key, value in _paths_dict(ctx.paths).items():
        ctx.reporter.report(f"{key}: {value}")
    return 0


def _cmd_config(ctx: Context, args: argparse.Namespace) -> int:
    registry = InstallerRegistry.load(ctx.paths.installers_file, ctx.logger)
    ctx.logger.info("%d installer(s) usable on this machine", len(registry))
    data = {
        "paths": _paths_dict(ctx.paths),
        "registered": registry.registered_keys,
        "installers": [i.to_dict() for i in sorted(registry.installers(), key=lambda i: str(i.name))],
    }
    ctx.reporter.report(dump_yaml(data).rstrip("\n"))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_NAME, description="Cross-platform meta package-manager.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="More logging; repeat for debug output (which includes command stdout).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log commands and links but do not change the system.",
    )
    parser.add_argument(
        "--link-conflict",
        choices=list(LINK_CONFLICT_MODES),
        default="fail",
        help="What to do when a link target already exists and isn't the expected link.",
    )
    parser.add_argument("--repository", type=Path, help="Package repository directory.")
    parser.add_argument("--installers", type=Path, help="Installer registry file (YAML).")
    parser.add_argument("--history-file", type=Path, help="Install history database (sqlite).")

    sub = parser.add_subparsers(dest="command", metavar="<command>", required=True)

    for action in InstallAction:
        p = sub.add_parser(str(action), help=f"Run '{action}' for package sets in the repository.")
        p.add_argument("-g", "--group", help="Only this package set group.")
        p.add_argument("-s", "--set", help="Only this package set (requires --group).")
        p.set_defaults(func=_cmd_action)

    p = sub.add_parser("update-self", help="Update the installers themselves.")
    p.set_defaults(func=_cmd_update_self)

    p = sub.add_parser("list", help="List package set groups and their package sets.")
    p.add_argument("-g", "--group", help="Only this package set group.")
    p.set_defaults(func=_cmd_list)

    p = sub.add_parser("history", help="Show the install history, most recent first.")
    p.add_argument("-n", "--limit", type=int, default=0, help="Show at most N records (0 for all).")
    p.set_defaults(func=_cmd_history)

    p = sub.add_parser("paths", help="Show the repository, installer registry and history locations.")
    p.set_defaults(func=_cmd_paths)

    p = sub.add_parser("config", help="Dump locations and the installers usable on this machine as YAML.")
    p.set_defaults(func=_cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "set", None) is not None and args.group is None:
        parser.error("--set requires --group")
    if getattr(args, "limit", 0) < 0:
        parser.error("--limit must not be negative")

    logger = _setup_logger(args.verbose)

    paths = MachinePaths.default().with_overrides(
        repository=args.repository,
        installers_file=args.installers,
        history_file=args.history_file,
    )
    options = Options(dry_run=bool(args.dry_run), link_conflict=args.link_conflict)
    ctx = build_context(paths=paths, options=options, logger=logger, interactive=True)

    try:
        return args.func(ctx, args)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2
    except MachineCfgError as e:
        logger.error("%s", e)
        return 1

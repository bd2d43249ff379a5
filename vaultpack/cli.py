"""Command line interface for composing vault packages."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Dict, Iterable, List
import os
import sys

from .compose import ComposeTask
from .config import WorkspaceConfig
from .core.config_loader import find_config_file, resolve_config_paths
from .core.console import Console
from .errors import ComposeError
from .units import UnitNotFoundError


DEFAULT_CONFIG_NAMES = ("vaultpack.toml", "vaultpack.yaml", "vaultpack.yml", "vaultpack.json")


def _resolve_config_files(workspace: Path, cli_values: Iterable[str]) -> List[Path]:
    files = resolve_config_paths(workspace, cli_values)
    if files:
        return files
    found = find_config_file(workspace, DEFAULT_CONFIG_NAMES)
    return [found] if found is not None else []


def _parse_properties(values: Iterable[str]) -> Dict[str, str]:
    properties: Dict[str, str] = {}
    for raw in values:
        key, separator, value = raw.partition("=")
        key = key.strip()
        if not separator or not key:
            raise ValueError(f"Property '{raw}' must use the form KEY=VALUE")
        properties[key] = value
    return properties


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="vaultpack", description="Compose vault packages from build units")
    parser.add_argument(
        "-c",
        "--config",
        dest="config_files",
        action="append",
        default=[],
        metavar="FILE",
        help="Configuration file (repeat to merge several, later files win)",
    )
    parser.add_argument(
        "-w",
        "--workspace",
        help="Workspace root used to resolve relative unit directories (default: current directory)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compose_parser = subparsers.add_parser("compose", help="Compose the package archive of a unit")
    tasks_parser = subparsers.add_parser("tasks", help="List unit tasks that must run before composing")
    for sub in (compose_parser, tasks_parser):
        sub.add_argument("unit", nargs="?", default=":", help="Path of the composing unit (default: root)")
        sub.add_argument("-i", "--include", action="append", default=[], metavar="UNIT", help="Include content and bundles of a unit")
        sub.add_argument("--include-content", action="append", default=[], metavar="UNIT", help="Include content of a unit")
        sub.add_argument("--include-bundles", action="append", default=[], metavar="UNIT", help="Include bundles of a unit")

    compose_parser.add_argument("--vault", action="append", default=[], metavar="DIR", help="Add a directory to META-INF/vault")
    compose_parser.add_argument("--profile", action="append", default=[], metavar="NAME", help="Add common and named vault profile directories")
    compose_parser.add_argument(
        "-D",
        dest="properties",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Property used when expanding ${...} placeholders in vault files",
    )
    compose_parser.add_argument("--no-env", action="store_true", help="Do not expose environment variables as properties")
    compose_parser.add_argument(
        "--log-level",
        choices=sorted(Console.LEVELS, key=Console.LEVELS.get),
        help="Console verbosity (overrides compose.log_level)",
    )

    return parser.parse_args(list(argv))


def _build_task(args: Namespace, workspace: Path, console: Console | None = None) -> ComposeTask:
    config_files = _resolve_config_files(workspace, args.config_files)
    if not config_files:
        raise FileNotFoundError(
            f"No configuration file found in {workspace}. Expected one of: {', '.join(DEFAULT_CONFIG_NAMES)}"
        )
    workspace_config = WorkspaceConfig.load(config_files, workspace=workspace)
    unit = workspace_config.units.find(args.unit)
    config = workspace_config.compose_config(unit)

    properties = _parse_properties(getattr(args, "properties", []))
    if properties:
        config.vault_expand_properties = {**config.vault_expand_properties, **properties}

    level = getattr(args, "log_level", None) or config.log_level
    ambient = {} if getattr(args, "no_env", False) else dict(os.environ)

    task = ComposeTask(
        unit,
        units=workspace_config.units,
        config=config,
        console=console or Console(level),
        ambient=ambient,
    )
    task.apply_configured_includes()
    for unit_path in args.include:
        task.include_project(unit_path)
    for unit_path in args.include_content:
        task.include_content(unit_path)
    for unit_path in args.include_bundles:
        task.include_bundles(unit_path)
    for profile_name in getattr(args, "profile", []):
        task.include_vault_profile(profile_name)
    for vault_path in getattr(args, "vault", []):
        task.include_vault(vault_path)
    return task


def _handle_compose(args: Namespace, workspace: Path) -> int:
    try:
        task = _build_task(args, workspace)
    except (FileNotFoundError, UnitNotFoundError, TypeError, ValueError) as exc:
        print(f"Error: {exc}")
        return 2

    try:
        archive = task.compose()
    except ComposeError as exc:
        print(f"Error: {exc}")
        cause = exc.__cause__
        while cause is not None:
            print(f"  caused by: {type(cause).__name__}: {cause}")
            cause = cause.__cause__
        return 1

    print(archive)
    return 0


def _handle_tasks(args: Namespace, workspace: Path) -> int:
    try:
        task = _build_task(args, workspace, console=Console("none"))
    except (FileNotFoundError, UnitNotFoundError, TypeError, ValueError) as exc:
        print(f"Error: {exc}")
        return 2

    for task_path in task.depends_on:
        print(task_path)
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    workspace = Path(args.workspace).expanduser().resolve() if args.workspace else Path.cwd()

    if args.command == "compose":
        return _handle_compose(args, workspace)
    if args.command == "tasks":
        return _handle_tasks(args, workspace)
    raise ValueError(f"Unknown command: {args.command}")


__all__ = ["main"]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

"""Main entry point for build artifact reclamation."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import VALID_LOG_LEVELS, ReclaimConfig
from .models import ProcessSignature, ReclamationStatus, SessionReport, TargetPath
from .session import ReclamationSession
from .targets import expand_targets, is_pattern

STATUS_STYLES: dict[ReclamationStatus, str] = {
    ReclamationStatus.REMOVED: "green",
    ReclamationStatus.DEFERRED_REMOVED: "yellow",
    ReclamationStatus.FAILED: "red",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments.

    """
    parser = argparse.ArgumentParser(
        prog="build-reclaim",
        description="Remove stale build outputs, even when they are held open",
    )

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to configuration file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command (default)
    run_parser = subparsers.add_parser("run", help="Reclaim target paths")
    run_parser.add_argument(
        "--target",
        "-t",
        type=Path,
        action="append",
        dest="targets",
        default=None,
        help="Path to reclaim (repeatable); replaces the configured targets",
    )
    run_parser.add_argument(
        "--process",
        "-p",
        action="append",
        dest="processes",
        default=None,
        help="Process name to stop first (repeatable); replaces the configured list",
    )
    run_parser.add_argument(
        "--quiescence",
        type=float,
        default=None,
        help="Seconds to wait after stopping processes",
    )
    run_parser.add_argument(
        "--parallel",
        action="store_true",
        help="Reclaim targets concurrently",
    )
    run_parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 if any target is left in place",
    )

    # Status command
    subparsers.add_parser("status", help="Show configured targets and whether they exist")

    # Config command
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument(
        "--init",
        action="store_true",
        help="Create default configuration file",
    )
    config_parser.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )

    return parser.parse_args(argv)


def setup_logging(config: ReclaimConfig, console: Console | None = None) -> logging.Logger:
    """Set up logging for a session.

    Returns:
        Configured logger instance.

    Raises:
        ValueError: If the configured log level is not a standard level.

    """
    if config.log_level not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log_level: {config.log_level}")

    logger = logging.getLogger("build-reclaim")
    logger.setLevel(getattr(logging, config.log_level))

    # Clear existing handlers to avoid duplicates on repeated setup
    if logger.handlers:
        logger.handlers.clear()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=True,
        show_path=False,
    )
    console_handler.setLevel(getattr(logging, config.log_level))
    logger.addHandler(console_handler)

    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


def render_report(report: SessionReport, console: Console) -> None:
    """Print a session report as a table."""
    table = Table(title=f"Reclaimed {len(report)} target(s)")
    table.add_column("Target", style="cyan")
    table.add_column("Outcome")
    table.add_column("Attempts", justify="right")
    table.add_column("Strategy", style="dim")
    table.add_column("Detail", style="dim")

    for label, outcome in report.items():
        style = STATUS_STYLES[outcome.status]
        strategy = outcome.final_strategy
        last = outcome.attempts[-1] if outcome.attempts else None
        detail = ""
        if last is not None:
            detail = last.detail or last.error or ""
        table.add_row(
            label,
            f"[{style}]{outcome.status.value}[/{style}]",
            str(len(outcome.attempts)),
            strategy.value if strategy else "-",
            detail,
        )

    console.print(table)


def cmd_run(config: ReclaimConfig, args: argparse.Namespace) -> int:
    """Execute run command.

    Args:
        config: Reclamation configuration.
        args: Parsed arguments.

    Returns:
        Exit code.

    """
    console = Console()

    if args.quiescence is not None:
        config.quiescence_wait = args.quiescence
    if args.parallel:
        config.parallel = True

    logger = setup_logging(config)
    session = ReclamationSession(config, logger)

    targets = None
    if args.targets:
        targets = [TargetPath(path=config.project_root / p, label=str(p)) for p in args.targets]
    signatures = None
    if args.processes:
        signatures = [ProcessSignature(name) for name in args.processes]

    try:
        report = session.run(targets, signatures)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return 2

    render_report(report, console)

    if args.strict and not report.all_clear:
        return 1
    return 0


def cmd_status(config: ReclaimConfig, args: argparse.Namespace) -> int:
    """Execute status command.

    Args:
        config: Reclamation configuration.
        args: Parsed arguments.

    Returns:
        Exit code.

    """
    console = Console()

    table = Table(title=f"Targets under {config.project_root}")
    table.add_column("Target", style="cyan")
    table.add_column("Path", style="dim")
    table.add_column("Present")

    for target in config.targets:
        if is_pattern(target):
            matches = expand_targets([target])
            present = f"[yellow]{len(matches)} match(es)[/yellow]" if matches else "[green]no[/green]"
        elif target.path.exists():
            present = "[yellow]yes[/yellow]"
        else:
            present = "[green]no[/green]"
        table.add_row(target.label, str(target.path), present)

    console.print(table)
    return 0


def cmd_config(config: ReclaimConfig, args: argparse.Namespace) -> int:
    """Execute config command.

    Args:
        config: Reclamation configuration.
        args: Parsed arguments.

    Returns:
        Exit code.

    """
    console = Console()

    if args.init:
        config_path = args.config or ReclaimConfig.get_config_path()
        if config_path.exists():
            console.print(f"[yellow]Config already exists: {config_path}[/yellow]")
            return 1
        config.save(config_path)
        console.print(f"[green]Created config: {config_path}[/green]")
        return 0

    if args.show:
        table = Table(title="Current Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Project root", str(config.project_root))
        table.add_row("Platform", config.platform)
        table.add_row("Targets", "\n".join(t.label for t in config.targets))
        table.add_row("Processes", "\n".join(s.name for s in config.process_signatures))
        table.add_row("Quiescence wait", f"{config.quiescence_wait:g}s")
        table.add_row("Parallel", str(config.parallel))
        table.add_row("Deferred delay", f"{config.deferred_delay:g}s")
        table.add_row("Deferred retries", str(config.deferred_retries))
        table.add_row("Log file", str(config.log_file) if config.log_file else "-")
        table.add_row("Log level", config.log_level)

        console.print(table)
        return 0

    console.print("[yellow]Use --init or --show[/yellow]")
    return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code.

    """
    args = parse_args(argv)

    try:
        config = ReclaimConfig.load(args.config)
    except ValueError as e:
        Console(stderr=True).print(f"[red]{e}[/red]")
        return 2

    # Default to run command
    command = args.command or "run"
    if args.command is None:
        base = sys.argv[1:] if argv is None else argv
        args = parse_args([*base, "run"])

    if command == "status":
        return cmd_status(config, args)
    if command == "config":
        return cmd_config(config, args)
    return cmd_run(config, args)


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface for maria-autostart."""

import argparse
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from maria_autostart.config import CONFIG_PATHS, Config
from maria_autostart.providers.catalog import LOCAL_PROVIDER_IDS, PROVIDERS
from maria_autostart.providers.launchers import StartError, get_launcher, stop_all
from maria_autostart.providers.models import PriorityMode, ProviderDescriptor, ProviderStatus
from maria_autostart.providers.probes import run_probe
from maria_autostart.providers.registry import build_registry
from maria_autostart.state import SelectionStore, is_fresh, sync_env_file
from maria_autostart.system.detector import SystemDetector, SystemInfo
from maria_autostart.system.polling import wait_until
from maria_autostart.system.processes import ProcessManager
from maria_autostart.system.provider_selector import ProviderSelector, SelectionResult

logger = logging.getLogger(__name__)

# Loggers that would echo request URLs (and anything in them) at INFO
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure logging for the CLI."""
    level = logging.DEBUG if verbose else logging.WARNING

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logging.basicConfig(level=level, handlers=[console], force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_file is not None:
        attach_log_file(log_file)


def attach_log_file(log_file: Path) -> None:
    """Keep a timestamped trail of startups next to the selection file."""
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
    except OSError as e:
        logger.warning(f"Cannot write log file {log_file}: {e}")
        return

    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))

    root = logging.getLogger()
    root.addHandler(file_handler)
    root.setLevel(min(root.level, logging.INFO))


def _print_result(result: SelectionResult, as_json: bool, cached: bool = False) -> None:
    if as_json:
        print(json.dumps({**result.to_dict(), "cached": cached}, indent=2))
        return

    if result.succeeded:
        spec = PROVIDERS.get(result.chosen_provider_id or "")
        name = spec.display_name if spec else result.chosen_provider_id
        suffix = " (cached)" if cached else ""
        print(f"Selected provider: {name}{suffix}")
        print(f"  Mode:  {result.mode.value}")
        if result.chosen_model:
            print(f"  Model: {result.chosen_model}")
        return

    print("No LLM provider available.", file=sys.stderr)
    print(f"Priority mode: {result.mode.value}", file=sys.stderr)
    for provider_id in result.attempted_ids:
        attempt = result.attempts.get(provider_id)
        reason = attempt.error if attempt and attempt.error else "unhealthy"
        print(f"  - {provider_id}: {reason}", file=sys.stderr)
    print("Configure a provider, e.g. run: maria-autostart config --init", file=sys.stderr)


def cmd_select(args: argparse.Namespace, config: Config) -> int:
    """Handle the select command."""
    try:
        mode = PriorityMode.parse(args.mode or config.priority_mode)
    except ValueError as e:
        logger.error(str(e))
        return 2

    store = SelectionStore(config.selection_file)

    if not args.refresh:
        previous = store.load_result()
        if previous and previous.mode is mode and is_fresh(previous, config.cache_max_age):
            logger.debug(f"Reusing selection from {previous.timestamp.isoformat()}")
            _print_result(previous, args.json, cached=True)
            return 0

    registry = build_registry(config)
    if not registry:
        logger.error("All providers are disabled in the configuration")
        return 2

    selector = ProviderSelector(
        start_timeout=config.timeouts.start_timeout,
        poll_interval=config.timeouts.poll_interval,
        max_starts=config.max_starts,
    )
    result = selector.select(mode, registry)

    try:
        store.save(result)
    except OSError as e:
        logger.warning(f"Could not persist selection: {e}")

    if result.succeeded:
        assert result.chosen_provider_id is not None
        try:
            sync_env_file(config.env_file, result.chosen_provider_id)
        except OSError as e:
            logger.warning(f"Could not update {config.env_file}: {e}")

    _print_result(result, args.json)
    return 0 if result.succeeded else 1


def _status_data(system: SystemInfo, statuses: list[tuple[ProviderDescriptor, ProviderStatus]]) -> dict[str, Any]:
    return {
        "system": system.to_dict(),
        "warnings": system.warnings(),
        "providers": [
            {
                "id": descriptor.id,
                "kind": descriptor.kind.value,
                "running": status.running,
                "healthy": status.healthy,
                "configured": status.configured,
                "models": status.models_available,
                "response_time_ms": (
                    round(status.response_time_ms, 1) if status.response_time_ms is not None else None
                ),
                "error": status.error,
            }
            for descriptor, status in statuses
        ],
    }


def _report_status(registry: list[ProviderDescriptor], detector: SystemDetector, as_json: bool) -> None:
    """Probe every provider (never starting any) and print a status report."""
    system = detector.detect()
    statuses = [(descriptor, run_probe(descriptor.probe, descriptor.id)) for descriptor in registry]

    if as_json:
        print(json.dumps(_status_data(system, statuses), indent=2))
        return

    print(f"System: {system}")
    for warning in system.warnings():
        print(f"  ! {warning}")

    print("\nLocal LLMs:")
    for descriptor, status in statuses:
        if descriptor.is_local:
            print(f"  {descriptor.display_name:<10} {status}")

    print("\nCloud APIs:")
    for descriptor, status in statuses:
        if not descriptor.is_local:
            print(f"  {descriptor.display_name:<10} {status}")


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Handle the status command."""
    _report_status(build_registry(config), SystemDetector(), args.json)
    return 0


def cmd_monitor(args: argparse.Namespace, config: Config) -> int:
    """Handle the monitor command - repeat the status report every interval."""
    if args.interval <= 0:
        print("Interval must be positive", file=sys.stderr)
        return 2

    registry = build_registry(config)
    detector = SystemDetector()
    print(f"Monitoring every {args.interval:g}s (Ctrl+C to stop)")

    reports = 0
    try:
        while True:
            print(f"\n[{datetime.now():%Y-%m-%d %H:%M:%S}]")
            _report_status(registry, detector, args.json)
            reports += 1
            if args.count and reports >= args.count:
                break
            time.sleep(args.interval)
    except KeyboardInterrupt:
        print("\nMonitoring stopped")

    return 0


def cmd_start(args: argparse.Namespace, config: Config) -> int:
    """Handle the start command - start one local provider directly."""
    settings = config.get_provider_settings(args.provider)
    launcher = get_launcher(
        args.provider,
        ProcessManager(config.state_dir),
        model=settings.model,
        port_timeout=config.timeouts.start_timeout,
        poll_interval=config.timeouts.poll_interval,
        model_load_timeout=config.timeouts.model_load_timeout,
    )

    try:
        launcher.start()
    except StartError as e:
        print(f"Failed to start {args.provider}: {e}", file=sys.stderr)
        return 1

    descriptor = next((d for d in build_registry(config) if d.id == args.provider), None)
    if descriptor is None:
        print(f"Started {args.provider}")
        return 0

    if wait_until(
        lambda: descriptor.probe().healthy,
        timeout=config.timeouts.start_timeout,
        interval=config.timeouts.poll_interval,
    ):
        print(f"{descriptor.display_name} is ready")
        return 0

    print(f"{descriptor.display_name} started but is not healthy yet", file=sys.stderr)
    return 1


def cmd_stop(args: argparse.Namespace, config: Config) -> int:
    """Handle the stop command."""
    stopped = stop_all(ProcessManager(config.state_dir))
    SelectionStore(config.selection_file).clear()

    if stopped:
        print(f"Stopped: {', '.join(stopped)}")
    else:
        print("Nothing to stop")
    return 0


def cmd_config(args: argparse.Namespace, config: Config) -> int:
    """Handle the config command."""
    if args.validate:
        issues = config.validate()
        if issues:
            print("Configuration issues:")
            for issue in issues:
                print(f"  - {issue}")
            return 1
        print("Configuration is valid")
        return 0

    if args.show:
        data = config.to_dict()
        # Never echo credentials
        for settings in data["providers"].values():
            if settings.get("api_key"):
                settings["api_key"] = "***"
        print(json.dumps(data, indent=2))
        return 0

    if args.init:
        config_path = args.config or CONFIG_PATHS[0]
        if config_path.exists() and not args.force:
            print(f"Config already exists at {config_path}")
            print("Use --force to overwrite")
            return 1
        config.save(config_path)
        print(f"Config initialized at {config_path}")
        return 0

    for path in CONFIG_PATHS:
        if path.exists():
            print(f"Config loaded from: {path}")
            return 0

    print("No config file found, using defaults")
    print(f"Create one at: {CONFIG_PATHS[0]}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="maria-autostart",
        description="Detect, start and select the best available LLM provider for MARIA",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to a config file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # select command
    select_parser = subparsers.add_parser(
        "select",
        help="Select (and if needed start) the best available provider",
    )
    select_parser.add_argument(
        "--mode",
        choices=[mode.value for mode in PriorityMode],
        help="Priority mode (default: MARIA_PRIORITY or config)",
    )
    select_parser.add_argument(
        "--refresh",
        action="store_true",
        help="Ignore the cached selection and probe again",
    )
    select_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Show the status of every provider",
    )
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    # start command
    start_parser = subparsers.add_parser(
        "start",
        help="Start a local provider",
    )
    start_parser.add_argument(
        "provider",
        choices=LOCAL_PROVIDER_IDS,
        help="Local provider to start",
    )

    # monitor command
    monitor_parser = subparsers.add_parser(
        "monitor",
        help="Report provider and system status periodically",
    )
    monitor_parser.add_argument(
        "--interval",
        type=float,
        default=300.0,
        help="Seconds between reports (default: 300)",
    )
    monitor_parser.add_argument(
        "--count",
        type=int,
        default=0,
        help="Stop after this many reports (default: run until interrupted)",
    )
    monitor_parser.add_argument(
        "--json",
        action="store_true",
        help="Output each report as JSON",
    )

    # stop command
    subparsers.add_parser(
        "stop",
        help="Stop local providers started by maria-autostart",
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Manage configuration",
    )
    config_parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate the configuration",
    )
    config_parser.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_parser.add_argument(
        "--init",
        action="store_true",
        help="Initialize default configuration file",
    )
    config_parser.add_argument(
        "--force",
        action="store_true",
        help="Force overwrite existing config",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        # A bare invocation selects a provider
        base_argv = sys.argv[1:] if argv is None else list(argv)
        args = parser.parse_args([*base_argv, "select"])

    setup_logging(args.verbose)
    config = Config.load(args.config)
    if args.command == "select":
        attach_log_file(config.log_file)

    commands = {
        "select": cmd_select,
        "status": cmd_status,
        "start": cmd_start,
        "monitor": cmd_monitor,
        "stop": cmd_stop,
        "config": cmd_config,
    }

    cmd_func = commands.get(args.command)
    if cmd_func is None:
        parser.print_help()
        return 1

    return cmd_func(args, config)


if __name__ == "__main__":
    sys.exit(main())

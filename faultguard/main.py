import argparse
import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Tuple

from faultguard.config import AppConfig, load_config, get_default_config_path
from faultguard.ops.handler import ErrorHandler, build_handler
from faultguard.ops.logger import setup_logger
from faultguard.ops.scheduling import ManualScheduler


@dataclass
class RuntimeContext:
    config: AppConfig
    handler: ErrorHandler
    scheduler: ManualScheduler
    run_id: str


@dataclass
class ReplayResult:
    handled: int = 0
    unparsable: int = 0
    reports_dispatched: int = 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="faultguard: error classification and resilience toolkit")

    parser.add_argument(
        "--config",
        type=str,
        default=str(get_default_config_path()),
        help="Path to the YAML configuration file.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    replay = subparsers.add_parser("replay", help="Handle every JSON line of FILE as a fault and print stats.")
    replay.add_argument("file", type=str, help="JSON Lines file with one fault per line.")
    replay.add_argument("--component", type=str, default="Replay", help="Component recorded in each fault context.")
    replay.add_argument("--show-log", action="store_true", help="Include every log entry in the printed summary.")

    subparsers.add_parser("check-config", help="Validate the configuration and print it.")

    return parser.parse_args(argv)


def bootstrap_runtime(args) -> RuntimeContext:
    logging.basicConfig(level=logging.INFO)
    temp_logger = logging.getLogger("bootstrap")

    try:
        config = load_config(args.config)
        temp_logger.info("Configuration loaded from %s", args.config)
    except Exception as exc:
        temp_logger.error("Failed to load configuration: %s", exc)
        raise

    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    logger = setup_logger(
        run_id,
        logs_dir=config.logging.logs_dir,
        dev_mode=config.dev_mode,
        file_logging=config.logging.file_logging,
    )
    logger.info("Starting Run ID: %s", run_id)

    if config.dev_mode:
        logger.warning("Development mode is ENABLED: handled faults are echoed to the log.")

    # Reports are drained explicitly before exit, so a CLI run never loses them.
    scheduler = ManualScheduler()
    handler = build_handler(config, scheduler=scheduler)

    return RuntimeContext(config=config, handler=handler, scheduler=scheduler, run_id=run_id)


def iter_faults(path: Path) -> Iterator[Tuple[int, Any, bool]]:
    """Yield (line number, fault, parsed) for each non-blank line."""
    with open(path, "r", encoding="utf-8") as handle:
        for line_no, raw in enumerate(handle, start=1):
            line = raw.strip()
            if not line:
                continue
            try:
                yield line_no, json.loads(line), True
            except json.JSONDecodeError:
                yield line_no, line, False


def run_replay(handler: ErrorHandler, scheduler: ManualScheduler, path: Path, component: str = "Replay") -> ReplayResult:
    logger = logging.getLogger("faultguard")
    result = ReplayResult()

    for line_no, fault, parsed in iter_faults(path):
        if not parsed:
            result.unparsable += 1
            logger.warning("Line %d is not JSON; handling it as a plain message.", line_no)
        handler.handle(fault, {"component": component, "action": "Replay", "line": line_no})
        result.handled += 1

    result.reports_dispatched = scheduler.run_pending()
    return result


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.command == "check-config":
        try:
            config = load_config(args.config)
        except (ValueError, FileNotFoundError) as exc:
            print(f"Invalid configuration: {exc}", file=sys.stderr)
            return 2
        print(json.dumps(config.model_dump(), indent=2, ensure_ascii=False))
        return 0

    try:
        context = bootstrap_runtime(args)
    except (ValueError, FileNotFoundError):
        return 2

    logger = logging.getLogger("faultguard")
    path = Path(args.file)
    if not path.exists():
        logger.error("Fault file not found: %s", path)
        context.handler.close()
        return 1

    try:
        result = run_replay(context.handler, context.scheduler, path, component=args.component)
        log = context.handler.get_error_log()
        logger.info("Replay complete. Handled: %d, unparsable: %d", result.handled, result.unparsable)
        summary = {
            "handled": result.handled,
            "unparsable": result.unparsable,
            "reported": sum(1 for entry in log if entry.reported_to_service),
            "pending_retries": len(context.handler.active_retries()),
            "stats": context.handler.get_error_stats().to_dict(),
        }
        if args.show_log:
            summary["entries"] = [entry.to_dict() for entry in log]
        print(json.dumps(summary, indent=2, ensure_ascii=False, default=str))
    finally:
        context.handler.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
DockWatch CLI entry point.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dockwatch.config.settings import DockWatchConfig
from dockwatch.logging_config import setup_logging as setup_full_logging
from dockwatch.output import format_json, format_poll_table
from dockwatch.telemetry.errors import DockerEngineError
from dockwatch.telemetry.service import ContainerMonitorService, run_monitor_service

DEFAULT_CONFIG_PATH = "/etc/dockwatch/config.yml"


def setup_logging(config: DockWatchConfig, verbose: bool = False) -> None:
    """Setup logging, falling back to console-only when the log dir is not writable."""
    console_level = "DEBUG" if verbose else config.logging.console_level

    log_dir = config.logging.log_dir
    if not os.access(str(Path(log_dir).parent), os.W_OK):
        log_dir = str(Path.home() / ".local" / "log" / "dockwatch")

    try:
        setup_full_logging(
            log_dir=log_dir,
            console_level=console_level,
            file_level=config.logging.file_level,
            use_json=config.logging.use_json,
        )
    except PermissionError:
        logging.basicConfig(
            level=getattr(logging, console_level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )


async def run_once(config: DockWatchConfig, as_json: bool) -> int:
    """Run a single poll cycle and print the result."""
    service = ContainerMonitorService(config)
    try:
        result = await service.poll_once()
    finally:
        await service.close()

    print(format_json(result) if as_json else format_poll_table(result))
    return 0 if result.connected else 1


async def test_connection(config: DockWatchConfig, url: str) -> int:
    """Report the engine version at a URL, or at the discovered endpoint."""
    service = ContainerMonitorService(config)
    try:
        version = await service.test_connection(url or None)
    except DockerEngineError as e:
        print(f"Error: {e}")
        return 1
    finally:
        await service.close()

    print(f"Connected! Docker {version.version} (API {version.api_version})")
    return 0


def main() -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="DockWatch - Docker container telemetry and alerting"
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=os.environ.get("DOCKWATCH_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to configuration file",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--generate-config",
        action="store_true",
        help="Generate default configuration file and exit",
    )
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration file and exit"
    )
    parser.add_argument("--once", action="store_true", help="Poll once, print and exit")
    parser.add_argument("--json", action="store_true", help="With --once, print JSON")
    parser.add_argument(
        "--test-connection",
        nargs="?",
        const="",
        metavar="URL",
        help="Report the engine version at URL (or the discovered endpoint) and exit",
    )

    args = parser.parse_args()

    if args.generate_config:
        DockWatchConfig().save(args.config)
        print(f"Generated default configuration at: {args.config}")
        return 0

    if args.validate_config:
        try:
            DockWatchConfig.from_file(args.config)
            print(f"Configuration valid: {args.config}")
            return 0
        except Exception as e:
            print(f"Configuration invalid: {e}")
            return 1

    try:
        config = DockWatchConfig.from_file(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(config, args.verbose)
    logger = logging.getLogger(__name__)

    try:
        if args.test_connection is not None:
            return asyncio.run(test_connection(config, args.test_connection))
        if args.once:
            return asyncio.run(run_once(config, args.json))

        logger.info(f"Starting DockWatch with configuration from {args.config}")
        asyncio.run(run_monitor_service(config))

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"Error running DockWatch: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

"""orm-agent entry point.

Checks for an update of the managed application, installs and runs it when
one is assigned to this device, and otherwise runs the installed version.
"""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

from .core.config import AgentConfig, load_config
from .core.errors import ConfigError, RevertError
from .core.version import read_installed_version
from .updater.service import Updater, run_application
from .utils.logger import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NEEDS_OPERATOR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ORM over-the-air update agent")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--log-dir", type=Path, default=None)
    parser.add_argument(
        "--no-run",
        action="store_true",
        help="do not run the installed application when no update happens",
    )
    return parser


def _run_current(config: AgentConfig) -> int:
    logger.info("Executing the current version ...")
    try:
        status = run_application(config.app_dir)
    except OSError as e:
        logger.error("Fails to run %s: %s", config.app_dir, e)
        return EXIT_FAILURE
    logger.info("Exited with status: %s", status)
    return EXIT_OK


def run(config: AgentConfig, run_current: bool = True) -> int:
    logger.info("Software management for %s.", config.object_type)
    config.validate()

    updater = Updater(config)
    recovered = updater.recover_interrupted_swap()
    logger.debug("Interrupted swap recovery: %s", recovered.value)

    config.require_app_dir()
    logger.debug("Application directory = %s", config.app_dir)

    current_version = read_installed_version(config.app_dir)
    logger.info("Current version is %s", current_version)

    status = updater.execute(current_version)
    logger.debug("Update status: %s", status)

    if status.updated:
        logger.info("Updated application successfully terminated: %s", status.exit_status)
        return EXIT_OK

    logger.info("No update: %s", status.message)
    if not run_current:
        return EXIT_OK
    return _run_current(config)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    debug = args.debug or os.getenv("ORM_DEBUG") == "1"
    configure_logging(debug, log_dir=args.log_dir)

    try:
        config = load_config(args.config)
        return run(config, run_current=not args.no_run)
    except RevertError as e:
        logger.critical("Rollback failed, manual intervention required: %s", e)
        return EXIT_NEEDS_OPERATOR
    except ConfigError as e:
        logger.error("%s", e)
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())

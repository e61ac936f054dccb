#!/usr/bin/env python3
# bootstrap_host.py
# -*- coding: utf-8 -*-
"""
Entry point for the host bootstrap.

Installs Docker Engine, the Docker Compose plugin and the newest Python 3.x
from the deadsnakes PPA, adds the invoking user to the docker group and
verifies the result. Safe to run repeatedly.
"""

import argparse
import logging
import sys
from typing import List, Optional

import yaml

from common.logging_config import setup_logging
from provisioner.pipeline import BootstrapPipeline
from settings.config_loader import CONFIG_FILE_DEFAULT, load_app_settings
from settings.config_models import BootstrapSettings


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Idempotent host bootstrap: Docker Engine, Docker Compose and the latest Python 3.x."
    )
    parser.add_argument(
        "--config-file",
        default=None,
        help=f"YAML configuration file (default: {CONFIG_FILE_DEFAULT}).",
    )
    parser.add_argument(
        "--user",
        default=None,
        help="User to add to the docker group (default: $SUDO_USER, then the login name).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"],
        type=str.upper,
        help="Console log level.",
    )
    parser.add_argument(
        "--log-file", default=None, help="Also write JSON log records here."
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable coloured level tags.",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="Wall-clock budget for the whole run, in seconds.",
    )
    parser.add_argument(
        "--skip-upgrade",
        action="store_true",
        help="Do not run 'apt-get upgrade' after refreshing the index.",
    )
    parser.add_argument(
        "--skip-python",
        action="store_true",
        help="Do not install Python from the deadsnakes PPA.",
    )
    parser.add_argument(
        "--python-version",
        default=None,
        help="Install this Python version (e.g. 3.12) instead of the newest one.",
    )
    parser.add_argument(
        "--no-alternatives",
        action="store_true",
        help="Leave the system 'python3' alternative untouched.",
    )
    parser.add_argument(
        "--compose-up",
        metavar="DIR",
        default=None,
        help="After a successful run, start the compose stack found in DIR.",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--fix-user",
        action="store_true",
        help="Only repair docker group membership and the docker service.",
    )
    mode.add_argument(
        "--view-config",
        action="store_true",
        help="Print the effective configuration and exit.",
    )
    return parser.parse_args(args)


def view_configuration(settings: BootstrapSettings) -> None:
    """Prints the effective configuration as YAML."""
    print(
        yaml.safe_dump(
            settings.model_dump(mode="json"),
            sort_keys=False,
            allow_unicode=True,
        ),
        end="",
    )


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the host bootstrap."""
    parsed_args = parse_args(args)

    # Console logging is needed before the settings exist, e.g. to report
    # a broken configuration file.
    setup_logging(
        parsed_args.log_level or "INFO", use_color=not parsed_args.no_color
    )
    logger = logging.getLogger("bootstrap_host")

    try:
        settings = load_app_settings(parsed_args, current_logger=logger)
    except SystemExit as e:
        logger.error(str(e))
        return 1

    if parsed_args.view_config:
        view_configuration(settings)
        return 0

    setup_logging(
        settings.log_level,
        use_color=settings.color,
        log_file_path=settings.log_file,
    )

    pipeline = BootstrapPipeline(settings, logger)
    if parsed_args.fix_user:
        return pipeline.run_fix_user()
    return pipeline.run()


if __name__ == "__main__":
    sys.exit(main())

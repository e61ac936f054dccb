# provisioner/compose.py
# -*- coding: utf-8 -*-
"""
Hand-off to Docker Compose once the host is provisioned.
"""

import logging
from pathlib import Path
from typing import Optional

from common.command_utils import get_symbols, log_step, run_elevated_command
from settings.config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)

COMPOSE_FILE_NAMES = (
    "compose.yaml",
    "compose.yml",
    "docker-compose.yaml",
    "docker-compose.yml",
)


def find_compose_file(project_dir: Path) -> Optional[Path]:
    for name in COMPOSE_FILE_NAMES:
        candidate = project_dir / name
        if candidate.is_file():
            return candidate
    return None


def compose_up(
    project_dir: Path,
    settings: BootstrapSettings,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Starts the stack in `project_dir` with `docker compose up -d`.

    Raises:
        FileNotFoundError: The directory holds no compose file.
        subprocess.CalledProcessError: docker compose failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = get_symbols(settings)
    project_dir = Path(project_dir)
    compose_file = find_compose_file(project_dir)
    if compose_file is None:
        raise FileNotFoundError(
            f"No compose file ({', '.join(COMPOSE_FILE_NAMES)}) found in {project_dir}"
        )

    log_step(
        f"{symbols.get('rocket', '🚀')} Starting the stack from {compose_file}...",
        "info",
        logger_to_use,
        settings,
    )
    run_elevated_command(
        ["docker", "compose", "-f", str(compose_file), "up", "-d"],
        settings,
        current_logger=logger_to_use,
        cwd=str(project_dir),
    )
    log_step(
        f"{symbols.get('success', '✅')} Stack started.",
        "success",
        logger_to_use,
        settings,
    )

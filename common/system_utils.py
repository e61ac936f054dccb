# common/system_utils.py
# -*- coding: utf-8 -*-
"""
System-level utility functions for the host bootstrap.

This module includes the privilege guard, user and group lookups, distro
codename and architecture detection, and thin wrappers over systemctl.
"""

import getpass
import grp
import logging
import os
import pwd
import subprocess
from pathlib import Path
from typing import List, Optional

from common.command_utils import (
    get_symbols,
    log_step,
    run_command,
    run_elevated_command,
)
from settings.config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")


def require_elevated_privileges() -> None:
    """
    Aborts unless the effective user is root.

    Raises:
        PermissionError: The effective uid is not 0.
    """
    if os.geteuid() != 0:
        raise PermissionError(
            "This bootstrap must be run as root or with sudo. "
            "Please run: sudo bootstrap-host"
        )


def get_invoking_user(explicit_user: Optional[str] = None) -> str:
    """
    Resolves the user whose group memberships are reconciled.

    Under sudo the invoking account is in $SUDO_USER; reconciling 'root'
    would be pointless, so that takes precedence over the login name.
    """
    if explicit_user:
        return explicit_user
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user and sudo_user != "root":
        return sudo_user
    return getpass.getuser()


def get_distro_codename(
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> Optional[str]:
    """
    Get the distribution codename (e.g. 'jammy', 'noble', 'bookworm').

    Tries `lsb_release -cs` first and falls back to VERSION_CODENAME in
    /etc/os-release, since lsb_release is not installed on minimal images.
    """
    logger_to_use = current_logger if current_logger else module_logger
    try:
        result = run_command(
            ["lsb_release", "-cs"],
            settings,
            capture_output=True,
            check=True,
            current_logger=logger_to_use,
            quiet=True,
        )
        codename = (result.stdout or "").strip()
        if codename:
            return codename
    except (FileNotFoundError, subprocess.CalledProcessError):
        log_step(
            "lsb_release unavailable; reading codename from /etc/os-release.",
            "debug",
            logger_to_use,
            settings,
        )
    return _codename_from_os_release(OS_RELEASE_PATH)


def _codename_from_os_release(path: Path) -> Optional[str]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return None
    values = {}
    for line in content.splitlines():
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"')
    return values.get("VERSION_CODENAME") or values.get("UBUNTU_CODENAME")


def get_dpkg_architecture(
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> str:
    """
    Returns the dpkg architecture (e.g. 'amd64').

    Raises:
        subprocess.CalledProcessError, FileNotFoundError: dpkg unusable.
    """
    result = run_command(
        ["dpkg", "--print-architecture"],
        settings,
        capture_output=True,
        check=True,
        current_logger=current_logger,
        quiet=True,
    )
    return result.stdout.strip()


# --- systemd ---


def is_service_active(
    service: str,
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """True when `systemctl is-active --quiet <service>` succeeds."""
    try:
        result = run_command(
            ["systemctl", "is-active", "--quiet", service],
            settings,
            check=False,
            capture_output=True,
            current_logger=current_logger,
            quiet=True,
        )
    except FileNotFoundError:
        return False
    return result.returncode == 0


def is_service_enabled(
    service: str,
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """True when `systemctl is-enabled <service>` succeeds."""
    try:
        result = run_command(
            ["systemctl", "is-enabled", service],
            settings,
            check=False,
            capture_output=True,
            current_logger=current_logger,
            quiet=True,
        )
    except FileNotFoundError:
        return False
    return result.returncode == 0


def enable_and_start_service(
    service: str,
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Enables and starts a systemd service.

    Raises:
        subprocess.CalledProcessError: Either systemctl call failed.
    """
    run_elevated_command(
        ["systemctl", "enable", service],
        settings,
        capture_output=True,
        current_logger=current_logger,
    )
    run_elevated_command(
        ["systemctl", "start", service],
        settings,
        capture_output=True,
        current_logger=current_logger,
    )


def systemd_reload(
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Reload the systemd daemon. Failure is logged as a warning.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = get_symbols(settings)
    try:
        run_elevated_command(
            ["systemctl", "daemon-reload"],
            settings,
            capture_output=True,
            current_logger=logger_to_use,
        )
        return True
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        log_step(
            f"{symbols.get('warning', '!')} Failed to reload systemd daemon: {e}",
            "warning",
            logger_to_use,
            settings,
        )
        return False


# --- users and groups ---


def group_exists(group: str) -> bool:
    """True when the group is known to the host's group database."""
    try:
        grp.getgrnam(group)
        return True
    except KeyError:
        return False


def user_in_group(user: str, group: str) -> bool:
    """
    True when `user` belongs to `group`, either as a supplementary member
    or through its primary group.

    Raises:
        KeyError: The group does not exist.
    """
    group_entry = grp.getgrnam(group)
    if user in group_entry.gr_mem:
        return True
    try:
        return pwd.getpwnam(user).pw_gid == group_entry.gr_gid
    except KeyError:
        return False


def list_user_groups(user: str) -> List[str]:
    """Names of every group the user belongs to, primary group first."""
    names: List[str] = []
    try:
        primary_gid = pwd.getpwnam(user).pw_gid
        names.append(grp.getgrgid(primary_gid).gr_name)
    except KeyError:
        pass
    for entry in grp.getgrall():
        if user in entry.gr_mem and entry.gr_name not in names:
            names.append(entry.gr_name)
    return names


def add_user_to_group(
    user: str,
    group: str,
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Appends `group` to the user's supplementary groups (`usermod -aG`).

    Raises:
        subprocess.CalledProcessError: usermod failed.
    """
    run_elevated_command(
        ["usermod", "-aG", group, user],
        settings,
        capture_output=True,
        current_logger=current_logger,
    )

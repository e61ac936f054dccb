# provisioner/group_reconciler.py
# -*- coding: utf-8 -*-
"""
Ensures the invoking user belongs to the groups it needs.
"""

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from common.command_utils import describe_command_failure, get_symbols, log_step
from common.system_utils import add_user_to_group, group_exists, user_in_group
from settings.config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)


class MembershipOutcome(Enum):
    ALREADY_MEMBER = "AlreadyMember"
    ADDED = "Added"
    GROUP_ABSENT = "GroupAbsent"
    FAILED = "Failed"


@dataclass(frozen=True)
class GroupMembership:
    username: str
    group: str
    outcome: MembershipOutcome
    required: bool = True
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome in (
            MembershipOutcome.ALREADY_MEMBER,
            MembershipOutcome.ADDED,
        )

    @property
    def blocks_success(self) -> bool:
        # A missing group is informational even when the group is required.
        return self.required and self.outcome is MembershipOutcome.FAILED

    @property
    def session_restart_required(self) -> bool:
        # New group membership only applies to sessions started afterwards.
        return self.outcome is MembershipOutcome.ADDED


def ensure_group_membership(
    user: str,
    group: str,
    settings: BootstrapSettings,
    current_logger: Optional[logging.Logger] = None,
    required: bool = True,
) -> GroupMembership:
    """
    Adds `user` to `group` unless it is already a member.

    Args:
        user: Account to reconcile.
        group: Group the account should belong to.
        settings: Settings of the current run.
        current_logger: Optional logger instance.
        required: Whether the overall run depends on this membership.

    Returns:
        GROUP_ABSENT when the host has no such group, ALREADY_MEMBER when
        nothing had to change, ADDED after `usermod -aG`, FAILED when
        usermod failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = get_symbols(settings)

    if not group_exists(group):
        log_step(
            f"{symbols.get('info', 'ℹ️')} Group '{group}' not found, skipping '{group}' group assignment.",
            "info",
            logger_to_use,
            settings,
        )
        return GroupMembership(
            user,
            group,
            MembershipOutcome.GROUP_ABSENT,
            required,
            f"group '{group}' does not exist on this host",
        )

    if user_in_group(user, group):
        log_step(
            f"{symbols.get('success', '✅')} User '{user}' is already in the '{group}' group.",
            "success",
            logger_to_use,
            settings,
        )
        return GroupMembership(
            user, group, MembershipOutcome.ALREADY_MEMBER, required
        )

    log_step(
        f"{symbols.get('gear', '⚙️')} Adding user '{user}' to the '{group}' group...",
        "info",
        logger_to_use,
        settings,
    )
    try:
        add_user_to_group(user, group, settings, logger_to_use)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        detail = describe_command_failure(e)
        log_step(
            f"{symbols.get('error', '❌')} Failed to add user '{user}' to the '{group}' group: {detail}",
            "error" if required else "warning",
            logger_to_use,
            settings,
        )
        return GroupMembership(
            user, group, MembershipOutcome.FAILED, required, detail
        )

    log_step(
        f"{symbols.get('success', '✅')} User '{user}' added to the '{group}' group.",
        "success",
        logger_to_use,
        settings,
    )
    log_step(
        f"   {symbols.get('warning', '!')} Log out and back in (or run 'newgrp {group}') for this change to take effect.",
        "warning",
        logger_to_use,
        settings,
    )
    return GroupMembership(user, group, MembershipOutcome.ADDED, required)

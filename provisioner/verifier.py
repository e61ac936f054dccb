# provisioner/verifier.py
# -*- coding: utf-8 -*-
"""
Final verification of a bootstrap run.

Every component is probed again, independently of whatever the installer
concluded, and the results are folded into a single RunSummary. The summary
alone decides the process exit code.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from common.command_utils import describe_command_failure
from provisioner.base_component import (
    BaseComponent,
    InstallationResult,
    InstallOutcome,
)
from provisioner.group_reconciler import GroupMembership

module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationRecord:
    component: str
    passed: bool
    detail: str = ""
    version: Optional[str] = None


@dataclass
class RunSummary:
    installations: List[InstallationResult] = field(default_factory=list)
    memberships: List[GroupMembership] = field(default_factory=list)
    verifications: List[VerificationRecord] = field(default_factory=list)
    fatal_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        if self.fatal_error:
            return False
        if not all(result.succeeded for result in self.installations):
            return False
        if not all(record.passed for record in self.verifications):
            return False
        return not any(
            membership.blocks_success for membership in self.memberships
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    @property
    def session_restart_required(self) -> bool:
        return any(m.session_restart_required for m in self.memberships)

    @property
    def first_failure(self) -> Optional[str]:
        """The message that best explains why the run did not succeed."""
        if self.fatal_error:
            return self.fatal_error
        for result in self.installations:
            if result.outcome is InstallOutcome.FAILED:
                return f"{result.component}: {result.detail}"
        for result in self.installations:
            if result.outcome is InstallOutcome.SKIPPED:
                return f"{result.component} skipped: {result.detail}"
        for record in self.verifications:
            if not record.passed:
                return f"{record.component} failed verification: {record.detail}"
        for membership in self.memberships:
            if membership.blocks_success:
                return (
                    f"user '{membership.username}' is not in required group "
                    f"'{membership.group}' ({membership.outcome.value}"
                    f"{': ' + membership.detail if membership.detail else ''})"
                )
        return None

    def render(self) -> List[str]:
        """Human-readable summary, one line per component and group."""
        verified = {record.component: record for record in self.verifications}
        lines = ["Bootstrap summary:"]
        for result in self.installations:
            record = verified.get(result.component)
            version = (record.version if record else None) or result.version
            status = "verified" if record and record.passed else "NOT verified"
            line = f"  {result.component:<20} {result.outcome.value:<18} {status}"
            if version:
                line += f" (version: {version})"
            lines.append(line)
        for membership in self.memberships:
            kind = "required" if membership.required else "optional"
            lines.append(
                f"  group {membership.group:<14} {membership.outcome.value:<18} "
                f"user '{membership.username}', {kind}"
            )
        lines.append(f"Result: {'SUCCESS' if self.succeeded else 'FAILED'}")
        return lines

    def next_steps(self) -> List[str]:
        steps = []
        if self.session_restart_required:
            groups = ", ".join(
                m.group for m in self.memberships if m.session_restart_required
            )
            steps.append(
                f"Log out and log back in (or reboot) so the new group membership ({groups}) "
                f"takes effect; until then Docker commands need 'sudo'."
            )
        if self.succeeded:
            steps.append("Check Docker status with: systemctl status docker")
            steps.append("Test Docker with: docker run hello-world")
            if any(
                r.component == "python-interpreter" for r in self.installations
            ):
                steps.append(
                    "Verify your Python version by running: python3 --version"
                )
        return steps


def verify_all(
    components: Sequence[BaseComponent],
    installations: Iterable[InstallationResult],
    memberships: Iterable[GroupMembership],
    current_logger: Optional[logging.Logger] = None,
) -> RunSummary:
    """
    Re-probe every component and aggregate the run into a RunSummary.

    Args:
        components: Every component the run was responsible for.
        installations: The installer's results, in run order.
        memberships: Group reconciliation results.
        current_logger: Optional logger instance.

    Returns:
        The RunSummary; `summary.succeeded` is the pass/fail verdict.
    """
    logger_to_use = current_logger if current_logger else module_logger
    records: List[VerificationRecord] = []
    for component in components:
        try:
            probe = component.probe()
        except Exception as e:
            logger_to_use.debug(
                f"Verification probe of {component.name} raised: {e}",
                exc_info=True,
            )
            records.append(
                VerificationRecord(
                    component.name,
                    False,
                    f"probe error: {describe_command_failure(e)}",
                )
            )
            continue
        records.append(
            VerificationRecord(
                component.name,
                probe.satisfied,
                probe.detail or probe.state.value,
                probe.version,
            )
        )

    return RunSummary(
        installations=list(installations),
        memberships=list(memberships),
        verifications=records,
    )

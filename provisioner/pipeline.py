# provisioner/pipeline.py
# -*- coding: utf-8 -*-
"""
The bootstrap pipeline.

Runs the privilege guard, the package-index refresh, one installer step per
component, group reconciliation and final verification, strictly in that
order and one step at a time. All run state lives on the pipeline object;
nothing is kept in module globals.
"""

import logging
import subprocess
import time
from typing import Callable, Dict, List, Optional, Sequence

from common.command_utils import get_symbols, log_step
from common.debian.apt_manager import (
    AptManager,
    IndexRefreshError,
    RefreshOutcome,
)
from common.debian.repository_registrar import RepositoryRegistrar
from common.system_utils import (
    get_invoking_user,
    list_user_groups,
    require_elevated_privileges,
)
from provisioner.base_component import (
    BaseComponent,
    InstallationResult,
    InstallOutcome,
    ProbeState,
)
from provisioner.compose import compose_up
from provisioner.component_installer import install_component
from provisioner.docker_component import COMPOSE_PLUGIN, DOCKER_ENGINE
from provisioner.group_reconciler import GroupMembership, ensure_group_membership
from provisioner.python_component import PYTHON_INTERPRETER
from provisioner.registry import ComponentRegistry
from provisioner.verifier import RunSummary, verify_all
from settings.config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)


class BootstrapTimeoutError(TimeoutError):
    """The wall-clock budget ran out; the remaining steps were not started."""


class BootstrapPipeline:
    """
    Provisions the host and decides the process exit code.
    """

    def __init__(
        self,
        settings: BootstrapSettings,
        logger: Optional[logging.Logger] = None,
        components: Optional[Sequence[BaseComponent]] = None,
        apt_manager: Optional[AptManager] = None,
        registrar: Optional[RepositoryRegistrar] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            settings: Settings of the current run.
            logger: Optional logger instance.
            components: Explicit components to process instead of the
                registered ones.
            apt_manager: Shared AptManager. Created when the index is
                refreshed if omitted.
            registrar: Shared RepositoryRegistrar.
            clock: Monotonic clock used for the wall-clock budget.
        """
        self.settings = settings
        self.logger = logger or module_logger
        self.symbols = get_symbols(settings)
        self._components = list(components) if components is not None else None
        self._apt_manager = apt_manager
        self.registrar = registrar or RepositoryRegistrar(settings, self.logger)
        self.clock = clock
        self.deadline: Optional[float] = None
        self.user = get_invoking_user(settings.target_user)
        self.installations: List[InstallationResult] = []
        self.memberships: List[GroupMembership] = []

    # --- building blocks ---

    @property
    def apt_manager(self) -> AptManager:
        if self._apt_manager is None:
            self._apt_manager = AptManager(self.settings, self.logger)
        return self._apt_manager

    def component_names(self) -> List[str]:
        names = [DOCKER_ENGINE, COMPOSE_PLUGIN]
        if self.settings.python.enabled:
            names.append(PYTHON_INTERPRETER)
        return ComponentRegistry.resolve_dependencies(names)

    def build_components(self) -> List[BaseComponent]:
        if self._components is not None:
            return list(self._components)
        return [
            ComponentRegistry.get_component(name)(
                self.settings,
                self.logger,
                apt_manager=self._apt_manager,
                registrar=self.registrar,
            )
            for name in self.component_names()
        ]

    def _check_deadline(self, next_step: str) -> None:
        if self.deadline is not None and self.clock() > self.deadline:
            raise BootstrapTimeoutError(
                f"Bootstrap exceeded its {self.settings.timeout_seconds}s budget before "
                f"'{next_step}'; remaining steps were not started."
            )

    def prepare_package_index(self) -> RefreshOutcome:
        """
        Refreshes the package index, with the optional python3-apt repair
        before it and the optional upgrade after it.

        Raises:
            IndexRefreshError: The index could not be fetched.
        """
        apt_settings = self.settings.apt
        if apt_settings.reinstall_python_apt:
            if self.apt_manager.python_apt_usable():
                log_step(
                    "python3-apt is working; no repair needed.",
                    "debug",
                    self.logger,
                    self.settings,
                )
            else:
                log_step(
                    "Reinstalling python3-apt (apt_pkg cannot be imported)...",
                    "info",
                    self.logger,
                    self.settings,
                )
                if not self.apt_manager.reinstall("python3-apt"):
                    log_step(
                        f"{self.symbols.get('warning', '!')} Could not reinstall python3-apt.",
                        "warning",
                        self.logger,
                        self.settings,
                    )

        log_step(
            "Updating system package index...", "info", self.logger, self.settings
        )
        outcome = self.apt_manager.refresh_index()
        if outcome.is_partial:
            log_step(
                f"{self.symbols.get('warning', '!')} Apt update had issues, but continuing: {outcome.reason}",
                "warning",
                self.logger,
                self.settings,
            )
        else:
            log_step(
                f"{self.symbols.get('success', '✅')} Apt update successful.",
                "success",
                self.logger,
                self.settings,
            )

        if apt_settings.upgrade:
            self._check_deadline("system upgrade")
            self._upgrade_packages()
        return outcome

    def _upgrade_packages(self) -> None:
        # None means the simulation failed; the upgrade is attempted anyway.
        pending = self.apt_manager.pending_upgrades()
        if pending == []:
            log_step(
                f"{self.symbols.get('success', '✅')} System packages are up to date.",
                "success",
                self.logger,
                self.settings,
            )
            return
        if pending:
            log_step(
                f"{len(pending)} package(s) can be upgraded.",
                "info",
                self.logger,
                self.settings,
            )
        if self.apt_manager.upgrade():
            log_step(
                f"{self.symbols.get('success', '✅')} System packages updated.",
                "success",
                self.logger,
                self.settings,
            )
        else:
            log_step(
                f"{self.symbols.get('warning', '!')} Some packages may not have upgraded successfully.",
                "warning",
                self.logger,
                self.settings,
            )

    def install_components(
        self, components: Sequence[BaseComponent]
    ) -> List[InstallationResult]:
        """
        Runs the installer for each component in order.

        A component whose dependency did not succeed is recorded as SKIPPED
        without being attempted.
        """
        by_name: Dict[str, InstallationResult] = {
            result.component: result for result in self.installations
        }
        for component in components:
            self._check_deadline(component.name)
            unmet = sorted(
                dependency
                for dependency in component.get_dependencies()
                if dependency in by_name and not by_name[dependency].succeeded
            )
            if unmet:
                detail = f"dependency not satisfied: {', '.join(unmet)}"
                log_step(
                    f"{self.symbols.get('warning', '!')} Skipping {component.name}: {detail}",
                    "warning",
                    self.logger,
                    self.settings,
                )
                result = InstallationResult(
                    component.name, InstallOutcome.SKIPPED, detail
                )
            else:
                result = install_component(
                    component, self.settings, self.logger
                )
            by_name[component.name] = result
            self.installations.append(result)
        return list(self.installations)

    def reconcile_groups(self) -> List[GroupMembership]:
        log_step(
            f"Reconciling group membership for user '{self.user}'...",
            "info",
            self.logger,
            self.settings,
        )
        wanted = [(group, True) for group in self.settings.required_groups]
        wanted += [(group, False) for group in self.settings.optional_groups]
        for group, required in wanted:
            self._check_deadline(f"group {group}")
            self.memberships.append(
                ensure_group_membership(
                    self.user,
                    group,
                    self.settings,
                    self.logger,
                    required=required,
                )
            )
        return list(self.memberships)

    # --- reporting ---

    def report(self, summary: RunSummary) -> None:
        """Logs the final summary, the verdict and operator instructions."""
        for line in summary.render()[:-1]:
            log_step(line, "info", self.logger, self.settings)

        if summary.succeeded:
            log_step(
                f"{self.symbols.get('sparkles', '✨')} All installations complete.",
                "success",
                self.logger,
                self.settings,
            )
        else:
            log_step(
                f"{self.symbols.get('critical', '🔥')} Bootstrap failed: {summary.first_failure}",
                "error",
                self.logger,
                self.settings,
            )

        for step in summary.next_steps():
            level = "warning" if step.startswith("Log out") else "info"
            log_step(step, level, self.logger, self.settings)

    def _abort(self, message: str) -> int:
        summary = RunSummary(
            installations=list(self.installations),
            memberships=list(self.memberships),
            fatal_error=message,
        )
        self.report(summary)
        return summary.exit_code

    # --- entry points ---

    def run(self) -> int:
        """
        Runs the full bootstrap.

        Returns:
            0 when the final verification passed, 1 otherwise.
        """
        self.deadline = self.clock() + self.settings.timeout_seconds
        log_step(
            f"{self.symbols.get('rocket', '🚀')} Starting installation process...",
            "info",
            self.logger,
            self.settings,
        )
        try:
            log_step(
                "Checking for root privileges...",
                "info",
                self.logger,
                self.settings,
            )
            require_elevated_privileges()
            self.prepare_package_index()
            components = self.build_components()
            self.install_components(components)
            self.reconcile_groups()
            self._check_deadline("final verification")
            log_step(
                "Verifying installations...", "info", self.logger, self.settings
            )
            summary = verify_all(
                components, self.installations, self.memberships, self.logger
            )
        except (PermissionError, IndexRefreshError, BootstrapTimeoutError) as e:
            return self._abort(str(e))
        except FileNotFoundError as e:
            # AptManager refuses to start without apt-get.
            return self._abort(str(e))
        except KeyboardInterrupt:
            return self._abort(
                "Interrupted by operator; steps after the last completed one were not started."
            )

        self.report(summary)
        if summary.succeeded and self.settings.compose_project_dir:
            try:
                compose_up(
                    self.settings.compose_project_dir, self.settings, self.logger
                )
            except (FileNotFoundError, subprocess.CalledProcessError) as e:
                log_step(
                    f"{self.symbols.get('error', '❌')} Could not start the compose stack: {e}",
                    "error",
                    self.logger,
                    self.settings,
                )
                return 1
        return summary.exit_code

    def run_fix_user(self) -> int:
        """
        Repairs Docker access for the user on a host where Docker is already
        installed: group membership plus, if needed, starting the service.

        Returns:
            0 when the user is in every required group and Docker is running.
        """
        self.deadline = self.clock() + self.settings.timeout_seconds
        try:
            require_elevated_privileges()
            docker = next(
                (
                    component
                    for component in self.build_components()
                    if component.name == DOCKER_ENGINE
                ),
                None,
            )
            self.reconcile_groups()

            checked: List[BaseComponent] = []
            if docker is not None:
                checked.append(docker)
                probe = docker.probe()
                if probe.state is ProbeState.INACTIVE:
                    self.installations.append(
                        install_component(docker, self.settings, self.logger)
                    )
                elif probe.state is ProbeState.ABSENT:
                    log_step(
                        f"{self.symbols.get('warning', '!')} Docker is not installed; run the full bootstrap first.",
                        "warning",
                        self.logger,
                        self.settings,
                    )
            summary = verify_all(
                checked, self.installations, self.memberships, self.logger
            )
        except (PermissionError, BootstrapTimeoutError) as e:
            return self._abort(str(e))
        except KeyboardInterrupt:
            return self._abort("Interrupted by operator.")

        self.report(summary)
        log_step(
            f"Current groups for user '{self.user}': {' '.join(list_user_groups(self.user))}",
            "info",
            self.logger,
            self.settings,
        )
        return summary.exit_code

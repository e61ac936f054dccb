"""
Base component class and result types for the bootstrap.

A component is one installable unit of host software. Every component
follows the same shape: a read-only probe, an install action for when it is
absent, and an activation action for when it is present but its service is
not running.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set

from common.debian.apt_manager import AptManager
from common.debian.repository_registrar import RepositoryRegistrar
from settings.config_models import BootstrapSettings


class ProbeState(Enum):
    SATISFIED = "satisfied"
    INACTIVE = "inactive"
    ABSENT = "absent"


@dataclass(frozen=True)
class ProbeResult:
    state: ProbeState
    detail: str = ""
    version: Optional[str] = None

    @property
    def satisfied(self) -> bool:
        return self.state is ProbeState.SATISFIED


class InstallOutcome(Enum):
    ALREADY_SATISFIED = "AlreadySatisfied"
    INSTALLED = "Installed"
    FAILED = "Failed"
    SKIPPED = "Skipped"


@dataclass(frozen=True)
class InstallationResult:
    component: str
    outcome: InstallOutcome
    detail: str = ""
    version: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (
            InstallOutcome.ALREADY_SATISFIED,
            InstallOutcome.INSTALLED,
        )


class ComponentInstallError(RuntimeError):
    """An install or activation action could not complete."""


class DependencyUnavailableError(ComponentInstallError):
    """
    Something the install action needs (typically its package repository)
    could not be provided, so the component was never attempted.
    """


class BaseComponent(ABC):
    """
    Base class for all bootstrap components.

    Subclasses implement `probe` and `install`; service-backed components
    also override `activate`. Actions signal failure by raising.
    """

    # Overridden by the registry decorator.
    metadata: Dict[str, Any] = {
        "name": "",
        "dependencies": [],
        "description": "",
    }

    def __init__(
        self,
        settings: BootstrapSettings,
        logger: Optional[logging.Logger] = None,
        apt_manager: Optional[AptManager] = None,
        registrar: Optional[RepositoryRegistrar] = None,
    ):
        """
        Args:
            settings: Settings of the current run.
            logger: Optional logger instance. If not provided, a new logger will be created.
            apt_manager: Shared AptManager; created on first use when omitted.
            registrar: Shared RepositoryRegistrar; created on first use when omitted.
        """
        self.settings = settings
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._apt_manager = apt_manager
        self._registrar = registrar

    @property
    def apt_manager(self) -> AptManager:
        if self._apt_manager is None:
            self._apt_manager = AptManager(self.settings, self.logger)
        return self._apt_manager

    @property
    def registrar(self) -> RepositoryRegistrar:
        if self._registrar is None:
            self._registrar = RepositoryRegistrar(self.settings, self.logger)
        return self._registrar

    @property
    def name(self) -> str:
        return str(self.metadata.get("name") or self.__class__.__name__)

    @abstractmethod
    def probe(self) -> ProbeResult:
        """
        Inspect the host without changing it.

        Returns:
            SATISFIED, INACTIVE (present, service not active) or ABSENT.
        """

    @abstractmethod
    def install(self) -> None:
        """
        Bring an absent component onto the host.

        Raises:
            DependencyUnavailableError: A prerequisite (e.g. repository) is missing.
            Exception: Any other failure; recorded by the installer.
        """

    def activate(self) -> None:
        """
        Enable and start the component's service.

        Components without a service never report INACTIVE, so the default
        is an error.
        """
        raise ComponentInstallError(
            f"{self.name} has no service to activate."
        )

    def get_dependencies(self) -> Set[str]:
        """
        Get the dependencies of this component.

        Returns:
            A set of component names that this component depends on.
        """
        return set(self.metadata.get("dependencies", []))

    def get_description(self) -> str:
        return str(self.metadata.get("description", ""))

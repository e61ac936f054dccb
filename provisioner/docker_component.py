# provisioner/docker_component.py
# -*- coding: utf-8 -*-
"""
Handles Docker Engine (the container runtime) and the Docker Compose plugin.
"""

import subprocess
from typing import Optional, Tuple

from common.command_utils import (
    command_exists,
    describe_command_failure,
    log_step,
    run_command,
)
from common.debian.repository_registrar import (
    AptSource,
    RegisterStatus,
    SigningKey,
)
from common.system_utils import (
    enable_and_start_service,
    get_distro_codename,
    get_dpkg_architecture,
    is_service_active,
    is_service_enabled,
    systemd_reload,
)
from common.version_utils import extract_version
from provisioner.base_component import (
    BaseComponent,
    DependencyUnavailableError,
    ProbeResult,
    ProbeState,
)
from provisioner.registry import ComponentRegistry

DOCKER_ENGINE = "docker-engine"
COMPOSE_PLUGIN = "compose-plugin"


class DockerRepositoryMixin:
    """Shared access to the Docker apt repository for both components."""

    def docker_repository(self) -> Tuple[AptSource, SigningKey]:
        """
        Builds the Docker source entry for this host's architecture and
        distribution codename.

        Raises:
            DependencyUnavailableError: arch or codename cannot be determined.
        """
        settings = self.settings
        try:
            arch = get_dpkg_architecture(settings, self.logger)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise DependencyUnavailableError(
                f"Could not determine the dpkg architecture for the Docker repository: "
                f"{describe_command_failure(e)}"
            ) from e
        codename = get_distro_codename(settings, self.logger)
        if not codename:
            raise DependencyUnavailableError(
                "Could not determine the distribution codename for the Docker repository."
            )

        keyring = settings.apt.keyrings_dir / settings.docker.keyring_name
        entry = (
            f"deb [arch={arch} signed-by={keyring}] "
            f"{str(settings.docker.repo_url).rstrip('/')} {codename} {settings.docker.channel}"
        )
        return (
            AptSource(
                settings.apt.sources_dir / settings.docker.source_list_name,
                entry,
            ),
            SigningKey(str(settings.docker.gpg_url), keyring),
        )

    def register_docker_repository(self) -> bool:
        """
        Registers the Docker repository without refreshing the index.

        Returns:
            True when the registration wrote something, so the index needs
            a refresh before Docker packages can be installed.

        Raises:
            DependencyUnavailableError: The repository could not be registered.
        """
        source, key = self.docker_repository()
        outcome = self.registrar.register_repository(source, key)
        if not outcome.ok:
            raise DependencyUnavailableError(
                f"Docker apt repository unavailable: {outcome.reason}"
            )
        return outcome.status is RegisterStatus.REGISTERED

    def ensure_docker_repository(self) -> None:
        """
        Registers the Docker repository and refreshes the index when the
        registration wrote something.

        Raises:
            DependencyUnavailableError: The repository could not be registered.
            IndexRefreshError: The refresh after registration failed.
        """
        if self.register_docker_repository():
            self.apt_manager.refresh_index()


def docker_version(settings, logger) -> Optional[str]:
    """Version reported by `docker --version`, or None."""
    try:
        result = run_command(
            ["docker", "--version"],
            settings,
            check=False,
            capture_output=True,
            current_logger=logger,
            quiet=True,
        )
    except FileNotFoundError:
        return None
    if result.returncode != 0:
        return None
    return extract_version(result.stdout)


@ComponentRegistry.register(
    DOCKER_ENGINE,
    dependencies=[],
    description="Docker Engine and its systemd service",
)
class DockerEngineComponent(DockerRepositoryMixin, BaseComponent):
    """
    Docker Engine. Satisfied when the docker binary is on PATH and the
    docker service is active.
    """

    def probe(self) -> ProbeResult:
        service = self.settings.docker.service_name
        if not command_exists("docker"):
            return ProbeResult(ProbeState.ABSENT, "docker binary not on PATH")
        version = docker_version(self.settings, self.logger)
        if not is_service_active(service, self.settings, self.logger):
            return ProbeResult(
                ProbeState.INACTIVE,
                f"service '{service}' is not active",
                version,
            )
        return ProbeResult(
            ProbeState.SATISFIED,
            f"docker on PATH and service '{service}' active",
            version,
        )

    def install(self) -> None:
        docker_cfg = self.settings.docker
        # Nothing is installed until the repository is known to be usable.
        needs_refresh = self.register_docker_repository()
        log_step(
            "Installing prerequisites for Docker...",
            "info",
            self.logger,
            self.settings,
        )
        self.apt_manager.install(docker_cfg.prerequisites, raise_error=True)
        if needs_refresh:
            self.apt_manager.refresh_index()
        self.apt_manager.install(docker_cfg.packages, raise_error=True)
        self.activate()

    def activate(self) -> None:
        service = self.settings.docker.service_name
        log_step(
            f"Enabling and starting the '{service}' service...",
            "info",
            self.logger,
            self.settings,
        )
        enable_and_start_service(service, self.settings, self.logger)
        systemd_reload(self.settings, self.logger)
        symbols = self.settings.symbols
        if is_service_enabled(service, self.settings, self.logger):
            log_step(
                f"{symbols.get('success', '✅')} '{service}' is set to start automatically on boot.",
                "success",
                self.logger,
                self.settings,
            )
        else:
            log_step(
                f"{symbols.get('warning', '!')} '{service}' may not start automatically on boot.",
                "warning",
                self.logger,
                self.settings,
            )


@ComponentRegistry.register(
    COMPOSE_PLUGIN,
    dependencies=[DOCKER_ENGINE],
    description="Docker Compose v2 plugin ('docker compose')",
)
class ComposePluginComponent(DockerRepositoryMixin, BaseComponent):
    """
    The Compose plugin. Satisfied when `docker compose version` answers.
    """

    def probe(self) -> ProbeResult:
        if not command_exists("docker"):
            return ProbeResult(ProbeState.ABSENT, "docker binary not on PATH")
        try:
            result = run_command(
                ["docker", "compose", "version", "--short"],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
                quiet=True,
            )
        except FileNotFoundError:
            return ProbeResult(ProbeState.ABSENT, "docker binary not on PATH")
        if result.returncode != 0:
            return ProbeResult(
                ProbeState.ABSENT, "'docker compose version' failed"
            )
        return ProbeResult(
            ProbeState.SATISFIED,
            "'docker compose' is available",
            extract_version(result.stdout),
        )

    def install(self) -> None:
        source, _ = self.docker_repository()
        if not self.registrar.source_registered(source):
            self.ensure_docker_repository()
        self.apt_manager.install(
            [self.settings.docker.compose_package], raise_error=True
        )

# provisioner/python_component.py
# -*- coding: utf-8 -*-
"""
Handles the newest Python 3.x interpreter from the deadsnakes PPA.
"""

import os
import subprocess
from pathlib import Path
from typing import Optional, Tuple

import requests

from common.command_utils import (
    describe_command_failure,
    get_symbols,
    log_step,
    run_command,
    run_elevated_command,
)
from common.debian.repository_registrar import (
    AptSource,
    RegisterStatus,
    SigningKey,
)
from common.network_utils import fetch_url
from common.system_utils import get_distro_codename
from common.version_utils import (
    extract_version,
    select_latest_version,
    versions_from_package_names,
)
from provisioner.base_component import (
    BaseComponent,
    DependencyUnavailableError,
    ProbeResult,
    ProbeState,
)
from provisioner.registry import ComponentRegistry

PYTHON_INTERPRETER = "python-interpreter"
PACKAGE_PREFIX = "python"
BIN_DIR = Path("/usr/bin")


@ComponentRegistry.register(
    PYTHON_INTERPRETER,
    dependencies=[],
    description="Newest Python 3.x from the deadsnakes PPA",
)
class PythonInterpreterComponent(BaseComponent):
    """
    Satisfied when the PPA is registered, the newest python3.N in the local
    index (or the pinned version) is installed, and, when alternatives are
    managed, /usr/bin/python3 resolves to it.
    """

    def interpreter_path(self, version: str) -> Path:
        return BIN_DIR / f"{PACKAGE_PREFIX}{version}"

    def available_versions(self):
        names = self.apt_manager.search_names(
            self.settings.python.package_pattern
        )
        return versions_from_package_names(names, PACKAGE_PREFIX)

    def target_version(self) -> str:
        """
        The pinned version, else the newest one in the package index.

        Raises:
            NoCandidatesError: The index lists no python3.N packages.
        """
        if self.settings.python.version:
            return self.settings.python.version
        return select_latest_version(self.available_versions()).raw

    def interpreter_version(self, version: str) -> Optional[str]:
        try:
            result = run_command(
                [str(self.interpreter_path(version)), "--version"],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
                quiet=True,
            )
        except FileNotFoundError:
            return None
        # Python 2 printed its version on stderr.
        return extract_version(result.stdout or result.stderr)

    def probe(self) -> ProbeResult:
        python_cfg = self.settings.python
        if not self.registrar.ppa_registered(python_cfg.ppa):
            return ProbeResult(
                ProbeState.ABSENT, f"PPA '{python_cfg.ppa}' not registered"
            )
        try:
            version = self.target_version()
        except LookupError:
            return ProbeResult(
                ProbeState.ABSENT, "no python3.x packages in the package index"
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            return ProbeResult(
                ProbeState.ABSENT,
                f"package index query failed: {describe_command_failure(e)}",
            )

        package = f"{PACKAGE_PREFIX}{version}"
        binary = self.interpreter_path(version)
        if not self.apt_manager.is_package_installed(package) or not binary.exists():
            return ProbeResult(ProbeState.ABSENT, f"{package} not installed")

        if python_cfg.manage_alternatives:
            default = BIN_DIR / "python3"
            if os.path.realpath(default) != os.path.realpath(binary):
                return ProbeResult(
                    ProbeState.ABSENT,
                    f"{default} does not point to {binary}",
                )
        return ProbeResult(
            ProbeState.SATISFIED,
            f"{package} installed",
            self.interpreter_version(version) or version,
        )

    def _fallback_repository(self) -> Optional[Tuple[AptSource, SigningKey]]:
        python_cfg = self.settings.python
        if not python_cfg.legacy_key_fallback:
            return None
        codename = get_distro_codename(self.settings, self.logger)
        if not codename:
            return None
        keyring = self.settings.apt.keyrings_dir / python_cfg.fallback_keyring_name
        entry = (
            f"deb [signed-by={keyring}] "
            f"{python_cfg.fallback_repo_url.rstrip('/')} {codename} main"
        )
        return (
            AptSource(
                self.settings.apt.sources_dir
                / python_cfg.fallback_source_list_name,
                entry,
            ),
            SigningKey(str(python_cfg.keyserver_url), keyring),
        )

    def install(self) -> None:
        python_cfg = self.settings.python
        self.apt_manager.install(
            ["software-properties-common"], raise_error=True
        )

        outcome = self.registrar.register_ppa(
            python_cfg.ppa, fallback=self._fallback_repository()
        )
        if not outcome.ok:
            raise DependencyUnavailableError(
                f"PPA '{python_cfg.ppa}' unavailable: {outcome.reason}"
            )
        if outcome.status is RegisterStatus.REGISTERED:
            self.apt_manager.refresh_index()

        version = self.target_version()
        log_step(
            f"Latest stable Python 3.x selected: {PACKAGE_PREFIX}{version}",
            "info",
            self.logger,
            self.settings,
        )
        self.apt_manager.install(
            [f"{PACKAGE_PREFIX}{version}"], raise_error=True
        )
        self._install_extras(version)
        if python_cfg.manage_alternatives:
            self._set_default_alternative(version)

    def _install_extras(self, version: str) -> None:
        symbols = get_symbols(self.settings)
        for extra in self.settings.python.extras:
            package = f"{PACKAGE_PREFIX}{version}-{extra}"
            if self.apt_manager.install([package]):
                continue
            log_step(
                f"{symbols.get('warning', '!')} {package} package not available.",
                "warning",
                self.logger,
                self.settings,
            )
            if extra == "pip":
                self._install_pip_from_get_pip(version)

    def _pip_version(self, version: str) -> Optional[str]:
        try:
            result = run_command(
                [str(self.interpreter_path(version)), "-m", "pip", "--version"],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
                quiet=True,
            )
        except FileNotFoundError:
            return None
        return result.stdout.strip() if result.returncode == 0 else None

    def _install_pip_from_get_pip(self, version: str) -> None:
        symbols = get_symbols(self.settings)
        if self._pip_version(version):
            return
        log_step(
            "Installing pip via get-pip.py...", "info", self.logger, self.settings
        )
        try:
            script = fetch_url(
                str(self.settings.python.get_pip_url),
                self.settings,
                current_logger=self.logger,
            ).decode("utf-8")
            run_elevated_command(
                [str(self.interpreter_path(version)), "-"],
                self.settings,
                capture_output=True,
                cmd_input=script,
                current_logger=self.logger,
            )
        except (
            requests.RequestException,
            subprocess.CalledProcessError,
            FileNotFoundError,
            UnicodeDecodeError,
        ) as e:
            log_step(
                f"{symbols.get('warning', '!')} Failed to install pip via get-pip.py: {describe_command_failure(e)}",
                "warning",
                self.logger,
                self.settings,
            )
            return
        pip_version = self._pip_version(version)
        if pip_version:
            log_step(
                f"{symbols.get('success', '✅')} Pip for Python {version} is installed: {pip_version}",
                "success",
                self.logger,
                self.settings,
            )
        else:
            log_step(
                f"{symbols.get('warning', '!')} Pip for Python {version} could not be verified.",
                "warning",
                self.logger,
                self.settings,
            )

    def _set_default_alternative(self, version: str) -> None:
        """
        Registers the interpreter as the 'python3' alternative and selects it.

        Raises:
            subprocess.CalledProcessError: update-alternatives failed.
        """
        binary = str(self.interpreter_path(version))
        log_step(
            f"Setting Python {version} as the default 'python3' alternative.",
            "info",
            self.logger,
            self.settings,
        )
        run_elevated_command(
            [
                "update-alternatives",
                "--install",
                str(BIN_DIR / "python3"),
                "python3",
                binary,
                str(self.settings.python.alternatives_priority),
            ],
            self.settings,
            capture_output=True,
            current_logger=self.logger,
        )
        run_elevated_command(
            ["update-alternatives", "--set", "python3", binary],
            self.settings,
            capture_output=True,
            current_logger=self.logger,
        )

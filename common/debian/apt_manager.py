# common/debian/apt_manager.py
# -*- coding: utf-8 -*-
"""
A centralized manager for Debian apt packages using command-line tools.

Besides plain install/upgrade wrappers this owns the package-index refresh,
which has to survive optional apt hooks that crash independently of the
index update itself (the command-not-found Post-Invoke hook being the
usual offender).
"""

import logging
import os
import re
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from common.command_utils import (
    command_exists,
    describe_command_failure,
    get_symbols,
    log_step,
    run_command,
    run_elevated_command,
)
from settings.config_models import BootstrapSettings

_HOOK_FAILURE_RE = re.compile(
    r"Post-Invoke|Problem executing scripts|command-not-found", re.IGNORECASE
)
_FETCH_FAILURE_RE = re.compile(
    r"^(Err:\d*|E: Failed to fetch|W: Failed to fetch|E: The repository|"
    r"E: Could not get lock|E: Unable to lock|Temporary failure resolving)",
    re.MULTILINE,
)


class IndexRefreshError(RuntimeError):
    """The package index could not be fetched. Fatal for the pipeline."""


class RefreshStatus(Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"


@dataclass(frozen=True)
class RefreshOutcome:
    status: RefreshStatus
    reason: Optional[str] = None

    @property
    def is_partial(self) -> bool:
        return self.status is RefreshStatus.PARTIAL_FAILURE


def _noninteractive_env() -> Dict[str, str]:
    env = dict(os.environ)
    env["DEBIAN_FRONTEND"] = "noninteractive"
    return env


def is_hook_only_failure(output: str) -> bool:
    """
    True when apt-get update output blames an optional hook and shows no
    sign that fetching the index itself went wrong.
    """
    return bool(_HOOK_FAILURE_RE.search(output)) and not _FETCH_FAILURE_RE.search(
        output
    )


class AptManager:
    """
    A centralized manager for Debian apt packages using command-line tools.
    """

    def __init__(
        self,
        settings: BootstrapSettings,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initializes the AptManager.

        Args:
            settings: Settings of the current run.
            logger: An optional logging object.

        Raises:
            FileNotFoundError: apt-get is not available on this host.
        """
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.symbols = get_symbols(settings)
        if not command_exists("apt-get"):
            self.logger.critical(
                "'apt-get' command not found. This manager cannot function."
            )
            raise FileNotFoundError(
                "'apt-get' not found. Is this a Debian-based system?"
            )

    # --- hooks ---

    def _backup_path(self, hook: Path) -> Path:
        return hook.with_name(hook.name + self.settings.apt.hook_backup_suffix)

    @contextmanager
    def disabled_hooks(
        self, hook_paths: Optional[Sequence[Union[str, Path]]] = None
    ) -> Iterator[List[str]]:
        """
        Moves optional apt hooks aside for the duration of the block.

        Every hook moved aside is moved back when the block exits, whether
        it returns or raises. A backup left behind by an interrupted earlier
        run is restored first so the host never keeps a hook disabled.

        Yields:
            Descriptions of hooks that could not be disabled (empty when all
            went well).
        """
        paths = (
            hook_paths
            if hook_paths is not None
            else self.settings.apt.flaky_hooks
        )
        moved: List[Tuple[Path, Path]] = []
        problems: List[str] = []

        for raw_path in paths:
            hook = Path(raw_path)
            backup = self._backup_path(hook)
            try:
                if backup.exists() and not hook.exists():
                    self.logger.info(
                        f"Restoring apt hook {hook} left disabled by a previous run."
                    )
                    backup.replace(hook)
                if not hook.exists():
                    continue
                self.logger.info(f"Temporarily disabling apt hook {hook}...")
                hook.replace(backup)
                moved.append((hook, backup))
            except OSError as e:
                problems.append(f"could not disable apt hook {hook}: {e}")

        try:
            yield problems
        finally:
            for hook, backup in reversed(moved):
                try:
                    backup.replace(hook)
                    self.logger.info(f"Restored apt hook {hook}.")
                except OSError as e:
                    self.logger.error(
                        f"Failed to restore apt hook {hook} from {backup}: {e}. "
                        f"Move it back manually."
                    )

    # --- index ---

    def update(self, raise_error: bool = False) -> bool:
        """
        Updates the list of available packages using 'apt-get update'.

        Args:
            raise_error: Whether to raise an exception on failure.

        Returns:
            True if successful, False otherwise.
        """
        self.logger.info("Updating apt package lists via 'apt-get update'...")
        try:
            run_elevated_command(
                ["apt-get", "update", "-y"],
                self.settings,
                capture_output=True,
                current_logger=self.logger,
                env=_noninteractive_env(),
            )
            self.logger.info("Apt package lists updated successfully.")
            return True
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.warning(f"Failed to update apt cache: {e}")
            if raise_error:
                raise
            return False

    def refresh_index(self) -> RefreshOutcome:
        """
        Refreshes the package index with flaky optional hooks disabled.

        Returns:
            SUCCESS, or PARTIAL_FAILURE when only an optional hook misbehaved
            and the index itself was refreshed.

        Raises:
            IndexRefreshError: The index could not be fetched.
        """
        with self.disabled_hooks() as hook_problems:
            try:
                self.update(raise_error=True)
            except subprocess.CalledProcessError as e:
                output = f"{e.stdout or ''}\n{e.stderr or ''}"
                if not is_hook_only_failure(output):
                    raise IndexRefreshError(
                        f"Package index refresh failed: {describe_command_failure(e)}"
                    ) from e
                if not self.index_is_readable():
                    raise IndexRefreshError(
                        "An apt hook failed and the package index is unreadable afterwards."
                    ) from e
                reason = f"optional apt hook failed during refresh: {describe_command_failure(e)}"
                self.logger.warning(
                    f"{self.symbols.get('warning', '!')} {reason}. The package index itself was refreshed."
                )
                return RefreshOutcome(RefreshStatus.PARTIAL_FAILURE, reason)
            except FileNotFoundError as e:
                raise IndexRefreshError(
                    f"Package index refresh failed: {describe_command_failure(e)}"
                ) from e

        if hook_problems:
            reason = "; ".join(hook_problems)
            self.logger.warning(f"{self.symbols.get('warning', '!')} {reason}")
            return RefreshOutcome(RefreshStatus.PARTIAL_FAILURE, reason)
        return RefreshOutcome(RefreshStatus.SUCCESS)

    def index_is_readable(self) -> bool:
        """True when apt-cache can read the package index."""
        try:
            result = run_command(
                ["apt-cache", "stats"],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
                quiet=True,
            )
        except FileNotFoundError:
            return False
        return result.returncode == 0

    def python_apt_usable(self) -> bool:
        """True when the system python3 can import apt_pkg."""
        try:
            result = run_command(
                ["python3", "-c", "import apt_pkg"],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
                quiet=True,
            )
        except FileNotFoundError:
            return False
        return result.returncode == 0

    def pending_upgrades(self) -> Optional[List[str]]:
        """
        Packages 'apt-get upgrade' would change, from a simulated run.

        Returns:
            The package names (empty when the host is up to date), or None
            when the simulation itself failed.
        """
        try:
            result = run_command(
                ["apt-get", "-s", "upgrade"],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
                env=_noninteractive_env(),
                quiet=True,
            )
        except FileNotFoundError:
            return None
        if result.returncode != 0:
            self.logger.debug(
                f"Simulated upgrade failed: {(result.stderr or '').strip()}"
            )
            return None
        return [
            line.split()[1]
            for line in result.stdout.splitlines()
            if line.startswith("Inst ")
        ]

    def search_names(self, pattern: str) -> List[str]:
        """
        Package names in the local index matching `pattern` (a regex).

        Raises:
            subprocess.CalledProcessError, FileNotFoundError: apt-cache failed.
        """
        result = run_command(
            ["apt-cache", "search", "--names-only", pattern],
            self.settings,
            check=True,
            capture_output=True,
            current_logger=self.logger,
            quiet=True,
        )
        regex = re.compile(pattern)
        names = set()
        for line in result.stdout.splitlines():
            name = line.split(" - ", 1)[0].strip()
            if name and regex.search(name):
                names.add(name)
        return sorted(names)

    # --- packages ---

    def is_package_installed(self, package_name: str) -> bool:
        """
        True when dpkg reports the package as installed.
        """
        try:
            result = run_command(
                ["dpkg-query", "-W", "-f=${db:Status-Status}", package_name],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
                quiet=True,
            )
        except FileNotFoundError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "installed"

    def install(
        self,
        packages: Union[List[str], str],
        raise_error: bool = False,
    ) -> bool:
        """
        Installs one or more packages using 'apt-get install'.

        Packages dpkg already reports as installed are left alone, so a
        repeated call performs no mutation.

        Args:
            packages: A single package name or a list of package names.
            raise_error: Whether to raise an exception on failure.

        Returns:
            True if successful, False otherwise.
        """
        if not isinstance(packages, list):
            packages = [packages]

        packages_to_install = []
        for pkg_name in packages:
            if self.is_package_installed(pkg_name):
                self.logger.info(
                    f"Package '{pkg_name}' is already installed. Skipping."
                )
            else:
                packages_to_install.append(pkg_name)

        if not packages_to_install:
            self.logger.info("All requested packages are already installed.")
            return True

        self.logger.info(
            f"{self.symbols.get('package', '📦')} Installing: {', '.join(packages_to_install)}"
        )
        try:
            run_elevated_command(
                ["apt-get", "install", "-y"] + packages_to_install,
                self.settings,
                capture_output=True,
                current_logger=self.logger,
                env=_noninteractive_env(),
            )
            self.logger.info("Packages installed successfully.")
            return True
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.warning(
                f"Failed to install {', '.join(packages_to_install)}: {describe_command_failure(e)}"
            )
            if raise_error:
                raise
            return False

    def reinstall(self, package_name: str) -> bool:
        """
        Reinstalls a package ('apt-get install --reinstall').

        Returns:
            True if successful, False otherwise.
        """
        try:
            run_elevated_command(
                ["apt-get", "install", "--reinstall", "-y", package_name],
                self.settings,
                capture_output=True,
                current_logger=self.logger,
                env=_noninteractive_env(),
            )
            return True
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.warning(
                f"Could not reinstall {package_name}: {describe_command_failure(e)}"
            )
            return False

    def upgrade(self) -> bool:
        """
        Upgrades installed packages using 'apt-get upgrade'.

        Returns:
            True if successful, False otherwise.
        """
        self.logger.info("Upgrading installed packages...")
        try:
            run_elevated_command(
                ["apt-get", "upgrade", "-y"],
                self.settings,
                capture_output=True,
                current_logger=self.logger,
                env=_noninteractive_env(),
            )
            return True
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.warning(
                f"Some packages may not have upgraded successfully: {describe_command_failure(e)}"
            )
            return False

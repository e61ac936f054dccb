# common/debian/repository_registrar.py
# -*- coding: utf-8 -*-
"""
Idempotent registration of third-party apt sources.

A repository is a signing key on disk plus one 'deb ...' line in a source
list. Registration checks for the line before writing, appends only when it
is missing, and overwrites the key file (which is always safe). Network
problems fetching the key are reported as a FAILED outcome, never raised.
"""

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

import requests

from common.command_utils import (
    describe_command_failure,
    get_symbols,
    log_step,
    run_elevated_command,
)
from common.network_utils import fetch_url
from settings.config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)


class RegisterStatus(Enum):
    ALREADY_REGISTERED = "already_registered"
    REGISTERED = "registered"
    FAILED = "failed"


@dataclass(frozen=True)
class RegisterOutcome:
    status: RegisterStatus
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not RegisterStatus.FAILED


@dataclass(frozen=True)
class AptSource:
    """One-line style apt source entry and the list file that holds it."""

    list_path: Path
    entry: str


@dataclass(frozen=True)
class SigningKey:
    """Where a repository key is downloaded from and where apt reads it."""

    url: str
    keyring_path: Path


def normalize_source_line(line: str) -> str:
    return " ".join(line.split())


def ppa_fragment(ppa: str) -> str:
    """'ppa:deadsnakes/ppa' -> 'deadsnakes/ppa'."""
    return ppa.split(":", 1)[1] if ppa.startswith("ppa:") else ppa


class RepositoryRegistrar:
    """
    Adds package sources to the host without ever duplicating an entry.
    """

    def __init__(
        self,
        settings: BootstrapSettings,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.logger = logger or module_logger
        self.symbols = get_symbols(settings)

    # --- probes ---

    def source_registered(self, source: AptSource) -> bool:
        """True when the source list already contains `source.entry`."""
        wanted = normalize_source_line(source.entry)
        try:
            content = source.list_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return False
        for line in content.splitlines():
            stripped = line.strip()
            if stripped.startswith("#"):
                continue
            if normalize_source_line(stripped) == wanted:
                return True
        return False

    def ppa_registered(self, ppa: str) -> bool:
        """
        True when any file in the sources directory references the PPA,
        whichever tool or method wrote it.
        """
        fragment = ppa_fragment(ppa)
        sources_dir = self.settings.apt.sources_dir
        if not sources_dir.is_dir():
            return False
        for path in sorted(sources_dir.iterdir()):
            if path.suffix not in (".list", ".sources") or not path.is_file():
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except OSError:
                continue
            for line in content.splitlines():
                stripped = line.strip()
                if stripped.startswith("#"):
                    continue
                if (
                    f"launchpadcontent.net/{fragment}" in stripped
                    or f"launchpad.net/{fragment}" in stripped
                ):
                    return True
        return False

    # --- mutations ---

    def register_repository(
        self, source: AptSource, signing_key: SigningKey
    ) -> RegisterOutcome:
        """
        Ensures the signing key and the source entry are present.

        Returns:
            ALREADY_REGISTERED when nothing had to be written, REGISTERED
            after writing, FAILED (with a reason) when the key could not be
            fetched or a file could not be written.
        """
        if (
            self.source_registered(source)
            and signing_key.keyring_path.exists()
        ):
            log_step(
                f"{self.symbols.get('info', 'ℹ️')} Repository already registered in {source.list_path}.",
                "info",
                self.logger,
                self.settings,
            )
            return RegisterOutcome(RegisterStatus.ALREADY_REGISTERED)

        log_step(
            f"{self.symbols.get('gear', '⚙️')} Adding signing key from {signing_key.url}...",
            "info",
            self.logger,
            self.settings,
        )
        try:
            key_data = fetch_url(
                signing_key.url, self.settings, current_logger=self.logger
            )
        except requests.RequestException as e:
            reason = f"could not fetch signing key from {signing_key.url}: {e}"
            log_step(
                f"{self.symbols.get('warning', '!')} {reason}",
                "warning",
                self.logger,
                self.settings,
            )
            return RegisterOutcome(RegisterStatus.FAILED, reason)

        try:
            self._write_key(key_data, signing_key.keyring_path)
            self._append_source(source)
        except OSError as e:
            reason = f"could not write repository files: {e}"
            log_step(
                f"{self.symbols.get('warning', '!')} {reason}",
                "warning",
                self.logger,
                self.settings,
            )
            return RegisterOutcome(RegisterStatus.FAILED, reason)

        log_step(
            f"{self.symbols.get('success', '✅')} Repository added to {source.list_path}.",
            "success",
            self.logger,
            self.settings,
        )
        return RegisterOutcome(RegisterStatus.REGISTERED)

    def register_ppa(
        self,
        ppa: str,
        fallback: Optional[Tuple[AptSource, SigningKey]] = None,
    ) -> RegisterOutcome:
        """
        Adds a Launchpad PPA with add-apt-repository.

        When that fails and `fallback` is given, the PPA is registered as a
        plain source entry signed by a key fetched from the keyserver. The
        fallback is best effort; if it fails too the outcome is FAILED.
        """
        if self.ppa_registered(ppa):
            log_step(
                f"{self.symbols.get('info', 'ℹ️')} PPA '{ppa}' is already registered.",
                "info",
                self.logger,
                self.settings,
            )
            return RegisterOutcome(RegisterStatus.ALREADY_REGISTERED)

        try:
            run_elevated_command(
                ["add-apt-repository", "-y", ppa],
                self.settings,
                capture_output=True,
                current_logger=self.logger,
            )
            log_step(
                f"{self.symbols.get('success', '✅')} PPA '{ppa}' added.",
                "success",
                self.logger,
                self.settings,
            )
            return RegisterOutcome(RegisterStatus.REGISTERED)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            primary_reason = describe_command_failure(e)

        if fallback is None:
            return RegisterOutcome(RegisterStatus.FAILED, primary_reason)

        log_step(
            f"{self.symbols.get('warning', '!')} Failed to add PPA '{ppa}' normally ({primary_reason}); trying the keyserver method...",
            "warning",
            self.logger,
            self.settings,
        )
        outcome = self.register_repository(*fallback)
        if not outcome.ok:
            return RegisterOutcome(
                RegisterStatus.FAILED,
                f"{primary_reason}; keyserver fallback: {outcome.reason}",
            )
        return RegisterOutcome(
            RegisterStatus.REGISTERED, "registered via keyserver fallback"
        )

    def _write_key(self, key_data: bytes, keyring_path: Path) -> None:
        keyring_path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(keyring_path.parent), prefix=f".{keyring_path.name}."
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(key_data)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, keyring_path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _append_source(self, source: AptSource) -> None:
        if self.source_registered(source):
            return
        source.list_path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        needs_newline = False
        if source.list_path.exists():
            existing = source.list_path.read_text(encoding="utf-8")
            needs_newline = bool(existing) and not existing.endswith("\n")
        with open(source.list_path, "a", encoding="utf-8") as f:
            if needs_newline:
                f.write("\n")
            f.write(normalize_source_line(source.entry) + "\n")
        os.chmod(source.list_path, 0o644)

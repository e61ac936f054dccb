# settings/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for the bootstrap configuration.

This module defines the structured settings for a bootstrap run,
including defaults, type annotations, and descriptions.
It utilizes Pydantic for data validation and settings management.
"""

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Default Static Values (can be overridden by config file/env/cli) ---
TIMEOUT_SECONDS_DEFAULT: int = 600

APT_HOOKS_DEFAULT: List[str] = ["/etc/apt/apt.conf.d/50command-not-found"]
APT_HOOK_BACKUP_SUFFIX_DEFAULT: str = ".bootstrap-disabled"
SOURCES_DIR_DEFAULT: str = "/etc/apt/sources.list.d"
KEYRINGS_DIR_DEFAULT: str = "/etc/apt/keyrings"

DOCKER_GPG_URL_DEFAULT: str = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_REPO_URL_DEFAULT: str = "https://download.docker.com/linux/ubuntu"
DOCKER_PREREQUISITES_DEFAULT: List[str] = [
    "ca-certificates",
    "curl",
    "gnupg",
    "lsb-release",
]
DOCKER_PACKAGES_DEFAULT: List[str] = [
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
]
COMPOSE_PACKAGE_DEFAULT: str = "docker-compose-plugin"

DEADSNAKES_PPA_DEFAULT: str = "ppa:deadsnakes/ppa"
DEADSNAKES_KEYSERVER_URL_DEFAULT: str = (
    "https://keyserver.ubuntu.com/pks/lookup?op=get"
    "&search=0xF23C5A6CF475977595C89F51BA6932366A755776"
)
DEADSNAKES_REPO_URL_DEFAULT: str = (
    "http://ppa.launchpad.net/deadsnakes/ppa/ubuntu"
)
PYTHON_PACKAGE_PATTERN_DEFAULT: str = r"^python3\.[0-9]+$"
GET_PIP_URL_DEFAULT: str = "https://bootstrap.pypa.io/get-pip.py"

SYMBOLS_DEFAULT: Dict[str, str] = {
    "success": "✅",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "step": "➡️",
    "gear": "⚙️",
    "package": "📦",
    "rocket": "🚀",
    "sparkles": "✨",
    "critical": "🔥",
    "debug": "🐛",
}


class AptSettings(BaseModel):
    """Package manager behaviour."""

    flaky_hooks: List[Path] = Field(
        default_factory=lambda: [Path(p) for p in APT_HOOKS_DEFAULT],
        description="Optional apt hooks disabled while the package index is refreshed.",
    )
    hook_backup_suffix: str = Field(
        default=APT_HOOK_BACKUP_SUFFIX_DEFAULT,
        description="Suffix used when moving a flaky hook aside.",
    )
    reinstall_python_apt: bool = Field(
        default=True,
        description="Reinstall python3-apt before refreshing when apt_pkg cannot be imported.",
    )
    upgrade: bool = Field(
        default=True,
        description="Run 'apt-get upgrade' after the refresh when upgrades are pending.",
    )
    sources_dir: Path = Field(default=Path(SOURCES_DIR_DEFAULT))
    keyrings_dir: Path = Field(default=Path(KEYRINGS_DIR_DEFAULT))


class DockerSettings(BaseModel):
    """Docker Engine and Compose plugin settings."""

    gpg_url: HttpUrl = Field(default=DOCKER_GPG_URL_DEFAULT)
    repo_url: HttpUrl = Field(default=DOCKER_REPO_URL_DEFAULT)
    channel: str = Field(default="stable", description="Docker apt channel.")
    keyring_name: str = Field(default="docker.asc")
    source_list_name: str = Field(default="docker.list")
    prerequisites: List[str] = Field(
        default_factory=lambda: list(DOCKER_PREREQUISITES_DEFAULT)
    )
    packages: List[str] = Field(
        default_factory=lambda: list(DOCKER_PACKAGES_DEFAULT)
    )
    compose_package: str = Field(default=COMPOSE_PACKAGE_DEFAULT)
    service_name: str = Field(default="docker")


class PythonSettings(BaseModel):
    """Settings for the deadsnakes Python interpreter install."""

    enabled: bool = Field(default=True)
    version: Optional[str] = Field(
        default=None,
        description="Pin a Python version (e.g. '3.12'). Newest available when unset.",
    )
    ppa: str = Field(default=DEADSNAKES_PPA_DEFAULT)
    legacy_key_fallback: bool = Field(
        default=True,
        description="Fall back to a keyserver key + source entry when add-apt-repository fails.",
    )
    keyserver_url: HttpUrl = Field(default=DEADSNAKES_KEYSERVER_URL_DEFAULT)
    fallback_repo_url: str = Field(default=DEADSNAKES_REPO_URL_DEFAULT)
    fallback_keyring_name: str = Field(default="deadsnakes.asc")
    fallback_source_list_name: str = Field(default="deadsnakes.list")
    package_pattern: str = Field(default=PYTHON_PACKAGE_PATTERN_DEFAULT)
    extras: List[str] = Field(
        default_factory=lambda: ["venv", "pip"],
        description="Optional pythonX.Y-<extra> packages; failures are warnings.",
    )
    get_pip_url: HttpUrl = Field(default=GET_PIP_URL_DEFAULT)
    manage_alternatives: bool = Field(
        default=True,
        description="Register the interpreter as the 'python3' alternative.",
    )
    alternatives_priority: int = Field(default=100)

    @field_validator("version")
    @classmethod
    def _version_is_dotted_numeric(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        parts = value.split(".")
        if len(parts) < 2 or not all(part.isdigit() for part in parts):
            raise ValueError(
                f"Python version '{value}' must look like '3.12'."
            )
        return value


class BootstrapSettings(BaseSettings):
    """Main bootstrap settings."""

    model_config = SettingsConfigDict(
        env_prefix="BOOTSTRAP_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    target_user: Optional[str] = Field(
        default=None,
        description="User added to the groups. Defaults to $SUDO_USER, then the login name.",
    )
    required_groups: List[str] = Field(default_factory=lambda: ["docker"])
    optional_groups: List[str] = Field(default_factory=lambda: ["ubuntu"])
    timeout_seconds: int = Field(
        default=TIMEOUT_SECONDS_DEFAULT,
        gt=0,
        description="Wall-clock budget for the whole pipeline.",
    )
    http_timeout_seconds: int = Field(default=30, gt=0)
    log_level: str = Field(default="INFO")
    log_file: Optional[Path] = Field(default=None)
    color: bool = Field(default=True)
    compose_project_dir: Optional[Path] = Field(
        default=None,
        description="Run 'docker compose up -d' here after a successful bootstrap.",
    )

    apt: AptSettings = Field(default_factory=AptSettings)
    docker: DockerSettings = Field(default_factory=DockerSettings)
    python: PythonSettings = Field(default_factory=PythonSettings)

    symbols: Dict[str, str] = Field(
        default_factory=lambda: dict(SYMBOLS_DEFAULT)
    )

# tests/conftest.py
import logging
from typing import Iterable, Optional
from unittest.mock import MagicMock

import pytest

from provisioner.base_component import BaseComponent, ProbeResult, ProbeState
from settings.config_models import AptSettings, BootstrapSettings


class FakeHost:
    """In-memory stand-in for the host: component states and an action log."""

    def __init__(self):
        self.states = {}
        self.actions = []


class FakeHostComponent(BaseComponent):
    """
    Component whose probe reads the FakeHost and whose actions change it.

    `broken_install` makes install/activate "succeed" without changing the
    host, so the re-probe finds the component unchanged.
    """

    def __init__(
        self,
        settings: BootstrapSettings,
        host: FakeHost,
        name: str,
        dependencies: Iterable[str] = (),
        install_error: Optional[BaseException] = None,
        activate_error: Optional[BaseException] = None,
        broken_install: bool = False,
    ):
        super().__init__(
            settings,
            logger=MagicMock(spec=logging.Logger),
            apt_manager=MagicMock(),
            registrar=MagicMock(),
        )
        self.metadata = {
            "name": name,
            "dependencies": list(dependencies),
            "description": f"fake {name}",
        }
        self.host = host
        self.install_error = install_error
        self.activate_error = activate_error
        self.broken_install = broken_install

    def probe(self) -> ProbeResult:
        state = self.host.states.get(self.name, ProbeState.ABSENT)
        version = "1.0" if state is ProbeState.SATISFIED else None
        return ProbeResult(state, f"{self.name} is {state.value}", version)

    def install(self) -> None:
        self.host.actions.append(("install", self.name))
        if self.install_error is not None:
            raise self.install_error
        if not self.broken_install:
            self.host.states[self.name] = ProbeState.SATISFIED

    def activate(self) -> None:
        self.host.actions.append(("activate", self.name))
        if self.activate_error is not None:
            raise self.activate_error
        if not self.broken_install:
            self.host.states[self.name] = ProbeState.SATISFIED


@pytest.fixture
def settings(tmp_path):
    """BootstrapSettings whose apt paths all live under tmp_path."""
    return BootstrapSettings(
        target_user="alice",
        apt=AptSettings(
            flaky_hooks=[tmp_path / "apt.conf.d" / "50command-not-found"],
            sources_dir=tmp_path / "sources.list.d",
            keyrings_dir=tmp_path / "keyrings",
        ),
        symbols={
            "success": "✅",
            "error": "❌",
            "warning": "!",
            "info": "ℹ️",
            "gear": "⚙️",
        },
    )


@pytest.fixture
def mock_logger():
    """Fixture to create a mock logger for testing."""
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def fake_host():
    return FakeHost()


@pytest.fixture
def make_component(settings, fake_host):
    """Factory for FakeHostComponent instances sharing one FakeHost."""

    def _make(name, dependencies=(), **kwargs):
        return FakeHostComponent(
            settings, fake_host, name, dependencies, **kwargs
        )

    return _make

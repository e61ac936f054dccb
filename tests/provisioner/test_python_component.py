import subprocess
from unittest.mock import MagicMock

import pytest

from common.debian.apt_manager import AptManager
from common.debian.repository_registrar import (
    RegisterOutcome,
    RegisterStatus,
    RepositoryRegistrar,
)
from common.version_utils import NoCandidatesError
from provisioner.base_component import DependencyUnavailableError, ProbeState
from provisioner.python_component import PythonInterpreterComponent


@pytest.fixture(autouse=True)
def codename(mocker):
    return mocker.patch(
        "provisioner.python_component.get_distro_codename", return_value="jammy"
    )


@pytest.fixture
def bin_dir(mocker, tmp_path):
    path = tmp_path / "bin"
    path.mkdir()
    mocker.patch("provisioner.python_component.BIN_DIR", path)
    return path


@pytest.fixture
def mock_apt_manager():
    apt_manager = MagicMock(spec=AptManager)
    apt_manager.search_names.return_value = ["python3.9", "python3.10", "python3.12"]
    apt_manager.is_package_installed.return_value = True
    apt_manager.install.return_value = True
    return apt_manager


@pytest.fixture
def mock_registrar():
    registrar = MagicMock(spec=RepositoryRegistrar)
    registrar.ppa_registered.return_value = True
    registrar.register_ppa.return_value = RegisterOutcome(RegisterStatus.REGISTERED)
    return registrar


@pytest.fixture
def mock_run(mocker):
    return mocker.patch(
        "provisioner.python_component.run_command",
        return_value=subprocess.CompletedProcess(
            ["python3.12", "--version"], 0, stdout="Python 3.12.4\n", stderr=""
        ),
    )


@pytest.fixture
def mock_run_elevated(mocker):
    return mocker.patch("provisioner.python_component.run_elevated_command")


@pytest.fixture
def component(settings, mock_logger, mock_apt_manager, mock_registrar):
    return PythonInterpreterComponent(
        settings,
        mock_logger,
        apt_manager=mock_apt_manager,
        registrar=mock_registrar,
    )


def _install_interpreter(bin_dir, version="3.12", default=True):
    binary = bin_dir / f"python{version}"
    binary.write_text("#!/bin/sh\n")
    if default:
        (bin_dir / "python3").symlink_to(binary)
    return binary


def test_target_version_is_newest_in_index(component):
    assert component.target_version() == "3.12"


def test_target_version_pinned(component, settings, mock_apt_manager):
    settings.python.version = "3.11"

    assert component.target_version() == "3.11"
    mock_apt_manager.search_names.assert_not_called()


def test_target_version_without_candidates(component, mock_apt_manager):
    mock_apt_manager.search_names.return_value = []

    with pytest.raises(NoCandidatesError):
        component.target_version()


def test_probe_absent_without_ppa(component, mock_registrar):
    mock_registrar.ppa_registered.return_value = False

    probe = component.probe()

    assert probe.state is ProbeState.ABSENT
    assert "not registered" in probe.detail


def test_probe_absent_without_candidates(component, mock_apt_manager):
    mock_apt_manager.search_names.return_value = []

    assert component.probe().state is ProbeState.ABSENT


def test_probe_absent_when_index_query_fails(component, mock_apt_manager):
    mock_apt_manager.search_names.side_effect = subprocess.CalledProcessError(
        100, ["apt-cache", "search"]
    )

    probe = component.probe()

    assert probe.state is ProbeState.ABSENT
    assert "package index query failed" in probe.detail


def test_probe_absent_when_package_missing(component, mock_apt_manager, bin_dir):
    mock_apt_manager.is_package_installed.return_value = False

    probe = component.probe()

    assert probe.state is ProbeState.ABSENT
    assert probe.detail == "python3.12 not installed"


def test_probe_satisfied(component, bin_dir, mock_run):
    _install_interpreter(bin_dir)

    probe = component.probe()

    assert probe.state is ProbeState.SATISFIED
    assert probe.version == "3.12.4"


def test_probe_absent_when_default_points_elsewhere(component, bin_dir, mock_run):
    _install_interpreter(bin_dir, default=False)
    old = bin_dir / "python3.10"
    old.write_text("#!/bin/sh\n")
    (bin_dir / "python3").symlink_to(old)

    probe = component.probe()

    assert probe.state is ProbeState.ABSENT
    assert "does not point to" in probe.detail


def test_probe_ignores_default_without_alternatives(
    component, settings, bin_dir, mock_run
):
    settings.python.manage_alternatives = False
    _install_interpreter(bin_dir, default=False)

    assert component.probe().state is ProbeState.SATISFIED


def test_install(
    component, settings, bin_dir, mock_apt_manager, mock_registrar, mock_run_elevated
):
    component.install()

    mock_registrar.register_ppa.assert_called_once()
    assert mock_registrar.register_ppa.call_args.args[0] == "ppa:deadsnakes/ppa"
    mock_apt_manager.refresh_index.assert_called_once()
    installed = [call.args[0] for call in mock_apt_manager.install.call_args_list]
    assert installed == [
        ["software-properties-common"],
        ["python3.12"],
        ["python3.12-venv"],
        ["python3.12-pip"],
    ]
    binary = str(bin_dir / "python3.12")
    commands = [call.args[0] for call in mock_run_elevated.call_args_list]
    assert commands == [
        [
            "update-alternatives",
            "--install",
            str(bin_dir / "python3"),
            "python3",
            binary,
            "100",
        ],
        ["update-alternatives", "--set", "python3", binary],
    ]


def test_install_with_registered_ppa_skips_refresh(
    component, settings, mock_apt_manager, mock_registrar, mock_run_elevated
):
    settings.python.manage_alternatives = False
    mock_registrar.register_ppa.return_value = RegisterOutcome(
        RegisterStatus.ALREADY_REGISTERED
    )

    component.install()

    mock_apt_manager.refresh_index.assert_not_called()
    mock_run_elevated.assert_not_called()


def test_install_ppa_unavailable(component, mock_apt_manager, mock_registrar):
    mock_registrar.register_ppa.return_value = RegisterOutcome(
        RegisterStatus.FAILED, "add-apt-repository failed"
    )

    with pytest.raises(DependencyUnavailableError, match="add-apt-repository failed"):
        component.install()

    assert mock_apt_manager.install.call_count == 1


def test_install_alternatives_failure_propagates(
    component, bin_dir, mock_run_elevated
):
    mock_run_elevated.side_effect = subprocess.CalledProcessError(
        2, ["update-alternatives", "--install"]
    )

    with pytest.raises(subprocess.CalledProcessError):
        component.install()


def test_missing_pip_package_falls_back_to_get_pip(
    mocker, component, settings, bin_dir, mock_apt_manager, mock_run_elevated
):
    settings.python.manage_alternatives = False
    mock_apt_manager.install.side_effect = (
        lambda packages, raise_error=False: not packages[0].endswith("-pip")
    )
    fetch = mocker.patch(
        "provisioner.python_component.fetch_url", return_value=b"print('get-pip')"
    )
    mocker.patch(
        "provisioner.python_component.run_command",
        side_effect=[
            subprocess.CompletedProcess([], 1, stdout="", stderr="No module named pip"),
            subprocess.CompletedProcess([], 0, stdout="pip 24.2\n", stderr=""),
        ],
    )

    component.install()

    fetch.assert_called_once()
    assert fetch.call_args.args[0] == "https://bootstrap.pypa.io/get-pip.py"
    mock_run_elevated.assert_called_once()
    assert mock_run_elevated.call_args.args[0] == [str(bin_dir / "python3.12"), "-"]
    assert mock_run_elevated.call_args.kwargs["cmd_input"] == "print('get-pip')"


def test_fallback_repository(component, settings):
    source, key = component._fallback_repository()

    keyring = settings.apt.keyrings_dir / "deadsnakes.asc"
    assert source.list_path == settings.apt.sources_dir / "deadsnakes.list"
    assert source.entry == (
        f"deb [signed-by={keyring}] "
        "http://ppa.launchpad.net/deadsnakes/ppa/ubuntu jammy main"
    )
    assert key.keyring_path == keyring
    assert "keyserver.ubuntu.com" in key.url


def test_fallback_repository_disabled(component, settings):
    settings.python.legacy_key_fallback = False

    assert component._fallback_repository() is None


def test_fallback_repository_without_codename(component, codename):
    codename.return_value = None

    assert component._fallback_repository() is None

import logging
import subprocess
from unittest.mock import MagicMock

import pytest

from common.command_utils import (
    command_exists,
    describe_command_failure,
    log_step,
    run_command,
    run_elevated_command,
)
from common.logging_config import SUCCESS


@pytest.fixture
def mock_subprocess_run(mocker):
    return mocker.patch("common.command_utils.subprocess.run")


def test_log_step_maps_success_level(mock_logger, settings):
    log_step("Docker installed.", "success", mock_logger, settings)

    mock_logger.log.assert_called_once_with(
        SUCCESS, "Docker installed.", exc_info=False
    )


def test_log_step_unknown_level_logs_info(mock_logger):
    log_step("hello", "chatty", mock_logger)

    mock_logger.log.assert_called_once_with(
        logging.INFO, "hello", exc_info=False
    )


def test_run_command_success(mock_subprocess_run, mock_logger, settings):
    """Test run_command returns the completed process and logs the invocation."""
    completed = subprocess.CompletedProcess(
        ["echo", "hi"], 0, stdout="hi\n", stderr=""
    )
    mock_subprocess_run.return_value = completed

    result = run_command(
        ["echo", "hi"],
        settings,
        capture_output=True,
        current_logger=mock_logger,
    )

    assert result is completed
    mock_subprocess_run.assert_called_once_with(
        ["echo", "hi"],
        check=True,
        shell=False,
        capture_output=True,
        text=True,
        input=None,
        cwd=None,
        env=None,
    )
    logged = [call.args for call in mock_logger.log.call_args_list]
    assert (logging.INFO, "⚙️ Executing: echo hi") in logged
    assert (logging.DEBUG, "   stdout: hi") in logged


def test_run_command_quiet_logs_at_debug(
    mock_subprocess_run, mock_logger, settings
):
    mock_subprocess_run.return_value = subprocess.CompletedProcess(
        ["systemctl", "is-active", "docker"], 3, stdout="", stderr=""
    )

    run_command(
        ["systemctl", "is-active", "docker"],
        settings,
        check=False,
        current_logger=mock_logger,
        quiet=True,
    )

    assert all(
        call.args[0] == logging.DEBUG for call in mock_logger.log.call_args_list
    )


def test_run_command_failure_is_logged_and_reraised(
    mock_subprocess_run, mock_logger, settings
):
    mock_subprocess_run.side_effect = subprocess.CalledProcessError(
        100, ["apt-get", "update"], stderr="E: Failed to fetch\n"
    )

    with pytest.raises(subprocess.CalledProcessError):
        run_command(
            ["apt-get", "update"],
            settings,
            capture_output=True,
            current_logger=mock_logger,
        )

    messages = [call.args[1] for call in mock_logger.log.call_args_list]
    assert any("failed (rc 100)" in m for m in messages)
    assert "   stderr: E: Failed to fetch" in messages


def test_run_command_missing_executable_reraised(
    mock_subprocess_run, mock_logger, settings
):
    mock_subprocess_run.side_effect = FileNotFoundError(
        2, "No such file or directory", "lsb_release"
    )

    with pytest.raises(FileNotFoundError):
        run_command(["lsb_release", "-cs"], settings, current_logger=mock_logger)


def test_run_elevated_command_prepends_sudo_when_not_root(mocker, settings):
    mocker.patch("common.command_utils.os.geteuid", return_value=1000)
    run_command_mock = mocker.patch(
        "common.command_utils.run_command",
        return_value=MagicMock(returncode=0),
    )

    run_elevated_command(["apt-get", "update"], settings)

    assert run_command_mock.call_args.args[0] == ["sudo", "apt-get", "update"]


def test_run_elevated_command_as_root_runs_directly(mocker, settings):
    mocker.patch("common.command_utils.os.geteuid", return_value=0)
    run_command_mock = mocker.patch(
        "common.command_utils.run_command",
        return_value=MagicMock(returncode=0),
    )

    run_elevated_command(["usermod", "-aG", "docker", "alice"], settings)

    assert run_command_mock.call_args.args[0] == [
        "usermod",
        "-aG",
        "docker",
        "alice",
    ]


def test_command_exists(mocker):
    mocker.patch(
        "common.command_utils.shutil.which",
        side_effect=lambda name: "/usr/bin/docker" if name == "docker" else None,
    )

    assert command_exists("docker") is True
    assert command_exists("podman") is False


def test_describe_command_failure_uses_last_stderr_line():
    error = subprocess.CalledProcessError(
        100,
        ["apt-get", "install", "-y", "docker-ce"],
        output="Reading package lists...\n",
        stderr="W: something\nE: Unable to locate package docker-ce\n",
    )

    assert describe_command_failure(error) == (
        "`apt-get install -y docker-ce` failed (rc 100): "
        "E: Unable to locate package docker-ce"
    )


def test_describe_command_failure_without_output():
    error = subprocess.CalledProcessError(1, ["systemctl", "start", "docker"])

    assert describe_command_failure(error) == "`systemctl start docker` failed (rc 1)"


def test_describe_command_failure_other_errors():
    missing = FileNotFoundError(2, "No such file or directory", "docker")

    assert describe_command_failure(missing) == "command not found: docker"
    assert describe_command_failure(RuntimeError("boom")) == "boom"
    assert describe_command_failure(RuntimeError()) == "RuntimeError"

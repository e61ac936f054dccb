import subprocess

import pytest

from provisioner.compose import compose_up, find_compose_file


def test_find_compose_file_prefers_the_modern_name(tmp_path):
    (tmp_path / "docker-compose.yml").write_text("services: {}\n")
    (tmp_path / "compose.yaml").write_text("services: {}\n")

    assert find_compose_file(tmp_path) == tmp_path / "compose.yaml"


def test_find_compose_file_without_one(tmp_path):
    assert find_compose_file(tmp_path) is None


def test_compose_up(mocker, settings, mock_logger, tmp_path):
    compose_file = tmp_path / "docker-compose.yml"
    compose_file.write_text("services: {}\n")
    run = mocker.patch("provisioner.compose.run_elevated_command")

    compose_up(tmp_path, settings, mock_logger)

    run.assert_called_once_with(
        ["docker", "compose", "-f", str(compose_file), "up", "-d"],
        settings,
        current_logger=mock_logger,
        cwd=str(tmp_path),
    )


def test_compose_up_without_compose_file(mocker, settings, tmp_path):
    run = mocker.patch("provisioner.compose.run_elevated_command")

    with pytest.raises(FileNotFoundError, match="No compose file"):
        compose_up(tmp_path, settings)

    run.assert_not_called()


def test_compose_up_failure_propagates(mocker, settings, tmp_path):
    (tmp_path / "compose.yml").write_text("services: {}\n")
    mocker.patch(
        "provisioner.compose.run_elevated_command",
        side_effect=subprocess.CalledProcessError(1, ["docker", "compose"]),
    )

    with pytest.raises(subprocess.CalledProcessError):
        compose_up(tmp_path, settings)

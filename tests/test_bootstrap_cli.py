import os

import pytest
import yaml

import bootstrap_host


@pytest.fixture(autouse=True)
def quiet_logging(mocker, monkeypatch):
    for key in list(os.environ):
        if key.startswith("BOOTSTRAP_"):
            monkeypatch.delenv(key)
    return mocker.patch("bootstrap_host.setup_logging")


@pytest.fixture
def mock_pipeline(mocker):
    pipeline_class = mocker.patch("bootstrap_host.BootstrapPipeline")
    pipeline_class.return_value.run.return_value = 0
    pipeline_class.return_value.run_fix_user.return_value = 0
    return pipeline_class


@pytest.fixture
def missing_config(tmp_path):
    return ["--config-file", str(tmp_path / "missing.yaml")]


def test_parse_args_defaults():
    args = bootstrap_host.parse_args([])

    assert args.config_file is None
    assert args.user is None
    assert args.fix_user is False
    assert args.view_config is False
    assert args.skip_python is False


def test_parse_args_flags():
    args = bootstrap_host.parse_args(
        [
            "--user",
            "alice",
            "--log-level",
            "debug",
            "--timeout",
            "900",
            "--python-version",
            "3.12",
            "--compose-up",
            "/srv/stack",
            "--skip-upgrade",
            "--no-alternatives",
        ]
    )

    assert args.user == "alice"
    assert args.log_level == "DEBUG"
    assert args.timeout == 900
    assert args.python_version == "3.12"
    assert args.compose_up == "/srv/stack"
    assert args.skip_upgrade is True
    assert args.no_alternatives is True


def test_fix_user_and_view_config_are_exclusive():
    with pytest.raises(SystemExit):
        bootstrap_host.parse_args(["--fix-user", "--view-config"])


def test_main_runs_the_pipeline(mock_pipeline, missing_config, quiet_logging):
    assert bootstrap_host.main(missing_config + ["--user", "alice"]) == 0

    settings = mock_pipeline.call_args.args[0]
    assert settings.target_user == "alice"
    mock_pipeline.return_value.run.assert_called_once()
    mock_pipeline.return_value.run_fix_user.assert_not_called()
    assert quiet_logging.call_count == 2


def test_main_propagates_pipeline_exit_code(mock_pipeline, missing_config):
    mock_pipeline.return_value.run.return_value = 1

    assert bootstrap_host.main(missing_config) == 1


def test_main_fix_user(mock_pipeline, missing_config):
    assert bootstrap_host.main(missing_config + ["--fix-user"]) == 0

    mock_pipeline.return_value.run_fix_user.assert_called_once()
    mock_pipeline.return_value.run.assert_not_called()


def test_main_view_config(mock_pipeline, missing_config, capsys):
    assert bootstrap_host.main(missing_config + ["--view-config", "--user", "bob"]) == 0

    printed = yaml.safe_load(capsys.readouterr().out)
    assert printed["target_user"] == "bob"
    assert printed["python"]["ppa"] == "ppa:deadsnakes/ppa"
    mock_pipeline.assert_not_called()


def test_main_configuration_error(mock_pipeline, missing_config):
    assert bootstrap_host.main(missing_config + ["--python-version", "newest"]) == 1

    mock_pipeline.assert_not_called()

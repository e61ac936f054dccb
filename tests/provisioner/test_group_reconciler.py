import logging
import subprocess

import pytest

from provisioner.group_reconciler import MembershipOutcome, ensure_group_membership


@pytest.fixture
def groups(mocker):
    return {
        "exists": mocker.patch(
            "provisioner.group_reconciler.group_exists", return_value=True
        ),
        "member": mocker.patch(
            "provisioner.group_reconciler.user_in_group", return_value=False
        ),
        "add": mocker.patch("provisioner.group_reconciler.add_user_to_group"),
    }


def _levels(mock_logger):
    return {call.args[0] for call in mock_logger.log.call_args_list}


def test_missing_group_is_skipped(groups, settings, mock_logger):
    groups["exists"].return_value = False

    membership = ensure_group_membership(
        "alice", "ubuntu", settings, mock_logger, required=False
    )

    assert membership.outcome is MembershipOutcome.GROUP_ABSENT
    assert not membership.succeeded
    assert not membership.required
    groups["add"].assert_not_called()


def test_existing_member_is_left_alone(groups, settings, mock_logger):
    groups["member"].return_value = True

    membership = ensure_group_membership("alice", "docker", settings, mock_logger)

    assert membership.outcome is MembershipOutcome.ALREADY_MEMBER
    assert membership.succeeded
    assert not membership.session_restart_required
    groups["add"].assert_not_called()


def test_user_is_added(groups, settings, mock_logger):
    membership = ensure_group_membership("alice", "docker", settings, mock_logger)

    assert membership.outcome is MembershipOutcome.ADDED
    assert membership.succeeded
    assert membership.session_restart_required
    groups["add"].assert_called_once_with("alice", "docker", settings, mock_logger)
    messages = [call.args[1] for call in mock_logger.log.call_args_list]
    assert any("newgrp docker" in m for m in messages)


def test_required_group_failure_logs_error(groups, settings, mock_logger):
    groups["add"].side_effect = subprocess.CalledProcessError(
        6, ["usermod", "-aG", "docker", "alice"], stderr="usermod: user 'alice' does not exist\n"
    )

    membership = ensure_group_membership("alice", "docker", settings, mock_logger)

    assert membership.outcome is MembershipOutcome.FAILED
    assert "does not exist" in membership.detail
    assert logging.ERROR in _levels(mock_logger)


def test_optional_group_failure_is_a_warning(groups, settings, mock_logger):
    groups["add"].side_effect = subprocess.CalledProcessError(
        1, ["usermod", "-aG", "ubuntu", "alice"]
    )

    membership = ensure_group_membership(
        "alice", "ubuntu", settings, mock_logger, required=False
    )

    assert membership.outcome is MembershipOutcome.FAILED
    assert logging.ERROR not in _levels(mock_logger)
    assert logging.WARNING in _levels(mock_logger)

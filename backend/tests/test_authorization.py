"""
🧪 授權守門員測試
"""

import pytest

from giftgate.core.errors import AuthorizationError
from giftgate.supervisor.authorization import (
    MSG_NOT_APPROVER,
    MSG_NOT_ORIGINATOR,
    MSG_WRONG_CHANNEL,
    StaticRoleDirectory,
)

from conftest import APPROVER, BOTH_ROLES, COMMAND_CHANNEL, NOBODY, ORIGINATOR, OTHER_CHANNEL


def test_origin_requires_channel_and_role(gate):
    assert gate.authorize_origin(ORIGINATOR, COMMAND_CHANNEL)
    assert not gate.authorize_origin(ORIGINATOR, OTHER_CHANNEL)
    assert not gate.authorize_origin(APPROVER, COMMAND_CHANNEL)
    assert not gate.authorize_origin(NOBODY, COMMAND_CHANNEL)


def test_denial_reasons(gate):
    with pytest.raises(AuthorizationError, match=MSG_WRONG_CHANNEL):
        gate.check_origin(ORIGINATOR, OTHER_CHANNEL)
    with pytest.raises(AuthorizationError, match=MSG_NOT_ORIGINATOR):
        gate.check_origin(NOBODY, COMMAND_CHANNEL)
    with pytest.raises(AuthorizationError, match=MSG_NOT_APPROVER):
        gate.check_approval(ORIGINATOR)


def test_approval_has_no_channel_restriction(gate):
    assert gate.authorize_approval(APPROVER)
    assert not gate.authorize_approval(ORIGINATOR)


def test_roles_are_independent_and_self_approval_allowed(gate):
    assert gate.authorize_origin(BOTH_ROLES, COMMAND_CHANNEL)
    assert gate.authorize_approval(BOTH_ROLES)


def test_stats_count_outcomes(gate):
    gate.authorize_origin(ORIGINATOR, COMMAND_CHANNEL)
    gate.authorize_origin(ORIGINATOR, OTHER_CHANNEL)
    gate.authorize_approval(NOBODY)
    stats = gate.get_stats()
    assert stats["origin_allowed"] == 1
    assert stats["origin_denied"] == 1
    assert stats["approval_denied"] == 1


def test_static_directory_grant_and_revoke():
    roles = StaticRoleDirectory({"approver": [1, "2"]})
    assert roles.has_role("1", "approver")
    assert roles.has_role(2, "approver")
    roles.revoke("1", "approver")
    assert not roles.has_role("1", "approver")
    roles.grant("9", "originator")
    assert roles.members("originator") == {"9"}
    assert not roles.has_role("9", "missing-role")

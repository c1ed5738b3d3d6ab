"""Unit tests for sync job state machine"""

import pytest

from errors import InvalidStateError
from sync.status import (
    SyncJobStatus,
    can_transition,
    get_allowed_transitions,
    is_terminal,
    validate_transition,
)


class TestSyncJobTransitions:

    @pytest.mark.parametrize("current,new", [
        (SyncJobStatus.PENDING, SyncJobStatus.RUNNING),
        (SyncJobStatus.PENDING, SyncJobStatus.CANCELLED),
        (SyncJobStatus.RUNNING, SyncJobStatus.COMPLETED),
        (SyncJobStatus.RUNNING, SyncJobStatus.FAILED),
        (SyncJobStatus.RUNNING, SyncJobStatus.CANCELLED),
    ])
    def test_allowed(self, current, new):
        validate_transition(current, new)
        assert can_transition(current.value, new.value)

    @pytest.mark.parametrize("current,new", [
        (SyncJobStatus.PENDING, SyncJobStatus.COMPLETED),
        (SyncJobStatus.COMPLETED, SyncJobStatus.RUNNING),
        (SyncJobStatus.COMPLETED, SyncJobStatus.CANCELLED),
        (SyncJobStatus.FAILED, SyncJobStatus.RUNNING),
        (SyncJobStatus.CANCELLED, SyncJobStatus.RUNNING),
    ])
    def test_rejected(self, current, new):
        with pytest.raises(InvalidStateError):
            validate_transition(current, new)
        assert not can_transition(current, new)

    @pytest.mark.parametrize("status", [SyncJobStatus.COMPLETED, SyncJobStatus.FAILED, SyncJobStatus.CANCELLED])
    def test_terminal_states(self, status):
        assert is_terminal(status)
        assert get_allowed_transitions(status) == []

    def test_pending_is_not_terminal(self):
        assert not is_terminal("PENDING")

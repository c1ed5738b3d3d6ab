"""PriceListSyncJob status state machine.

State Flow:
    PENDING → RUNNING → COMPLETED|FAILED
    PENDING|RUNNING → CANCELLED (operator)

Terminal States: COMPLETED, FAILED, CANCELLED
"""

from enum import Enum
from typing import List, Union

from errors import InvalidStateError


class SyncJobStatus(str, Enum):
    """Sync job status enumeration."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class SyncJobType(str, Enum):
    """FULL_SYNC replaces a list from a complete payload; DELTA_SYNC applies changes since a token."""
    FULL_SYNC = "FULL_SYNC"
    DELTA_SYNC = "DELTA_SYNC"


ALLOWED_TRANSITIONS = {
    SyncJobStatus.PENDING: [SyncJobStatus.RUNNING, SyncJobStatus.CANCELLED],
    SyncJobStatus.RUNNING: [
        SyncJobStatus.COMPLETED,
        SyncJobStatus.FAILED,
        SyncJobStatus.CANCELLED,
    ],
    SyncJobStatus.COMPLETED: [],  # Terminal state
    SyncJobStatus.FAILED: [],  # Terminal state
    SyncJobStatus.CANCELLED: [],  # Terminal state
}

ACTIVE_STATUSES = (SyncJobStatus.PENDING, SyncJobStatus.RUNNING)


def validate_transition(
    current_status: Union[SyncJobStatus, str],
    new_status: Union[SyncJobStatus, str],
) -> None:
    """Validate that a state transition is allowed.

    Raises:
        InvalidStateError: If transition is not allowed
    """
    current_status = SyncJobStatus(current_status)
    new_status = SyncJobStatus(new_status)
    allowed = ALLOWED_TRANSITIONS.get(current_status, [])
    if new_status not in allowed:
        raise InvalidStateError(
            f"Invalid sync job transition: {current_status.value} -> {new_status.value}. "
            f"Allowed transitions from {current_status.value}: "
            f"{[s.value for s in allowed]}"
        )


def can_transition(
    current_status: Union[SyncJobStatus, str],
    new_status: Union[SyncJobStatus, str],
) -> bool:
    allowed = ALLOWED_TRANSITIONS.get(SyncJobStatus(current_status), [])
    return SyncJobStatus(new_status) in allowed


def is_terminal(status: Union[SyncJobStatus, str]) -> bool:
    return not ALLOWED_TRANSITIONS.get(SyncJobStatus(status))


def get_allowed_transitions(status: Union[SyncJobStatus, str]) -> List[SyncJobStatus]:
    return ALLOWED_TRANSITIONS.get(SyncJobStatus(status), [])

"""Session status state machine.

A session starts in ``draft``, moves to ``processing`` when the pipeline
claims it, and ends in exactly one of ``completed`` or ``failed``.
"""
from enum import Enum


class SessionStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


INITIAL_STATUS = SessionStatus.DRAFT

TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.DRAFT: frozenset({SessionStatus.PROCESSING}),
    SessionStatus.PROCESSING: frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
}


class IllegalStatusTransition(ValueError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Illegal session status transition: {current} -> {target}")
        self.current = current
        self.target = target


def ensure_transition(current: str | SessionStatus | None, target: str | SessionStatus) -> SessionStatus:
    """Validate ``current -> target`` and return the target as a SessionStatus.

    ``current=None`` means the row is being created, which is only allowed
    in the initial status.
    """
    try:
        target_status = SessionStatus(target)
    except ValueError:
        raise IllegalStatusTransition(str(current), str(target)) from None

    if current is None:
        if target_status is not INITIAL_STATUS:
            raise IllegalStatusTransition("new", target_status.value)
        return target_status

    current_status = SessionStatus(current)
    if target_status not in TRANSITIONS[current_status]:
        raise IllegalStatusTransition(current_status.value, target_status.value)
    return target_status
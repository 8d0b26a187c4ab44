import pytest

from critique.models.status import (
    INITIAL_STATUS,
    IllegalStatusTransition,
    SessionStatus,
    TRANSITIONS,
    ensure_transition,
)


def test_initial_and_terminal_statuses():
    assert INITIAL_STATUS is SessionStatus.DRAFT
    terminal = {s for s, targets in TRANSITIONS.items() if not targets}
    assert terminal == {SessionStatus.COMPLETED, SessionStatus.FAILED}


@pytest.mark.parametrize("current,target", [
    ("draft", "processing"),
    ("processing", "completed"),
    ("processing", "failed"),
])
def test_legal_transitions(current, target):
    assert ensure_transition(current, target) is SessionStatus(target)


@pytest.mark.parametrize("current,target", [
    ("draft", "completed"),
    ("draft", "failed"),
    ("completed", "processing"),
    ("failed", "processing"),
    ("completed", "failed"),
    ("processing", "draft"),
])
def test_illegal_transitions(current, target):
    with pytest.raises(IllegalStatusTransition) as excinfo:
        ensure_transition(current, target)
    assert excinfo.value.current == current
    assert excinfo.value.target == target


def test_new_row_must_start_in_draft():
    assert ensure_transition(None, "draft") is SessionStatus.DRAFT
    with pytest.raises(IllegalStatusTransition):
        ensure_transition(None, "processing")


def test_unknown_target_status():
    with pytest.raises(IllegalStatusTransition):
        ensure_transition("draft", "archived")

"""Student and feedback status rules."""
import pytest

from lara.errors import InvalidTransition
from lara.models import FeedbackStatus, StudentStatus
from lara.services import state_machine

S = StudentStatus


def test_happy_path_to_completed():
    status = state_machine.on_submit(S.ACTIVE)
    status = state_machine.on_generation_start(status)
    status = state_machine.on_generation_success(status)
    assert state_machine.on_approval(status, mastery_confirmed=True) == S.COMPLETED
    assert state_machine.on_approval(status, mastery_confirmed=False) == S.FEEDBACK_READY


def test_generation_failure_returns_to_queue():
    assert state_machine.on_generation_failure(S.GENERATING) == S.READY_FOR_FEEDBACK


@pytest.mark.parametrize("status", [S.GENERATING, S.SUBMITTED, S.REMOVED])
def test_submit_rejected_while_feedback_in_flight(status):
    with pytest.raises(InvalidTransition) as excinfo:
        state_machine.on_submit(status)
    assert excinfo.value.extra == {"current": status.value, "target": "ready_for_feedback"}


@pytest.mark.parametrize("status", [S.ACTIVE, S.READY_FOR_FEEDBACK, S.FEEDBACK_READY, S.REVISING, S.COMPLETED])
def test_submit_allowed(status):
    assert state_machine.on_submit(status) == S.READY_FOR_FEEDBACK


def test_generation_only_starts_from_ready():
    assert state_machine.can_transition(S.READY_FOR_FEEDBACK, S.GENERATING)
    for status in (S.ACTIVE, S.GENERATING, S.SUBMITTED, S.COMPLETED, S.REMOVED):
        assert not state_machine.can_transition(status, S.GENERATING)


def test_removed_is_terminal():
    for status in S:
        if status is not S.REMOVED:
            assert state_machine.on_removal(status) == S.REMOVED
    for target in S:
        assert not state_machine.can_transition(S.REMOVED, target)


def test_nothing_enters_revising():
    assert all(S.REVISING not in targets for targets in state_machine.STUDENT_TRANSITIONS.values())


def test_feedback_moves_forward_only():
    status = state_machine.advance_feedback(FeedbackStatus.PENDING, FeedbackStatus.GENERATED)
    assert state_machine.advance_feedback(status, FeedbackStatus.GENERATED) == FeedbackStatus.GENERATED
    status = state_machine.advance_feedback(status, FeedbackStatus.RELEASED)

    with pytest.raises(InvalidTransition):
        state_machine.advance_feedback(status, FeedbackStatus.GENERATED)
    with pytest.raises(InvalidTransition):
        state_machine.advance_feedback(FeedbackStatus.PENDING, FeedbackStatus.RELEASED)

"""Status rules for students and their submissions.

Pure logic. Operations read the current status, call into here to check it is
a legal predecessor and to compute the next one, then write the result back
themselves.

Student lifecycle::

    active -> ready_for_feedback -> generating -> submitted
                     ^                   |             |
                     +---- (failure) ----+             +-> feedback_ready
                                                       +-> completed
    any -> removed

``revising`` is declared for a student editing after feedback, but no
operation moves a student into it.
"""
from __future__ import annotations

from lara.errors import InvalidTransition
from lara.models import FeedbackStatus, StudentStatus

S = StudentStatus

STUDENT_TRANSITIONS: dict[StudentStatus, frozenset[StudentStatus]] = {
    S.ACTIVE: frozenset({S.READY_FOR_FEEDBACK, S.REMOVED}),
    S.READY_FOR_FEEDBACK: frozenset({S.READY_FOR_FEEDBACK, S.GENERATING, S.REMOVED}),
    S.GENERATING: frozenset({S.SUBMITTED, S.READY_FOR_FEEDBACK, S.REMOVED}),
    S.SUBMITTED: frozenset({S.FEEDBACK_READY, S.COMPLETED, S.REMOVED}),
    S.FEEDBACK_READY: frozenset({S.READY_FOR_FEEDBACK, S.REMOVED}),
    S.REVISING: frozenset({S.READY_FOR_FEEDBACK, S.REMOVED}),
    S.COMPLETED: frozenset({S.READY_FOR_FEEDBACK, S.REMOVED}),
    S.REMOVED: frozenset(),
}

FEEDBACK_TRANSITIONS: dict[FeedbackStatus, frozenset[FeedbackStatus]] = {
    FeedbackStatus.PENDING: frozenset({FeedbackStatus.GENERATED}),
    FeedbackStatus.GENERATED: frozenset({FeedbackStatus.GENERATED, FeedbackStatus.RELEASED}),
    FeedbackStatus.RELEASED: frozenset(),
}


def can_transition(current: StudentStatus, target: StudentStatus) -> bool:
    return target in STUDENT_TRANSITIONS.get(current, frozenset())


def transition(current: StudentStatus, target: StudentStatus) -> StudentStatus:
    """Return ``target`` if the move is legal, otherwise raise ``InvalidTransition``."""
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot move student from '{current.value}' to '{target.value}'.",
            current=current.value,
            target=target.value,
        )
    return target


def on_submit(current: StudentStatus) -> StudentStatus:
    return transition(current, S.READY_FOR_FEEDBACK)


def on_generation_start(current: StudentStatus) -> StudentStatus:
    return transition(current, S.GENERATING)


def on_generation_success(current: StudentStatus) -> StudentStatus:
    return transition(current, S.SUBMITTED)


def on_generation_failure(current: StudentStatus) -> StudentStatus:
    return transition(current, S.READY_FOR_FEEDBACK)


def on_approval(current: StudentStatus, mastery_confirmed: bool) -> StudentStatus:
    return transition(current, S.COMPLETED if mastery_confirmed else S.FEEDBACK_READY)


def on_removal(current: StudentStatus) -> StudentStatus:
    return transition(current, S.REMOVED)


def advance_feedback(current: FeedbackStatus, target: FeedbackStatus) -> FeedbackStatus:
    """Feedback only moves forward: pending -> generated -> released."""
    if target not in FEEDBACK_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(
            f"Feedback cannot move from '{current.value}' to '{target.value}'.",
            current=current.value,
            target=target.value,
        )
    return target

import pytest

from errors import InvalidTransitionError
from job_state import ALLOWED_TRANSITIONS, TERMINAL_STATES, can_transition, validate_transition
from models import PrintJobStatusEnum as S


@pytest.mark.parametrize("source, target", [
    (S.PENDING, S.PRINTING),
    (S.PENDING, S.CANCELLED),
    (S.PRINTING, S.COMPLETED),
    (S.PRINTING, S.FAILED),
    (S.PRINTING, S.CANCELLED),
    (S.PRINTING, S.PENDING),
    (S.FAILED, S.PENDING),
])
def test_allowed_transitions(source, target):
    assert can_transition(source, target)
    validate_transition(source, target)


@pytest.mark.parametrize("source, target", [
    (S.PENDING, S.COMPLETED),
    (S.PENDING, S.FAILED),
    (S.FAILED, S.PRINTING),
    (S.FAILED, S.CANCELLED),
    (S.COMPLETED, S.PENDING),
    (S.CANCELLED, S.PENDING),
])
def test_rejected_transitions(source, target):
    assert not can_transition(source, target)
    with pytest.raises(InvalidTransitionError) as exc:
        validate_transition(source, target)
    assert exc.value.from_status == source.value
    assert exc.value.to_status == target.value


def test_string_statuses_are_accepted():
    assert can_transition("pending", "printing")
    assert not can_transition("printing", "archived")


def test_unknown_state_message():
    with pytest.raises(InvalidTransitionError, match="Invalid from state: archived"):
        validate_transition("archived", S.PENDING)


def test_terminal_states():
    assert TERMINAL_STATES == {S.COMPLETED, S.CANCELLED}
    assert set(ALLOWED_TRANSITIONS) == set(S)


def test_rejection_lists_allowed_targets():
    with pytest.raises(InvalidTransitionError, match="Allowed transitions from 'completed': none"):
        validate_transition(S.COMPLETED, S.FAILED)

"""
Print job status transitions
"""

from typing import Dict, FrozenSet, Union

from errors import InvalidTransitionError
from models import PrintJobStatusEnum

S = PrintJobStatusEnum

ALLOWED_TRANSITIONS: Dict[PrintJobStatusEnum, FrozenSet[PrintJobStatusEnum]] = {
    S.PENDING: frozenset({S.PRINTING, S.CANCELLED}),
    # printing -> pending only when recovering jobs from a crashed process
    S.PRINTING: frozenset({S.COMPLETED, S.FAILED, S.CANCELLED, S.PENDING}),
    S.FAILED: frozenset({S.PENDING}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def _coerce(status: Union[str, PrintJobStatusEnum, None]):
    if status is None or isinstance(status, PrintJobStatusEnum):
        return status
    try:
        return PrintJobStatusEnum(status)
    except ValueError:
        return None


def can_transition(from_status, to_status) -> bool:
    source, target = _coerce(from_status), _coerce(to_status)
    if source is None or target is None:
        return False
    return target in ALLOWED_TRANSITIONS[source]


def validate_transition(from_status, to_status) -> None:
    """Raise InvalidTransitionError unless from_status -> to_status is allowed"""
    source, target = _coerce(from_status), _coerce(to_status)

    if source is None:
        raise InvalidTransitionError(from_status, to_status, f"Invalid from state: {from_status}")
    if target is None:
        raise InvalidTransitionError(from_status, to_status, f"Invalid to state: {to_status}")

    if target not in ALLOWED_TRANSITIONS[source]:
        allowed = ", ".join(sorted(t.value for t in ALLOWED_TRANSITIONS[source])) or "none"
        raise InvalidTransitionError(
            source.value, target.value,
            f"Transition from '{source.value}' to '{target.value}' is not allowed. "
            f"Allowed transitions from '{source.value}': {allowed}."
        )

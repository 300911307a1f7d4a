"""State machine for retry record outcomes.

A retry record moves strictly forward:

    pending --(2xx)-----------------------------> completed
    pending --(5xx / fault, under ceiling)------> pending (retries_count + 1)
    pending --(5xx / fault, at ceiling)---------> failed
    pending --(any other status, e.g. 4xx)------> completed_with_error

The functions here are pure: they compute the update for a replay result
and leave applying it to the replay processor.

Examples:
    >>> transition = next_transition(record, 503, now=utcnow())
    >>> transition.status
    <RetryStatus.PENDING: 'pending'>
    >>> transition.fields
    {'retries_count': 1, 'next_attempt_at': datetime(...)}
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from request_retry.exceptions import InvalidTransitionError
from request_retry.models import RetryRecord, RetryStatus

# Status code used when dispatching a replay raised instead of responding
FAULT_STATUS_CODE = 500

ALLOWED_TRANSITIONS: dict[RetryStatus, frozenset[RetryStatus]] = {
    RetryStatus.PENDING: frozenset(RetryStatus),
    RetryStatus.COMPLETED: frozenset(),
    RetryStatus.FAILED: frozenset(),
    RetryStatus.COMPLETED_WITH_ERROR: frozenset(),
}


class Outcome(str, Enum):
    """Classification of a replay response status."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"


def classify_status(status_code: int) -> Outcome:
    """Classify a replay response status.

    Args:
        status_code: HTTP status code returned by the replay

    Returns:
        SUCCESS for [200, 300), RETRYABLE for [500, 600), NON_RETRYABLE otherwise
    """
    if 200 <= status_code < 300:
        return Outcome.SUCCESS
    if 500 <= status_code < 600:
        return Outcome.RETRYABLE
    return Outcome.NON_RETRYABLE


def check_transition(current: RetryStatus, target: RetryStatus) -> None:
    """Ensure a status change only moves forward.

    Raises:
        InvalidTransitionError: If the record is already terminal.
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move retry record from {current.value} to {target.value}",
            current=current,
            target=target,
        )


class Transition:
    """The result of applying a replay outcome to a record.

    Attributes:
        status: Status the record moves to.
        fields: Partial update for the store.
        reason: Failure reason for terminal failures, None otherwise.
        status_code: Response status (or FAULT_STATUS_CODE) that caused it.
    """

    def __init__(
        self,
        status: RetryStatus,
        fields: dict[str, Any],
        status_code: int,
        reason: str | None = None,
    ) -> None:
        self.status = status
        self.fields = fields
        self.status_code = status_code
        self.reason = reason

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.status is RetryStatus.COMPLETED

    def __repr__(self) -> str:
        return f"Transition(status={self.status.value!r}, fields={self.fields!r})"


def next_transition(
    record: RetryRecord,
    status_code: int,
    now: datetime,
    reason: str | None = None,
) -> Transition:
    """Compute the transition for a replay result.

    Args:
        record: The pending record that was replayed.
        status_code: Response status, or FAULT_STATUS_CODE for a dispatch fault.
        now: Current time, used to schedule the next attempt.
        reason: Failure reason overriding the default (fault message).

    Returns:
        The Transition to apply.

    Raises:
        InvalidTransitionError: If the record is not pending.
    """
    outcome = classify_status(status_code)

    if outcome is Outcome.SUCCESS:
        check_transition(record.status, RetryStatus.COMPLETED)
        return Transition(
            status=RetryStatus.COMPLETED,
            fields={"status": RetryStatus.COMPLETED},
            status_code=status_code,
        )

    if outcome is Outcome.NON_RETRYABLE:
        check_transition(record.status, RetryStatus.COMPLETED_WITH_ERROR)
        return Transition(
            status=RetryStatus.COMPLETED_WITH_ERROR,
            fields={"status": RetryStatus.COMPLETED_WITH_ERROR},
            status_code=status_code,
            reason=reason or f"Response status: {status_code}",
        )

    retries_count = record.retries_count + 1
    if retries_count >= record.max_retries:
        check_transition(record.status, RetryStatus.FAILED)
        return Transition(
            status=RetryStatus.FAILED,
            fields={
                "status": RetryStatus.FAILED,
                # A ceiling of 0 still allows the one replay that got us here
                "retries_count": min(retries_count, record.max_retries),
            },
            status_code=status_code,
            reason=reason or f"Max retries reached with status {status_code}",
        )

    check_transition(record.status, RetryStatus.PENDING)
    return Transition(
        status=RetryStatus.PENDING,
        fields={
            "retries_count": retries_count,
            "next_attempt_at": now + timedelta(seconds=record.retry_delay),
        },
        status_code=status_code,
    )

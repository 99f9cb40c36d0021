"""
State machine for tasks, sub-tasks and their assignments.

Task status moves forward only::

    OPEN -> CLOSED -> ARCHIVED

Each assignee row has its own status::

    PENDING -> ACCEPTED | REJECTED
    ACCEPTED -> COMPLETED

Closing a task consults its completion policy. Every assignee that is not
COMPLETED is "open", REJECTED ones included. Under ALL_ASSIGNEES every open
assignee blocks a normal close; under ANY_ASSIGNEE at least one COMPLETED
assignee is needed once the task has any assignees. Open sub-tasks block a
normal close under both policies. A forced close skips the policy but
requires a reason whenever something was still open.

Everything here is pure; services load the rows inside their transaction and
pass the statuses in.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from grouptodo.server.errors import (
    CompletionPolicyNotMetError,
    ErrorKind,
    ForceCloseReasonRequiredError,
    InvalidAssignmentTransitionError,
    InvalidTaskTransitionError,
)
from grouptodo.storage.task import AssignmentStatus, CompletionPolicy, TaskStatus

TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.OPEN: frozenset([TaskStatus.CLOSED]),
    TaskStatus.CLOSED: frozenset([TaskStatus.ARCHIVED]),
    TaskStatus.ARCHIVED: frozenset(),
}

ASSIGNMENT_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.PENDING: frozenset([AssignmentStatus.ACCEPTED, AssignmentStatus.REJECTED]),
    AssignmentStatus.ACCEPTED: frozenset([AssignmentStatus.COMPLETED]),
    AssignmentStatus.REJECTED: frozenset(),
    AssignmentStatus.COMPLETED: frozenset(),
}

# Decisions an assignee can send back from the assignment email.
ASSIGNMENT_DECISIONS = frozenset([AssignmentStatus.ACCEPTED, AssignmentStatus.REJECTED])

OPEN_ASSIGNMENT_STATUSES = frozenset(
    [AssignmentStatus.PENDING, AssignmentStatus.ACCEPTED, AssignmentStatus.REJECTED]
)


@dataclass(frozen=True)
class CloseVerdict:
    """Outcome of a close check.

    Attributes:
        allowed: Whether the close may proceed
        denial: Error kind explaining a refusal, None when allowed
        closed_with_open_assignees: Value to record on the closed task
        open_assignees: Number of assignees not yet COMPLETED
        open_sub_tasks: Number of sub-tasks still OPEN
    """

    allowed: bool
    denial: Optional[ErrorKind] = None
    closed_with_open_assignees: bool = False
    open_assignees: int = 0
    open_sub_tasks: int = 0


def is_task_transition_allowed(current: TaskStatus, target: TaskStatus) -> bool:
    return target in TASK_TRANSITIONS.get(current, frozenset())


def ensure_task_transition(current: TaskStatus, target: TaskStatus) -> None:
    if not is_task_transition_allowed(current, target):
        raise InvalidTaskTransitionError(current=current.value, target=target.value)


def ensure_task_open(status: TaskStatus) -> None:
    """Reject changes to the assignments of a task that is no longer open."""
    if status != TaskStatus.OPEN:
        raise InvalidTaskTransitionError(
            'The task is no longer open', current=status.value
        )


def ensure_task_mutable(status: TaskStatus) -> None:
    """Reject edits to an archived task or sub-task."""
    if status == TaskStatus.ARCHIVED:
        raise InvalidTaskTransitionError(
            'Archived tasks cannot be changed', current=status.value
        )


def is_assignment_transition_allowed(
    current: AssignmentStatus, target: AssignmentStatus
) -> bool:
    return target in ASSIGNMENT_TRANSITIONS.get(current, frozenset())


def ensure_assignment_transition(current: AssignmentStatus, target: AssignmentStatus) -> None:
    if not is_assignment_transition_allowed(current, target):
        raise InvalidAssignmentTransitionError(current=current.value, target=target.value)


def apply_assignment_decision(
    current: AssignmentStatus, decision: AssignmentStatus
) -> AssignmentStatus:
    """Resolve an accept/reject decision against the current assignment status.

    Only a PENDING assignment can be decided on.

    Returns:
        AssignmentStatus: The new status

    Raises:
        InvalidAssignmentTransitionError: If ``decision`` is not ACCEPTED or
            REJECTED, or the assignment is not PENDING
    """
    if decision not in ASSIGNMENT_DECISIONS or current != AssignmentStatus.PENDING:
        raise InvalidAssignmentTransitionError(current=current.value, target=decision.value)
    return decision


def _policy_met(policy: CompletionPolicy, statuses: list[AssignmentStatus]) -> bool:
    if not statuses:
        return True
    if policy == CompletionPolicy.ANY_ASSIGNEE:
        return AssignmentStatus.COMPLETED in statuses
    return not any(status in OPEN_ASSIGNMENT_STATUSES for status in statuses)


def can_close(
    status: TaskStatus,
    policy: CompletionPolicy,
    assignee_statuses: Iterable[AssignmentStatus],
    force: bool = False,
    reason: Optional[str] = None,
    open_sub_tasks: int = 0,
) -> CloseVerdict:
    """Decide whether a task or sub-task may be closed.

    Args:
        status: Current task status
        policy: Completion policy of the task
        assignee_statuses: Status of every assignee row
        force: Close even though the policy is not met
        reason: Reason recorded with the close; required for a forced close
            while anything is still open
        open_sub_tasks: Number of sub-tasks still OPEN (zero for a sub-task)

    Returns:
        CloseVerdict
    """
    statuses = list(assignee_statuses)
    open_assignees = sum(1 for s in statuses if s in OPEN_ASSIGNMENT_STATUSES)
    counts = {'open_assignees': open_assignees, 'open_sub_tasks': open_sub_tasks}

    if not is_task_transition_allowed(status, TaskStatus.CLOSED):
        return CloseVerdict(allowed=False, denial=ErrorKind.INVALID_TASK_TRANSITION, **counts)

    settled = _policy_met(policy, statuses) and open_sub_tasks == 0
    if not settled:
        if not force:
            return CloseVerdict(
                allowed=False, denial=ErrorKind.COMPLETION_POLICY_NOT_MET, **counts
            )
        if not (reason and reason.strip()):
            return CloseVerdict(
                allowed=False, denial=ErrorKind.FORCE_CLOSE_REASON_REQUIRED, **counts
            )

    return CloseVerdict(
        allowed=True, closed_with_open_assignees=open_assignees > 0, **counts
    )


_CLOSE_DENIAL_ERRORS = {
    ErrorKind.INVALID_TASK_TRANSITION: InvalidTaskTransitionError,
    ErrorKind.COMPLETION_POLICY_NOT_MET: CompletionPolicyNotMetError,
    ErrorKind.FORCE_CLOSE_REASON_REQUIRED: ForceCloseReasonRequiredError,
}


def ensure_can_close(
    status: TaskStatus,
    policy: CompletionPolicy,
    assignee_statuses: Iterable[AssignmentStatus],
    force: bool = False,
    reason: Optional[str] = None,
    open_sub_tasks: int = 0,
) -> CloseVerdict:
    """Like ``can_close`` but raises the matching domain error on refusal."""
    verdict = can_close(status, policy, assignee_statuses, force, reason, open_sub_tasks)
    if not verdict.allowed:
        raise _CLOSE_DENIAL_ERRORS[verdict.denial](
            status=status.value,
            policy=policy.value,
            open_assignees=verdict.open_assignees,
            open_sub_tasks=verdict.open_sub_tasks,
        )
    return verdict

"""Domain errors raised by the grouptodo services.

Each error carries an ``ErrorKind`` so the boundary layer can map it to a
response without dispatching on strings, and a ``context`` dict that is meant
for logs only. The message is safe to show to the user.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of domain failure kinds."""

    INVALID_TOKEN = 'invalid_token'
    ALREADY_MEMBER = 'already_member'
    CANNOT_INVITE_SELF = 'cannot_invite_self'
    USER_NOT_FOUND = 'user_not_found'
    NOT_AUTHORIZED = 'not_authorized'
    NOT_A_MEMBER = 'not_a_member'
    CANNOT_REMOVE_SELF = 'cannot_remove_self'
    OWNER_CONSTRAINT_VIOLATION = 'owner_constraint_violation'
    INVALID_ASSIGNMENT_TRANSITION = 'invalid_assignment_transition'
    INVALID_TASK_TRANSITION = 'invalid_task_transition'
    COMPLETION_POLICY_NOT_MET = 'completion_policy_not_met'
    FORCE_CLOSE_REASON_REQUIRED = 'force_close_reason_required'
    PASSWORD_REUSE = 'password_reuse'
    INVALID_PASSWORD = 'invalid_password'
    TASK_NOT_FOUND = 'task_not_found'
    GROUP_NOT_FOUND = 'group_not_found'
    MEMBER_NOT_FOUND = 'member_not_found'


class GroupTodoError(Exception):
    """Base exception for domain errors."""

    kind: ErrorKind
    default_message = 'The request could not be completed'

    def __init__(self, message: str | None = None, **context: Any):
        super().__init__(message or self.default_message)
        self.context = context

    def to_log_extra(self) -> dict[str, Any]:
        extra = {key: str(value) for key, value in self.context.items()}
        extra['error_kind'] = self.kind.value
        return extra


class InvalidTokenError(GroupTodoError):
    """Raised when a token is absent, expired, revoked, mismatched or already used.

    All of these present identically to the caller.
    """

    kind = ErrorKind.INVALID_TOKEN
    default_message = 'Token is invalid or expired'


class AlreadyMemberError(GroupTodoError):
    kind = ErrorKind.ALREADY_MEMBER
    default_message = 'User is already a member of this group'


class CannotInviteSelfError(GroupTodoError):
    kind = ErrorKind.CANNOT_INVITE_SELF
    default_message = 'You cannot invite yourself'


class UserNotFoundError(GroupTodoError):
    kind = ErrorKind.USER_NOT_FOUND
    default_message = 'User not found'


class NotAuthorizedError(GroupTodoError):
    """Raised when the actor's role does not allow the action.

    The actor/target roles go into ``context`` for logging; they are never part
    of the message.
    """

    kind = ErrorKind.NOT_AUTHORIZED
    default_message = 'You are not allowed to perform this action'


class NotAMemberError(GroupTodoError):
    kind = ErrorKind.NOT_A_MEMBER
    default_message = 'You are not a member of this group'


class CannotRemoveSelfError(GroupTodoError):
    kind = ErrorKind.CANNOT_REMOVE_SELF
    default_message = 'You cannot remove yourself; leave the group instead'


class OwnerConstraintError(GroupTodoError):
    kind = ErrorKind.OWNER_CONSTRAINT_VIOLATION
    default_message = 'The group owner cannot be removed, demoted or leave'


class InvalidAssignmentTransitionError(GroupTodoError):
    kind = ErrorKind.INVALID_ASSIGNMENT_TRANSITION
    default_message = 'This assignment can no longer be changed that way'


class InvalidTaskTransitionError(GroupTodoError):
    kind = ErrorKind.INVALID_TASK_TRANSITION
    default_message = 'The task cannot move to that status'


class CompletionPolicyNotMetError(GroupTodoError):
    kind = ErrorKind.COMPLETION_POLICY_NOT_MET
    default_message = 'The task still has open work; close it with force and a reason'


class ForceCloseReasonRequiredError(GroupTodoError):
    kind = ErrorKind.FORCE_CLOSE_REASON_REQUIRED
    default_message = 'A reason is required to force-close a task with open assignees'


class PasswordReuseError(GroupTodoError):
    kind = ErrorKind.PASSWORD_REUSE
    default_message = 'The new password must differ from the current one'


class InvalidPasswordError(GroupTodoError):
    """Raised for a password bcrypt cannot hash in full."""

    kind = ErrorKind.INVALID_PASSWORD
    default_message = 'The password is too long'


class TaskNotFoundError(GroupTodoError):
    kind = ErrorKind.TASK_NOT_FOUND
    default_message = 'Task not found'


class GroupNotFoundError(GroupTodoError):
    kind = ErrorKind.GROUP_NOT_FOUND
    default_message = 'Group not found'


class MemberNotFoundError(GroupTodoError):
    kind = ErrorKind.MEMBER_NOT_FOUND
    default_message = 'Member not found in this group'

"""Service for tasks, sub-tasks and their assignments."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Union

from sqlalchemy.orm import Session

from grouptodo.core.clock import Clock
from grouptodo.core.config import GroupTodoConfig
from grouptodo.core.logger import grouptodo_logger as logger
from grouptodo.server.auth.authorization import GroupPermission, has_permission
from grouptodo.server.errors import (
    GroupNotFoundError,
    InvalidAssignmentTransitionError,
    InvalidTokenError,
    MemberNotFoundError,
    NotAMemberError,
    NotAuthorizedError,
    TaskNotFoundError,
    UserNotFoundError,
)
from grouptodo.server.services import task_lifecycle
from grouptodo.server.services.action_token_service import (
    ActionTokenService,
    IssuedToken,
    format_opaque_token,
    parse_opaque_token,
    sub_task_assignment_subject,
    task_assignment_subject,
)
from grouptodo.server.services.email_service import Mailer, MailTemplate, send_best_effort
from grouptodo.storage.action_token import ActionTokenType
from grouptodo.storage.database import UnitOfWork
from grouptodo.storage.group_store import GroupStore
from grouptodo.storage.task import (
    AssignmentStatus,
    CompletionPolicy,
    SubTask,
    SubTaskAssignee,
    Task,
    TaskAssignee,
    TaskStatus,
)
from grouptodo.storage.task_store import TaskStore
from grouptodo.storage.user_store import UserStore

Assignment = Union[TaskAssignee, SubTaskAssignee]


@dataclass
class AssignmentResult:
    """An assignment plus the response token mailed to the assignee, if any."""

    assignment: Assignment
    issued_token: Optional[IssuedToken] = field(default=None, repr=False)


@dataclass(frozen=True)
class AssignmentResponse:
    task_id: int
    sub_task_id: Optional[int]
    assignee_id: int
    status: AssignmentStatus


@dataclass(frozen=True)
class _AssignmentMail:
    recipient: str
    issued: IssuedToken
    task_title: str
    assigner_name: Optional[str]


@dataclass
class TaskDetail:
    task: Task
    assignees: list[TaskAssignee]
    sub_tasks: list[SubTask]
    can_manage: bool


@dataclass
class SubTaskDetail:
    sub_task: SubTask
    assignees: list[SubTaskAssignee]
    can_manage: bool


# Fields a task or sub-task edit may change.
EDITABLE_FIELDS = ('title', 'description', 'priority')


def _apply_status(
    assignment: Assignment,
    status: AssignmentStatus,
    now: datetime,
    reason: Optional[str] = None,
) -> None:
    assignment.status = status
    assignment.updated_at = now
    if status == AssignmentStatus.ACCEPTED:
        assignment.accepted_at = now
        assignment.rejected_at = None
    elif status == AssignmentStatus.REJECTED:
        assignment.rejected_at = now
        assignment.reason = reason
    elif status == AssignmentStatus.COMPLETED:
        assignment.completed_at = now


def _apply_changes(
    row: Union[Task, SubTask], changes: Mapping[str, Any], now: datetime
) -> list[str]:
    changed = []
    for name in EDITABLE_FIELDS:
        if name not in changes:
            continue
        value = changes[name]
        if name != 'description' and value is None:
            continue
        if getattr(row, name) != value:
            setattr(row, name, value)
            changed.append(name)
    if changed:
        row.updated_at = now
    return changed


def _clean_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    return reason.strip() or None


@dataclass
class TaskService:
    """Service for task operations.

    Group tasks are governed by the member's group role; personal tasks
    (``group_id`` is None) belong to their owner alone and take no assignees.
    """

    unit_of_work: UnitOfWork
    action_tokens: ActionTokenService
    mailer: Mailer
    config: GroupTodoConfig
    clock: Clock

    # Authorization helpers; all run inside the caller's transaction.

    def _require_member(self, session: Session, group_id: int, user_id: int):
        member = GroupStore.get_member(session, group_id, user_id)
        if member is None:
            raise NotAMemberError(group_id=group_id, user_id=user_id)
        return member

    def _authorize_manage(self, session: Session, task: Task, actor_id: int, action: str):
        """Closing and archiving: admin-ish for group tasks, owner for personal ones."""
        if task.group_id is None:
            if task.owner_id != actor_id:
                raise NotAuthorizedError(action=action, task_id=task.id, actor_id=actor_id)
            return
        member = self._require_member(session, task.group_id, actor_id)
        if not has_permission(member.role, GroupPermission.CLOSE_GROUP_TASK):
            raise NotAuthorizedError(
                action=action, task_id=task.id, actor_role=member.role.value
            )

    def _get_task(self, session: Session, task_id: int, for_update: bool = False) -> Task:
        task = TaskStore.get_task(session, task_id, for_update=for_update)
        if task is None:
            raise TaskNotFoundError(task_id=task_id)
        return task

    def _get_sub_task(
        self, session: Session, sub_task_id: int, for_update: bool = False
    ) -> SubTask:
        sub_task = TaskStore.get_sub_task(session, sub_task_id, for_update=for_update)
        if sub_task is None:
            raise TaskNotFoundError(sub_task_id=sub_task_id)
        return sub_task

    def _authorize_view(self, session: Session, task: Task, actor_id: int) -> bool:
        """Check read access and report whether the actor may also manage the task.

        A personal task is reported missing to anyone but its owner.
        """
        if task.group_id is None:
            if task.owner_id != actor_id:
                raise TaskNotFoundError(task_id=task.id)
            return True
        member = self._require_member(session, task.group_id, actor_id)
        return has_permission(member.role, GroupPermission.CLOSE_GROUP_TASK)

    def _authorize_edit(self, session: Session, task: Task, actor_id: int, action: str):
        """Editing: the task's creator or an admin-ish member; owner for personal tasks."""
        if task.group_id is None:
            if task.owner_id != actor_id:
                raise NotAuthorizedError(action=action, task_id=task.id, actor_id=actor_id)
            return
        member = self._require_member(session, task.group_id, actor_id)
        if task.owner_id != actor_id and not has_permission(
            member.role, GroupPermission.EDIT_GROUP_TASK
        ):
            raise NotAuthorizedError(
                action=action, task_id=task.id, actor_role=member.role.value
            )

    # Creation

    def create_task(
        self,
        actor_id: int,
        title: str,
        *,
        group_id: Optional[int] = None,
        description: Optional[str] = None,
        priority: int = 3,
        completion_policy: CompletionPolicy = CompletionPolicy.ALL_ASSIGNEES,
    ) -> Task:
        """Create a personal task, or a group task when ``group_id`` is given.

        Raises:
            UserNotFoundError: If the actor does not exist
            GroupNotFoundError: If the group does not exist
            NotAMemberError: If the actor is not in the group
        """
        with self.unit_of_work.transaction() as session:
            if group_id is None:
                if UserStore.get_user_by_id(session, actor_id) is None:
                    raise UserNotFoundError(user_id=actor_id)
            else:
                if GroupStore.get_group_by_id(session, group_id) is None:
                    raise GroupNotFoundError(group_id=group_id)
                member = self._require_member(session, group_id, actor_id)
                if not has_permission(member.role, GroupPermission.CREATE_GROUP_TASK):
                    raise NotAuthorizedError(
                        action='create_task', group_id=group_id, actor_role=member.role.value
                    )

            task = TaskStore.create_task(
                session,
                owner_id=actor_id,
                group_id=group_id,
                title=title,
                description=description,
                priority=priority,
                completion_policy=completion_policy,
                now=self.clock.now(),
            )

        logger.info(
            'Task created',
            extra={'task_id': task.id, 'group_id': group_id, 'owner_id': actor_id},
        )
        return task

    def create_sub_task(
        self,
        task_id: int,
        actor_id: int,
        title: str,
        *,
        description: Optional[str] = None,
        priority: int = 3,
        completion_policy: CompletionPolicy = CompletionPolicy.ALL_ASSIGNEES,
    ) -> SubTask:
        """Add a sub-task to an open task.

        On a personal task only the owner may do this; on a group task any
        member may.
        """
        with self.unit_of_work.transaction() as session:
            task = self._get_task(session, task_id)
            task_lifecycle.ensure_task_open(task.status)
            if task.group_id is None:
                if task.owner_id != actor_id:
                    raise NotAuthorizedError(
                        action='create_sub_task', task_id=task_id, actor_id=actor_id
                    )
            else:
                self._require_member(session, task.group_id, actor_id)

            sub_task = TaskStore.create_sub_task(
                session,
                task_id=task_id,
                title=title,
                description=description,
                priority=priority,
                completion_policy=completion_policy,
                now=self.clock.now(),
            )

        logger.info(
            'Sub-task created',
            extra={'task_id': task_id, 'sub_task_id': sub_task.id, 'actor_id': actor_id},
        )
        return sub_task

    # Reading and editing

    def get_task(self, task_id: int, actor_id: int) -> TaskDetail:
        """Load a task with its assignees and sub-tasks.

        Raises:
            TaskNotFoundError: If the task does not exist, or is someone
                else's personal task
            NotAMemberError: If the actor is not in the task's group
        """
        with self.unit_of_work.transaction() as session:
            task = self._get_task(session, task_id)
            can_manage = self._authorize_view(session, task, actor_id)
            return TaskDetail(
                task=task,
                assignees=TaskStore.list_task_assignees(session, task_id),
                sub_tasks=TaskStore.list_sub_tasks(session, task_id),
                can_manage=can_manage,
            )

    def get_sub_task(self, sub_task_id: int, actor_id: int) -> SubTaskDetail:
        """Load a sub-task with its assignees; access follows the parent task."""
        with self.unit_of_work.transaction() as session:
            sub_task = self._get_sub_task(session, sub_task_id)
            task = self._get_task(session, sub_task.task_id)
            can_manage = self._authorize_view(session, task, actor_id)
            return SubTaskDetail(
                sub_task=sub_task,
                assignees=TaskStore.list_sub_task_assignees(session, sub_task_id),
                can_manage=can_manage,
            )

    def update_task(self, task_id: int, actor_id: int, changes: Mapping[str, Any]) -> Task:
        """Change the title, description or priority of a task.

        Keys of ``changes`` outside ``EDITABLE_FIELDS`` are ignored. A
        ``description`` of None clears it.

        Raises:
            TaskNotFoundError: If the task does not exist
            NotAMemberError: If the actor is not in the task's group
            NotAuthorizedError: If the actor neither created the task nor is admin-ish
            InvalidTaskTransitionError: If the task is archived
        """
        with self.unit_of_work.transaction() as session:
            task = self._get_task(session, task_id, for_update=True)
            self._authorize_edit(session, task, actor_id, 'update_task')
            task_lifecycle.ensure_task_mutable(task.status)
            changed = _apply_changes(task, changes, self.clock.now())
            session.flush()

        logger.info(
            'Task updated',
            extra={'task_id': task_id, 'actor_id': actor_id, 'fields': ','.join(changed)},
        )
        return task

    def update_sub_task(
        self, sub_task_id: int, actor_id: int, changes: Mapping[str, Any]
    ) -> SubTask:
        """Like ``update_task``; authorization follows the parent task."""
        with self.unit_of_work.transaction() as session:
            sub_task = self._get_sub_task(session, sub_task_id, for_update=True)
            task = self._get_task(session, sub_task.task_id)
            self._authorize_edit(session, task, actor_id, 'update_sub_task')
            task_lifecycle.ensure_task_mutable(sub_task.status)
            changed = _apply_changes(sub_task, changes, self.clock.now())
            session.flush()

        logger.info(
            'Sub-task updated',
            extra={'sub_task_id': sub_task_id, 'actor_id': actor_id, 'fields': ','.join(changed)},
        )
        return sub_task

    # Assignment

    def _prepare_assignment(
        self,
        session: Session,
        group_id: Optional[int],
        target: str,
        target_id: int,
        assignee_id: int,
        assigner_id: int,
    ):
        if group_id is None:
            raise NotAuthorizedError(
                'Personal tasks cannot be assigned', action='assign', **{target: target_id}
            )
        assigner = self._require_member(session, group_id, assigner_id)
        if not has_permission(assigner.role, GroupPermission.ASSIGN_TASK):
            raise NotAuthorizedError(
                action='assign', actor_role=assigner.role.value, **{target: target_id}
            )
        if GroupStore.get_member(session, group_id, assignee_id) is None:
            raise MemberNotFoundError(group_id=group_id, user_id=assignee_id)

    def _issue_assignment_token(
        self,
        session: Session,
        subject_key: str,
        assignee_id: int,
        assigner_id: int,
        task_title: str,
        task_id: int,
        sub_task_id: Optional[int] = None,
    ) -> Optional[_AssignmentMail]:
        assignee = UserStore.get_user_by_id(session, assignee_id)
        if assignee is None or not assignee.email:
            return None
        issued = self.action_tokens.issue(
            session,
            ActionTokenType.TASK_ASSIGNMENT,
            subject_key,
            self.config.task_assignment_token_ttl,
            issued_by_id=assigner_id,
            user_id=assignee_id,
            task_id=task_id,
            sub_task_id=sub_task_id,
        )
        assigner = UserStore.get_user_by_id(session, assigner_id)
        return _AssignmentMail(
            recipient=assignee.email,
            issued=issued,
            task_title=task_title,
            assigner_name=assigner.name if assigner else None,
        )

    def _send_assignment_mail(self, mail: Optional[_AssignmentMail]) -> None:
        if mail is None:
            return
        token = format_opaque_token(mail.issued.token_id, mail.issued.raw_secret)
        base = self.config.build_url(f'api/tasks/assignments/decide?token={token}')
        send_best_effort(
            self.mailer,
            mail.recipient,
            MailTemplate.TASK_ASSIGNMENT,
            {
                'task_title': mail.task_title,
                'assigner_name': mail.assigner_name,
                'accept_link': f'{base}&status={AssignmentStatus.ACCEPTED.value}',
                'reject_link': f'{base}&status={AssignmentStatus.REJECTED.value}',
            },
        )

    def assign_task(
        self, task_id: int, assignee_id: int, assigner_id: int, send_email: bool = True
    ) -> AssignmentResult:
        """Assign a member to an open group task.

        Self-assignment starts ACCEPTED. Anyone else starts PENDING and, when
        ``send_email`` is set, is mailed accept/reject links backed by a
        single-use token. Re-assigning resets the row to its starting status
        and replaces any earlier link.

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidTaskTransitionError: If the task is not open
            NotAuthorizedError: If the task is personal or the assigner is not admin-ish
            NotAMemberError: If the assigner is not in the group
            MemberNotFoundError: If the assignee is not in the group
        """
        now = self.clock.now()
        mail = None
        with self.unit_of_work.transaction() as session:
            task = self._get_task(session, task_id)
            task_lifecycle.ensure_task_open(task.status)
            self._prepare_assignment(
                session, task.group_id, 'task_id', task_id, assignee_id, assigner_id
            )

            status = (
                AssignmentStatus.ACCEPTED
                if assignee_id == assigner_id
                else AssignmentStatus.PENDING
            )
            assignment = TaskStore.upsert_task_assignee(
                session,
                task_id=task_id,
                assignee_id=assignee_id,
                assigned_by_id=assigner_id,
                status=status,
                now=now,
            )

            subject_key = task_assignment_subject(task_id, assignee_id)
            if status == AssignmentStatus.PENDING and send_email:
                mail = self._issue_assignment_token(
                    session, subject_key, assignee_id, assigner_id, task.title, task_id
                )
            else:
                self.action_tokens.revoke(session, subject_key)

        logger.info(
            'Task assigned',
            extra={
                'task_id': task_id,
                'assignee_id': assignee_id,
                'assigner_id': assigner_id,
                'status': assignment.status.value,
            },
        )
        self._send_assignment_mail(mail)
        return AssignmentResult(assignment=assignment, issued_token=mail.issued if mail else None)

    def assign_sub_task(
        self, sub_task_id: int, assignee_id: int, assigner_id: int, send_email: bool = True
    ) -> AssignmentResult:
        """Assign a member to an open sub-task of a group task."""
        now = self.clock.now()
        mail = None
        with self.unit_of_work.transaction() as session:
            sub_task = self._get_sub_task(session, sub_task_id)
            task_lifecycle.ensure_task_open(sub_task.status)
            task = self._get_task(session, sub_task.task_id)
            self._prepare_assignment(
                session, task.group_id, 'sub_task_id', sub_task_id, assignee_id, assigner_id
            )

            status = (
                AssignmentStatus.ACCEPTED
                if assignee_id == assigner_id
                else AssignmentStatus.PENDING
            )
            assignment = TaskStore.upsert_sub_task_assignee(
                session,
                sub_task_id=sub_task_id,
                assignee_id=assignee_id,
                assigned_by_id=assigner_id,
                status=status,
                now=now,
            )

            subject_key = sub_task_assignment_subject(sub_task_id, assignee_id)
            if status == AssignmentStatus.PENDING and send_email:
                mail = self._issue_assignment_token(
                    session,
                    subject_key,
                    assignee_id,
                    assigner_id,
                    sub_task.title,
                    task.id,
                    sub_task_id,
                )
            else:
                self.action_tokens.revoke(session, subject_key)

        logger.info(
            'Sub-task assigned',
            extra={
                'sub_task_id': sub_task_id,
                'assignee_id': assignee_id,
                'assigner_id': assigner_id,
                'status': assignment.status.value,
            },
        )
        self._send_assignment_mail(mail)
        return AssignmentResult(assignment=assignment, issued_token=mail.issued if mail else None)

    def update_assignment_status(
        self,
        task_id: int,
        actor_id: int,
        status: AssignmentStatus,
        reason: Optional[str] = None,
    ) -> TaskAssignee:
        """Let an assignee move their own assignment on a group task.

        A member with no assignment row may claim the task by asking for
        ACCEPTED.

        Raises:
            TaskNotFoundError: If the task does not exist
            NotAuthorizedError: If the task is personal
            InvalidTaskTransitionError: If the task is not open
            NotAMemberError: If the actor is not in the group
            InvalidAssignmentTransitionError: If the move is not allowed
        """
        now = self.clock.now()
        with self.unit_of_work.transaction() as session:
            task = self._get_task(session, task_id)
            if task.group_id is None:
                raise NotAuthorizedError(
                    'Personal tasks have no assignees', action='update_assignment', task_id=task_id
                )
            task_lifecycle.ensure_task_open(task.status)
            self._require_member(session, task.group_id, actor_id)

            assignment = TaskStore.get_task_assignee(session, task_id, actor_id, for_update=True)
            if assignment is None:
                assignment = self._claim(
                    session, status, now, task_id=task_id, actor_id=actor_id
                )
            else:
                task_lifecycle.ensure_assignment_transition(assignment.status, status)
                _apply_status(assignment, status, now, _clean_reason(reason))
                session.flush()

        logger.info(
            'Assignment status updated',
            extra={'task_id': task_id, 'assignee_id': actor_id, 'status': status.value},
        )
        return assignment

    def update_sub_task_assignment_status(
        self,
        sub_task_id: int,
        actor_id: int,
        status: AssignmentStatus,
        reason: Optional[str] = None,
    ) -> SubTaskAssignee:
        now = self.clock.now()
        with self.unit_of_work.transaction() as session:
            sub_task = self._get_sub_task(session, sub_task_id)
            task = self._get_task(session, sub_task.task_id)
            if task.group_id is None:
                raise NotAuthorizedError(
                    'Personal tasks have no assignees',
                    action='update_assignment',
                    sub_task_id=sub_task_id,
                )
            task_lifecycle.ensure_task_open(sub_task.status)
            self._require_member(session, task.group_id, actor_id)

            assignment = TaskStore.get_sub_task_assignee(
                session, sub_task_id, actor_id, for_update=True
            )
            if assignment is None:
                assignment = self._claim(
                    session, status, now, sub_task_id=sub_task_id, actor_id=actor_id
                )
            else:
                task_lifecycle.ensure_assignment_transition(assignment.status, status)
                _apply_status(assignment, status, now, _clean_reason(reason))
                session.flush()

        logger.info(
            'Sub-task assignment status updated',
            extra={'sub_task_id': sub_task_id, 'assignee_id': actor_id, 'status': status.value},
        )
        return assignment

    def _claim(
        self,
        session: Session,
        status: AssignmentStatus,
        now: datetime,
        *,
        actor_id: int,
        task_id: Optional[int] = None,
        sub_task_id: Optional[int] = None,
    ) -> Assignment:
        if status != AssignmentStatus.ACCEPTED:
            raise InvalidAssignmentTransitionError(
                'Only ACCEPTED is possible without an assignment', target=status.value
            )
        if sub_task_id is not None:
            return TaskStore.upsert_sub_task_assignee(
                session,
                sub_task_id=sub_task_id,
                assignee_id=actor_id,
                assigned_by_id=actor_id,
                status=AssignmentStatus.ACCEPTED,
                now=now,
            )
        return TaskStore.upsert_task_assignee(
            session,
            task_id=task_id,
            assignee_id=actor_id,
            assigned_by_id=actor_id,
            status=AssignmentStatus.ACCEPTED,
            now=now,
        )

    # Closing and archiving

    def close_task(
        self,
        task_id: int,
        actor_id: int,
        force: bool = False,
        reason: Optional[str] = None,
    ) -> Task:
        """Close a task under its completion policy.

        A forced close also closes the task's open sub-tasks.

        Raises:
            TaskNotFoundError: If the task does not exist
            NotAMemberError: If the actor is not in the task's group
            NotAuthorizedError: If the actor may not close the task
            InvalidTaskTransitionError: If the task is not open
            CompletionPolicyNotMetError: If work is open and ``force`` is not set
            ForceCloseReasonRequiredError: If ``force`` is set without a reason
        """
        now = self.clock.now()
        reason = _clean_reason(reason)
        with self.unit_of_work.transaction() as session:
            task = self._get_task(session, task_id, for_update=True)
            self._authorize_manage(session, task, actor_id, 'close_task')

            assignees = TaskStore.list_task_assignees(session, task_id)
            open_sub_tasks = [
                s for s in TaskStore.list_sub_tasks(session, task_id) if s.status == TaskStatus.OPEN
            ]
            verdict = task_lifecycle.ensure_can_close(
                task.status,
                task.completion_policy,
                [a.status for a in assignees],
                force=force,
                reason=reason,
                open_sub_tasks=len(open_sub_tasks),
            )

            task.status = TaskStatus.CLOSED
            task.closed_at = now
            task.closed_by_id = actor_id
            task.closed_reason = reason
            task.closed_with_open_assignees = verdict.closed_with_open_assignees
            task.updated_at = now
            session.flush()

            if open_sub_tasks:
                TaskStore.close_open_sub_tasks(session, task_id, actor_id, reason, now)

        logger.info(
            'Task closed',
            extra={
                'task_id': task_id,
                'actor_id': actor_id,
                'forced': force,
                'closed_with_open_assignees': verdict.closed_with_open_assignees,
                'open_sub_tasks': verdict.open_sub_tasks,
            },
        )
        return task

    def close_sub_task(
        self,
        sub_task_id: int,
        actor_id: int,
        force: bool = False,
        reason: Optional[str] = None,
    ) -> SubTask:
        """Close a sub-task under its own completion policy.

        Authorization follows the parent task.
        """
        now = self.clock.now()
        reason = _clean_reason(reason)
        with self.unit_of_work.transaction() as session:
            sub_task = self._get_sub_task(session, sub_task_id, for_update=True)
            task = self._get_task(session, sub_task.task_id)
            self._authorize_manage(session, task, actor_id, 'close_sub_task')

            assignees = TaskStore.list_sub_task_assignees(session, sub_task_id)
            verdict = task_lifecycle.ensure_can_close(
                sub_task.status,
                sub_task.completion_policy,
                [a.status for a in assignees],
                force=force,
                reason=reason,
            )

            sub_task.status = TaskStatus.CLOSED
            sub_task.closed_at = now
            sub_task.closed_by_id = actor_id
            sub_task.closed_reason = reason
            sub_task.closed_with_open_assignees = verdict.closed_with_open_assignees
            sub_task.updated_at = now
            session.flush()

        logger.info(
            'Sub-task closed',
            extra={
                'sub_task_id': sub_task_id,
                'actor_id': actor_id,
                'forced': force,
                'closed_with_open_assignees': verdict.closed_with_open_assignees,
            },
        )
        return sub_task

    def archive_task(self, task_id: int, actor_id: int) -> Task:
        """Archive a closed task together with its sub-tasks."""
        now = self.clock.now()
        with self.unit_of_work.transaction() as session:
            task = self._get_task(session, task_id, for_update=True)
            self._authorize_manage(session, task, actor_id, 'archive_task')
            task_lifecycle.ensure_task_transition(task.status, TaskStatus.ARCHIVED)

            task.status = TaskStatus.ARCHIVED
            task.updated_at = now
            session.flush()
            archived = TaskStore.archive_sub_tasks(session, task_id, now)

        logger.info(
            'Task archived',
            extra={'task_id': task_id, 'actor_id': actor_id, 'sub_tasks_archived': archived},
        )
        return task

    # Email responses

    def respond_to_assignment_email(
        self, opaque_token: str, decision: AssignmentStatus
    ) -> AssignmentResponse:
        """Apply an accept/reject decision sent from an assignment email.

        The token binds exactly one assignment row. Consuming it and applying
        the decision happen in one transaction, so an invalid decision leaves
        the link usable and a replayed link changes nothing.

        Raises:
            InvalidTokenError: If the link is malformed, unknown, expired,
                used, forged, or its assignment no longer exists
            InvalidTaskTransitionError: If the task has been closed
            InvalidAssignmentTransitionError: If the assignment is not PENDING
        """
        token_id, raw_secret = parse_opaque_token(opaque_token)
        now = self.clock.now()

        with self.unit_of_work.transaction() as session:
            token = self.action_tokens.verify_and_consume(
                session, ActionTokenType.TASK_ASSIGNMENT, token_id, raw_secret
            )
            if token.task_id is None:
                raise InvalidTokenError(token_id=token_id, cause='task')

            if token.sub_task_id is not None:
                sub_task = self._get_sub_task(session, token.sub_task_id)
                task_lifecycle.ensure_task_open(sub_task.status)
                assignment = TaskStore.get_sub_task_assignee(
                    session, token.sub_task_id, token.user_id, for_update=True
                )
            else:
                task = self._get_task(session, token.task_id)
                task_lifecycle.ensure_task_open(task.status)
                assignment = TaskStore.get_task_assignee(
                    session, token.task_id, token.user_id, for_update=True
                )
            if assignment is None:
                raise InvalidTokenError(token_id=token_id, cause='assignment')

            new_status = task_lifecycle.apply_assignment_decision(assignment.status, decision)
            _apply_status(assignment, new_status, now)
            session.flush()

        logger.info(
            'Assignment decided by email',
            extra={
                'token_id': token_id,
                'task_id': token.task_id,
                'sub_task_id': token.sub_task_id,
                'assignee_id': token.user_id,
                'status': new_status.value,
            },
        )
        return AssignmentResponse(
            task_id=token.task_id,
            sub_task_id=token.sub_task_id,
            assignee_id=token.user_id,
            status=new_status,
        )

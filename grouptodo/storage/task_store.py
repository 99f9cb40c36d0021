"""
Store class for managing tasks, sub-tasks and assignments.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session
from grouptodo.storage.task import (
    AssignmentStatus,
    CompletionPolicy,
    SubTask,
    SubTaskAssignee,
    Task,
    TaskAssignee,
    TaskStatus,
)


class TaskStore:
    """Store for tasks and sub-tasks. Every method runs in the caller's transaction."""

    @staticmethod
    def create_task(
        session: Session,
        *,
        owner_id: int,
        title: str,
        now: datetime,
        group_id: Optional[int] = None,
        description: Optional[str] = None,
        priority: int = 3,
        completion_policy: CompletionPolicy = CompletionPolicy.ALL_ASSIGNEES,
    ) -> Task:
        task = Task(
            owner_id=owner_id,
            group_id=group_id,
            title=title,
            description=description,
            priority=priority,
            status=TaskStatus.OPEN,
            completion_policy=completion_policy,
            closed_with_open_assignees=False,
            created_at=now,
            updated_at=now,
        )
        session.add(task)
        session.flush()
        return task

    @staticmethod
    def create_sub_task(
        session: Session,
        *,
        task_id: int,
        title: str,
        now: datetime,
        description: Optional[str] = None,
        priority: int = 3,
        completion_policy: CompletionPolicy = CompletionPolicy.ALL_ASSIGNEES,
    ) -> SubTask:
        sub_task = SubTask(
            task_id=task_id,
            title=title,
            description=description,
            priority=priority,
            status=TaskStatus.OPEN,
            completion_policy=completion_policy,
            closed_with_open_assignees=False,
            created_at=now,
            updated_at=now,
        )
        session.add(sub_task)
        session.flush()
        return sub_task

    @staticmethod
    def get_task(session: Session, task_id: int, for_update: bool = False) -> Optional[Task]:
        stmt = select(Task).where(Task.id == task_id)
        if for_update:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def get_sub_task(
        session: Session, sub_task_id: int, for_update: bool = False
    ) -> Optional[SubTask]:
        stmt = select(SubTask).where(SubTask.id == sub_task_id)
        if for_update:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def list_sub_tasks(session: Session, task_id: int) -> list[SubTask]:
        return list(
            session.execute(
                select(SubTask).where(SubTask.task_id == task_id).order_by(SubTask.id)
            ).scalars()
        )

    @staticmethod
    def get_task_assignee(
        session: Session, task_id: int, assignee_id: int, for_update: bool = False
    ) -> Optional[TaskAssignee]:
        stmt = select(TaskAssignee).where(
            TaskAssignee.task_id == task_id,
            TaskAssignee.assignee_id == assignee_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def get_sub_task_assignee(
        session: Session, sub_task_id: int, assignee_id: int, for_update: bool = False
    ) -> Optional[SubTaskAssignee]:
        stmt = select(SubTaskAssignee).where(
            SubTaskAssignee.sub_task_id == sub_task_id,
            SubTaskAssignee.assignee_id == assignee_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def list_task_assignees(session: Session, task_id: int) -> list[TaskAssignee]:
        return list(
            session.execute(
                select(TaskAssignee)
                .where(TaskAssignee.task_id == task_id)
                .order_by(TaskAssignee.assignee_id)
            ).scalars()
        )

    @staticmethod
    def list_sub_task_assignees(session: Session, sub_task_id: int) -> list[SubTaskAssignee]:
        return list(
            session.execute(
                select(SubTaskAssignee)
                .where(SubTaskAssignee.sub_task_id == sub_task_id)
                .order_by(SubTaskAssignee.assignee_id)
            ).scalars()
        )

    @staticmethod
    def upsert_task_assignee(
        session: Session,
        *,
        task_id: int,
        assignee_id: int,
        assigned_by_id: int,
        status: AssignmentStatus,
        now: datetime,
    ) -> TaskAssignee:
        """Create the assignment or reset an existing one to ``status``."""
        assignee = TaskStore.get_task_assignee(session, task_id, assignee_id, for_update=True)
        if assignee is None:
            assignee = TaskAssignee(task_id=task_id, assignee_id=assignee_id, assigned_at=now)
            session.add(assignee)
        _reset_assignment(assignee, assigned_by_id, status, now)
        session.flush()
        return assignee

    @staticmethod
    def upsert_sub_task_assignee(
        session: Session,
        *,
        sub_task_id: int,
        assignee_id: int,
        assigned_by_id: int,
        status: AssignmentStatus,
        now: datetime,
    ) -> SubTaskAssignee:
        assignee = TaskStore.get_sub_task_assignee(
            session, sub_task_id, assignee_id, for_update=True
        )
        if assignee is None:
            assignee = SubTaskAssignee(
                sub_task_id=sub_task_id, assignee_id=assignee_id, assigned_at=now
            )
            session.add(assignee)
        _reset_assignment(assignee, assigned_by_id, status, now)
        session.flush()
        return assignee

    @staticmethod
    def close_open_sub_tasks(
        session: Session, task_id: int, closed_by_id: int, reason: Optional[str], now: datetime
    ) -> int:
        """Close every still-open sub-task of a task.

        Returns:
            int: Number of sub-tasks closed
        """
        result = session.execute(
            update(SubTask)
            .where(SubTask.task_id == task_id, SubTask.status == TaskStatus.OPEN)
            .values(
                status=TaskStatus.CLOSED,
                closed_at=now,
                closed_by_id=closed_by_id,
                closed_reason=reason,
                updated_at=now,
            )
            .execution_options(synchronize_session='fetch')
        )
        return result.rowcount

    @staticmethod
    def list_group_task_ids(session: Session, group_id: int) -> tuple[list[int], list[int]]:
        """Ids of every task of a group and of their sub-tasks."""
        task_ids = list(
            session.execute(select(Task.id).where(Task.group_id == group_id)).scalars()
        )
        sub_task_ids = list(
            session.execute(select(SubTask.id).where(SubTask.task_id.in_(task_ids))).scalars()
        )
        return task_ids, sub_task_ids

    @staticmethod
    def delete_tasks(session: Session, task_ids: list[int]) -> int:
        """Delete tasks together with their sub-tasks and assignee rows.

        Child rows are deleted explicitly rather than through ON DELETE CASCADE.

        Returns:
            int: Number of tasks deleted
        """
        sub_task_ids = select(SubTask.id).where(SubTask.task_id.in_(task_ids))
        for stmt in (
            delete(SubTaskAssignee).where(SubTaskAssignee.sub_task_id.in_(sub_task_ids)),
            delete(SubTask).where(SubTask.task_id.in_(task_ids)),
            delete(TaskAssignee).where(TaskAssignee.task_id.in_(task_ids)),
        ):
            session.execute(stmt.execution_options(synchronize_session=False))
        result = session.execute(
            delete(Task)
            .where(Task.id.in_(task_ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def archive_sub_tasks(session: Session, task_id: int, now: datetime) -> int:
        result = session.execute(
            update(SubTask)
            .where(SubTask.task_id == task_id, SubTask.status != TaskStatus.ARCHIVED)
            .values(status=TaskStatus.ARCHIVED, updated_at=now)
            .execution_options(synchronize_session='fetch')
        )
        return result.rowcount


def _reset_assignment(assignee, assigned_by_id: int, status: AssignmentStatus, now: datetime):
    assignee.assigned_by_id = assigned_by_id
    assignee.status = status
    assignee.reason = None
    assignee.accepted_at = now if status == AssignmentStatus.ACCEPTED else None
    assignee.rejected_at = None
    assignee.completed_at = None
    assignee.updated_at = now

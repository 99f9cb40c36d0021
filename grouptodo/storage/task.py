"""
SQLAlchemy models for tasks, sub-tasks and their assignees.
"""

from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from grouptodo.storage.base import Base


class TaskStatus(str, PyEnum):
    OPEN = 'OPEN'
    CLOSED = 'CLOSED'
    ARCHIVED = 'ARCHIVED'


class AssignmentStatus(str, PyEnum):
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'
    COMPLETED = 'COMPLETED'


class CompletionPolicy(str, PyEnum):
    ALL_ASSIGNEES = 'ALL_ASSIGNEES'
    ANY_ASSIGNEE = 'ANY_ASSIGNEE'


def _status_column():
    return Column(
        Enum(TaskStatus, name='task_status', native_enum=False, length=20),
        nullable=False,
        default=TaskStatus.OPEN,
    )


def _policy_column():
    return Column(
        Enum(CompletionPolicy, name='completion_policy', native_enum=False, length=20),
        nullable=False,
        default=CompletionPolicy.ALL_ASSIGNEES,
    )


def _assignment_status_column():
    return Column(
        Enum(AssignmentStatus, name='assignment_status', native_enum=False, length=20),
        nullable=False,
        default=AssignmentStatus.PENDING,
    )


class Task(Base):  # type: ignore
    """A unit of work, either personal (no group) or owned by a group."""

    __tablename__ = 'task'

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey('user.id'), nullable=False)
    group_id = Column(Integer, ForeignKey('group.id', ondelete='CASCADE'), nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Integer, nullable=False, default=3)
    status = _status_column()
    completion_policy = _policy_column()
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    closed_at = Column(DateTime, nullable=True)
    closed_by_id = Column(Integer, ForeignKey('user.id'), nullable=True)
    closed_reason = Column(Text, nullable=True)
    closed_with_open_assignees = Column(Boolean, nullable=False, default=False)

    assignees = relationship('TaskAssignee', back_populates='task')
    sub_tasks = relationship('SubTask', back_populates='task')

    __table_args__ = (
        Index('ix_task_owner_status_priority', 'owner_id', 'status', 'priority'),
        Index('ix_task_group_status_priority', 'group_id', 'status', 'priority'),
    )


class SubTask(Base):  # type: ignore
    __tablename__ = 'sub_task'

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey('task.id', ondelete='CASCADE'), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Integer, nullable=False, default=3)
    status = _status_column()
    completion_policy = _policy_column()
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    closed_at = Column(DateTime, nullable=True)
    closed_by_id = Column(Integer, ForeignKey('user.id'), nullable=True)
    closed_reason = Column(Text, nullable=True)
    closed_with_open_assignees = Column(Boolean, nullable=False, default=False)

    task = relationship('Task', back_populates='sub_tasks')
    assignees = relationship('SubTaskAssignee', back_populates='sub_task')

    __table_args__ = (
        Index('ix_sub_task_task_status_priority', 'task_id', 'status', 'priority'),
    )


class TaskAssignee(Base):  # type: ignore
    __tablename__ = 'task_assignee'

    task_id = Column(
        Integer, ForeignKey('task.id', ondelete='CASCADE'), primary_key=True
    )
    assignee_id = Column(
        Integer, ForeignKey('user.id', ondelete='CASCADE'), primary_key=True
    )
    assigned_by_id = Column(Integer, ForeignKey('user.id'), nullable=True)
    status = _assignment_status_column()
    reason = Column(Text, nullable=True)
    assigned_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False)

    task = relationship('Task', back_populates='assignees')

    __table_args__ = (
        Index('ix_task_assignee_assignee_status', 'assignee_id', 'status'),
    )


class SubTaskAssignee(Base):  # type: ignore
    __tablename__ = 'sub_task_assignee'

    sub_task_id = Column(
        Integer, ForeignKey('sub_task.id', ondelete='CASCADE'), primary_key=True
    )
    assignee_id = Column(
        Integer, ForeignKey('user.id', ondelete='CASCADE'), primary_key=True
    )
    assigned_by_id = Column(Integer, ForeignKey('user.id'), nullable=True)
    status = _assignment_status_column()
    reason = Column(Text, nullable=True)
    assigned_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False)

    sub_task = relationship('SubTask', back_populates='assignees')

    __table_args__ = (
        Index('ix_sub_task_assignee_assignee_status', 'assignee_id', 'status'),
    )

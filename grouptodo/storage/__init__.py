from grouptodo.storage.action_token import ActionToken, ActionTokenType
from grouptodo.storage.base import Base
from grouptodo.storage.group import Group
from grouptodo.storage.group_member import GroupMember
from grouptodo.storage.task import (
    AssignmentStatus,
    CompletionPolicy,
    SubTask,
    SubTaskAssignee,
    Task,
    TaskAssignee,
    TaskStatus,
)
from grouptodo.storage.user import User

__all__ = [
    'ActionToken',
    'ActionTokenType',
    'AssignmentStatus',
    'Base',
    'CompletionPolicy',
    'Group',
    'GroupMember',
    'SubTask',
    'SubTaskAssignee',
    'Task',
    'TaskAssignee',
    'TaskStatus',
    'User',
]

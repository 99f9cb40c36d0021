"""
Pydantic request and response models for the grouptodo routes.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from grouptodo.server.auth.authorization import GroupRole
from grouptodo.server.auth.password import MAX_PASSWORD_BYTES
from grouptodo.storage.task import AssignmentStatus, CompletionPolicy, TaskStatus


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    access_token: str
    new_password: str = Field(min_length=8, max_length=MAX_PASSWORD_BYTES)

    @field_validator('new_password')
    @classmethod
    def check_encoded_length(cls, value: str) -> str:
        if len(value.encode('utf-8')) > MAX_PASSWORD_BYTES:
            raise ValueError(f'must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8')
        return value


class ResetPasswordGrantResponse(BaseModel):
    """Credential returned after a reset link was redeemed."""

    access_token: str
    expires_at: datetime


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    owner_id: int
    created_at: datetime


class MembershipResponse(BaseModel):
    """A group as seen by one of its members."""

    group_id: int
    group_name: str
    role: GroupRole
    joined_at: datetime

    @classmethod
    def from_member(cls, member) -> 'MembershipResponse':
        return cls(
            group_id=member.group_id,
            group_name=member.group.name,
            role=member.role,
            joined_at=member.joined_at,
        )


class MemberResponse(BaseModel):
    user_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    role: GroupRole
    joined_at: datetime

    @classmethod
    def from_member(cls, member) -> 'MemberResponse':
        user = member.user
        return cls(
            user_id=member.user_id,
            name=user.name if user else None,
            email=user.email if user else None,
            role=member.role,
            joined_at=member.joined_at,
        )


class MemberRoleUpdate(BaseModel):
    role: GroupRole


class InvitationCreate(BaseModel):
    email: EmailStr


class InvitationResponse(BaseModel):
    """Invitation details; the link itself only travels by email."""

    email: str
    expires_at: datetime


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    priority: int = Field(default=3, ge=1, le=4)
    group_id: Optional[int] = None
    completion_policy: CompletionPolicy = CompletionPolicy.ALL_ASSIGNEES


class TaskUpdate(BaseModel):
    """Partial edit; omitted fields stay as they are."""

    title: str = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    priority: int = Field(default=None, ge=1, le=4)


class SubTaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    priority: int = Field(default=3, ge=1, le=4)
    completion_policy: CompletionPolicy = CompletionPolicy.ALL_ASSIGNEES


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    group_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    priority: int
    status: TaskStatus
    completion_policy: CompletionPolicy
    closed_at: Optional[datetime] = None
    closed_by_id: Optional[int] = None
    closed_reason: Optional[str] = None
    closed_with_open_assignees: bool


class SubTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    title: str
    description: Optional[str] = None
    priority: int
    status: TaskStatus
    completion_policy: CompletionPolicy
    closed_at: Optional[datetime] = None
    closed_by_id: Optional[int] = None
    closed_reason: Optional[str] = None
    closed_with_open_assignees: bool


class AssignmentCreate(BaseModel):
    assignee_id: int
    send_email: bool = True


class AssignmentStatusUpdate(BaseModel):
    status: AssignmentStatus
    reason: Optional[str] = Field(default=None, max_length=500)


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    assignee_id: int
    assigned_by_id: Optional[int] = None
    status: AssignmentStatus
    reason: Optional[str] = None
    assigned_at: datetime
    updated_at: datetime


class TaskDetailResponse(TaskResponse):
    assignees: list[AssignmentResponse]
    sub_tasks: list[SubTaskResponse]
    can_manage: bool

    @classmethod
    def from_detail(cls, detail) -> 'TaskDetailResponse':
        return cls(
            **TaskResponse.model_validate(detail.task).model_dump(),
            assignees=[AssignmentResponse.model_validate(a) for a in detail.assignees],
            sub_tasks=[SubTaskResponse.model_validate(s) for s in detail.sub_tasks],
            can_manage=detail.can_manage,
        )


class SubTaskDetailResponse(SubTaskResponse):
    assignees: list[AssignmentResponse]
    can_manage: bool

    @classmethod
    def from_detail(cls, detail) -> 'SubTaskDetailResponse':
        return cls(
            **SubTaskResponse.model_validate(detail.sub_task).model_dump(),
            assignees=[AssignmentResponse.model_validate(a) for a in detail.assignees],
            can_manage=detail.can_manage,
        )


class TaskClose(BaseModel):
    force: bool = False
    reason: Optional[str] = Field(default=None, max_length=500)


class AssignmentDecisionResponse(BaseModel):
    task_id: int
    sub_task_id: Optional[int] = None
    status: AssignmentStatus

"""API routes for tasks, sub-tasks and assignments."""

from fastapi import APIRouter, Depends, Query, Request, status

from grouptodo.server.routes.models import (
    AssignmentCreate,
    AssignmentDecisionResponse,
    AssignmentResponse,
    AssignmentStatusUpdate,
    SubTaskCreate,
    SubTaskDetailResponse,
    SubTaskResponse,
    TaskClose,
    TaskCreate,
    TaskDetailResponse,
    TaskResponse,
    TaskUpdate,
)
from grouptodo.server.routes.user_auth import get_user_id
from grouptodo.server.services.task_service import TaskService
from grouptodo.storage.task import AssignmentStatus

tasks_router = APIRouter(prefix='/api/tasks')


def _service(request: Request) -> TaskService:
    return request.app.state.task_service


@tasks_router.get('/assignments/decide', response_model=AssignmentDecisionResponse)
def decide_assignment(
    token: str,
    request: Request,
    decision: AssignmentStatus = Query(alias='status'),
):
    """Accept or reject an assignment from the link in the assignment email."""
    response = _service(request).respond_to_assignment_email(token, decision)
    return AssignmentDecisionResponse(
        task_id=response.task_id,
        sub_task_id=response.sub_task_id,
        status=response.status,
    )


@tasks_router.post('', response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(body: TaskCreate, request: Request, user_id: int = Depends(get_user_id)):
    return _service(request).create_task(
        user_id,
        body.title,
        group_id=body.group_id,
        description=body.description,
        priority=body.priority,
        completion_policy=body.completion_policy,
    )


@tasks_router.get('/{task_id}', response_model=TaskDetailResponse)
def get_task(task_id: int, request: Request, user_id: int = Depends(get_user_id)):
    return TaskDetailResponse.from_detail(_service(request).get_task(task_id, user_id))


@tasks_router.patch('/{task_id}', response_model=TaskResponse)
def update_task(
    task_id: int, body: TaskUpdate, request: Request, user_id: int = Depends(get_user_id)
):
    """Edit title, description or priority; only the fields sent change."""
    return _service(request).update_task(task_id, user_id, body.model_dump(exclude_unset=True))


@tasks_router.post(
    '/{task_id}/sub-tasks',
    response_model=SubTaskResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_sub_task(
    task_id: int, body: SubTaskCreate, request: Request, user_id: int = Depends(get_user_id)
):
    return _service(request).create_sub_task(
        task_id,
        user_id,
        body.title,
        description=body.description,
        priority=body.priority,
        completion_policy=body.completion_policy,
    )


@tasks_router.post('/{task_id}/assignees', response_model=AssignmentResponse)
def assign_task(
    task_id: int, body: AssignmentCreate, request: Request, user_id: int = Depends(get_user_id)
):
    result = _service(request).assign_task(
        task_id, body.assignee_id, user_id, send_email=body.send_email
    )
    return result.assignment


@tasks_router.patch('/{task_id}/assignees/me', response_model=AssignmentResponse)
def update_assignment_status(
    task_id: int,
    body: AssignmentStatusUpdate,
    request: Request,
    user_id: int = Depends(get_user_id),
):
    return _service(request).update_assignment_status(
        task_id, user_id, body.status, body.reason
    )


@tasks_router.post('/{task_id}/close', response_model=TaskResponse)
def close_task(
    task_id: int, body: TaskClose, request: Request, user_id: int = Depends(get_user_id)
):
    """Close a task.

    Without ``force`` the task's completion policy must be met. With ``force``
    any open work is left behind and a reason is required.
    """
    return _service(request).close_task(task_id, user_id, force=body.force, reason=body.reason)


@tasks_router.post('/{task_id}/archive', response_model=TaskResponse)
def archive_task(task_id: int, request: Request, user_id: int = Depends(get_user_id)):
    return _service(request).archive_task(task_id, user_id)


@tasks_router.get('/sub-tasks/{sub_task_id}', response_model=SubTaskDetailResponse)
def get_sub_task(sub_task_id: int, request: Request, user_id: int = Depends(get_user_id)):
    return SubTaskDetailResponse.from_detail(_service(request).get_sub_task(sub_task_id, user_id))


@tasks_router.patch('/sub-tasks/{sub_task_id}', response_model=SubTaskResponse)
def update_sub_task(
    sub_task_id: int, body: TaskUpdate, request: Request, user_id: int = Depends(get_user_id)
):
    return _service(request).update_sub_task(
        sub_task_id, user_id, body.model_dump(exclude_unset=True)
    )


@tasks_router.post('/sub-tasks/{sub_task_id}/assignees', response_model=AssignmentResponse)
def assign_sub_task(
    sub_task_id: int,
    body: AssignmentCreate,
    request: Request,
    user_id: int = Depends(get_user_id),
):
    result = _service(request).assign_sub_task(
        sub_task_id, body.assignee_id, user_id, send_email=body.send_email
    )
    return result.assignment


@tasks_router.patch('/sub-tasks/{sub_task_id}/assignees/me', response_model=AssignmentResponse)
def update_sub_task_assignment_status(
    sub_task_id: int,
    body: AssignmentStatusUpdate,
    request: Request,
    user_id: int = Depends(get_user_id),
):
    return _service(request).update_sub_task_assignment_status(
        sub_task_id, user_id, body.status, body.reason
    )


@tasks_router.post('/sub-tasks/{sub_task_id}/close', response_model=SubTaskResponse)
def close_sub_task(
    sub_task_id: int, body: TaskClose, request: Request, user_id: int = Depends(get_user_id)
):
    return _service(request).close_sub_task(
        sub_task_id, user_id, force=body.force, reason=body.reason
    )

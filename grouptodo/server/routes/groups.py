"""API routes for groups and group membership."""

from fastapi import APIRouter, Depends, Request, status

from grouptodo.server.routes.models import (
    GroupCreate,
    GroupResponse,
    MemberResponse,
    MemberRoleUpdate,
    MembershipResponse,
)
from grouptodo.server.routes.user_auth import get_user_id
from grouptodo.server.services.group_member_service import GroupMemberService

groups_router = APIRouter(prefix='/api/groups')


def _service(request: Request) -> GroupMemberService:
    return request.app.state.group_member_service


@groups_router.post('', response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
def create_group(body: GroupCreate, request: Request, user_id: int = Depends(get_user_id)):
    return _service(request).create_group(user_id, body.name)


@groups_router.get('', response_model=list[MembershipResponse])
def list_groups(request: Request, user_id: int = Depends(get_user_id)):
    memberships = _service(request).list_groups_for_user(user_id)
    return [MembershipResponse.from_member(m) for m in memberships]


@groups_router.get('/{group_id}/members', response_model=list[MemberResponse])
def list_members(group_id: int, request: Request, user_id: int = Depends(get_user_id)):
    members = _service(request).list_members(group_id, user_id)
    return [MemberResponse.from_member(m) for m in members]


@groups_router.patch('/{group_id}/members/{target_id}', response_model=MemberResponse)
def update_member_role(
    group_id: int,
    target_id: int,
    body: MemberRoleUpdate,
    request: Request,
    user_id: int = Depends(get_user_id),
):
    """Promote or demote a member. Owner only."""
    member = _service(request).update_member_role(group_id, target_id, body.role, user_id)
    return MemberResponse(
        user_id=member.user_id, role=member.role, joined_at=member.joined_at
    )


@groups_router.delete(
    '/{group_id}/members/{target_id}', status_code=status.HTTP_204_NO_CONTENT
)
def remove_member(
    group_id: int, target_id: int, request: Request, user_id: int = Depends(get_user_id)
):
    _service(request).remove_member(group_id, target_id, user_id)


@groups_router.post('/{group_id}/leave', status_code=status.HTTP_204_NO_CONTENT)
def leave_group(group_id: int, request: Request, user_id: int = Depends(get_user_id)):
    _service(request).leave_group(group_id, user_id)


@groups_router.delete('/{group_id}', status_code=status.HTTP_204_NO_CONTENT)
def disband_group(group_id: int, request: Request, user_id: int = Depends(get_user_id)):
    """Delete the group, its memberships and its tasks. Owner only."""
    _service(request).disband_group(group_id, user_id)

"""API routes for group invitations."""

from typing import Optional

from fastapi import APIRouter, Depends, Request, status

from grouptodo.core.logger import grouptodo_logger as logger
from grouptodo.server.routes.models import (
    InvitationCreate,
    InvitationResponse,
    MemberResponse,
)
from grouptodo.server.routes.user_auth import get_optional_user_id, get_user_id
from grouptodo.server.services.group_invitation_service import GroupInvitationService

# Router for invitation operations on a group (requires group_id)
invitation_router = APIRouter(prefix='/api/groups/{group_id}/invitations')

# Router for accepting invitations from the emailed link
accept_router = APIRouter(prefix='/api/groups/invitation')


def _service(request: Request) -> GroupInvitationService:
    return request.app.state.group_invitation_service


@invitation_router.post(
    '', response_model=InvitationResponse, status_code=status.HTTP_201_CREATED
)
def create_invitation(
    group_id: int,
    body: InvitationCreate,
    request: Request,
    user_id: int = Depends(get_user_id),
):
    """Invite an existing user to the group.

    Only owners and admins can invite. The invitee receives a single-use
    link by email; inviting the same address again replaces that link.
    """
    issued = _service(request).invite_member(group_id, user_id, body.email)
    return InvitationResponse(email=body.email.lower(), expires_at=issued.expires_at)


@accept_router.get('/{token_id}/{raw_secret}', response_model=MemberResponse)
def accept_invitation(
    token_id: int,
    raw_secret: str,
    request: Request,
    user_id: Optional[int] = Depends(get_optional_user_id),
):
    """Accept an invitation via the link in the invitation email.

    When the caller is signed in, the invitation must be addressed to them.
    """
    member = _service(request).accept_invitation(token_id, raw_secret, user_id)
    logger.info(
        'Invitation accepted via link',
        extra={'group_id': member.group_id, 'user_id': member.user_id},
    )
    return MemberResponse(
        user_id=member.user_id, role=member.role, joined_at=member.joined_at
    )

"""Service for managing group invitations."""

from dataclasses import dataclass
from typing import Optional

from grouptodo.core.clock import Clock
from grouptodo.core.config import GroupTodoConfig
from grouptodo.core.logger import grouptodo_logger as logger
from grouptodo.server.auth.authorization import GroupRole, can_invite
from grouptodo.server.errors import (
    AlreadyMemberError,
    CannotInviteSelfError,
    GroupNotFoundError,
    InvalidTokenError,
    NotAMemberError,
    NotAuthorizedError,
    UserNotFoundError,
)
from grouptodo.server.services.action_token_service import (
    ActionTokenService,
    IssuedToken,
    group_invite_subject,
)
from grouptodo.server.services.email_service import Mailer, MailTemplate, send_best_effort
from grouptodo.storage.action_token import ActionTokenType
from grouptodo.storage.database import UnitOfWork
from grouptodo.storage.group_member import GroupMember
from grouptodo.storage.group_store import GroupStore
from grouptodo.storage.user_store import UserStore, normalize_email


@dataclass
class GroupInvitationService:
    """Service for group invitation operations."""

    unit_of_work: UnitOfWork
    action_tokens: ActionTokenService
    mailer: Mailer
    config: GroupTodoConfig
    clock: Clock

    def invite_member(self, group_id: int, actor_id: int, email: str) -> IssuedToken:
        """Invite an existing user to a group by email.

        This method:
        1. Validates the group exists
        2. Checks the actor is an owner or admin of the group
        3. Resolves the invitee by email
        4. Rejects self-invites and existing members
        5. Issues the invitation token, replacing any earlier one for the
           same group and address
        6. Sends the invitation email after the transaction commits

        Args:
            group_id: Group id
            actor_id: User id of the person sending the invitation
            email: Invitee's email address

        Returns:
            IssuedToken: The invitation token

        Raises:
            GroupNotFoundError: If the group does not exist
            NotAMemberError: If the actor is not in the group
            NotAuthorizedError: If the actor's role may not invite
            UserNotFoundError: If no account has that email
            CannotInviteSelfError: If the actor invites their own address
            AlreadyMemberError: If the invitee is already a member
        """
        email = normalize_email(email)

        logger.info(
            'Creating group invitation',
            extra={'group_id': group_id, 'email': email, 'actor_id': actor_id},
        )

        with self.unit_of_work.transaction() as session:
            group = GroupStore.get_group_by_id(session, group_id)
            if group is None:
                raise GroupNotFoundError(group_id=group_id)

            actor = GroupStore.get_member(session, group_id, actor_id)
            if actor is None:
                raise NotAMemberError(group_id=group_id, user_id=actor_id)
            if not can_invite(actor.role):
                raise NotAuthorizedError(
                    action='invite', group_id=group_id, actor_role=actor.role.value
                )

            invitee = UserStore.get_user_by_email(session, email)
            if invitee is None:
                raise UserNotFoundError(email=email)
            if invitee.id == actor_id:
                raise CannotInviteSelfError(group_id=group_id, user_id=actor_id)
            if GroupStore.get_member(session, group_id, invitee.id) is not None:
                raise AlreadyMemberError(group_id=group_id, user_id=invitee.id)

            issued = self.action_tokens.issue(
                session,
                ActionTokenType.GROUP_INVITE,
                group_invite_subject(group_id, email),
                self.config.group_invite_token_ttl,
                issued_by_id=actor_id,
                user_id=invitee.id,
                email=email,
                group_id=group_id,
            )
            group_name = group.name
            inviter = UserStore.get_user_by_id(session, actor_id)
            inviter_name = inviter.name if inviter else None

        link = self.config.build_url(
            f'api/groups/invitation/{issued.token_id}/{issued.raw_secret}'
        )
        send_best_effort(
            self.mailer,
            email,
            MailTemplate.GROUP_INVITE,
            {
                'group_name': group_name,
                'inviter_name': inviter_name,
                'link': link,
                'expires_in_days': self.config.group_invite_token_ttl.days,
            },
        )
        return issued

    def accept_invitation(
        self, token_id: int, raw_secret: str, acting_user_id: Optional[int] = None
    ) -> GroupMember:
        """Redeem an invitation link and add the invitee as a MEMBER.

        Args:
            token_id: Token id from the link
            raw_secret: Secret from the link
            acting_user_id: When the caller is signed in, the invitation must
                have been issued to this user

        Returns:
            GroupMember: The membership, new or pre-existing

        Raises:
            InvalidTokenError: If the link is unknown, expired, used, forged,
                issued to someone else, or its group was disbanded
        """
        with self.unit_of_work.transaction() as session:
            token = self.action_tokens.verify_and_consume(
                session,
                ActionTokenType.GROUP_INVITE,
                token_id,
                raw_secret,
                user_id=acting_user_id,
            )
            if (
                token.group_id is None
                or GroupStore.get_group_by_id(session, token.group_id) is None
            ):
                raise InvalidTokenError(token_id=token_id, cause='group')
            member = GroupStore.add_member(
                session, token.group_id, token.user_id, GroupRole.MEMBER, self.clock.now()
            )

        logger.info(
            'Group invitation accepted',
            extra={'group_id': member.group_id, 'user_id': member.user_id, 'token_id': token_id},
        )
        return member

"""Service for managing groups and their members."""

from dataclasses import dataclass

from grouptodo.core.clock import Clock
from grouptodo.core.logger import grouptodo_logger as logger
from grouptodo.server.auth.authorization import (
    GroupRole,
    can_disband,
    can_leave,
    can_remove,
    can_update_role,
)
from grouptodo.server.errors import (
    CannotRemoveSelfError,
    GroupNotFoundError,
    MemberNotFoundError,
    NotAMemberError,
    NotAuthorizedError,
    OwnerConstraintError,
    UserNotFoundError,
)
from grouptodo.storage.action_token_store import ActionTokenStore
from grouptodo.storage.database import UnitOfWork
from grouptodo.storage.group import Group
from grouptodo.storage.group_member import GroupMember
from grouptodo.storage.group_store import GroupStore
from grouptodo.storage.task_store import TaskStore
from grouptodo.storage.user_store import UserStore


@dataclass
class GroupMemberService:
    """Service for group membership operations.

    Every mutation re-reads the actor's and the target's roles inside the
    transaction that applies it, with row locks where the database has them.
    """

    unit_of_work: UnitOfWork
    clock: Clock

    def create_group(self, owner_id: int, name: str) -> Group:
        with self.unit_of_work.transaction() as session:
            if UserStore.get_user_by_id(session, owner_id) is None:
                raise UserNotFoundError(user_id=owner_id)
            group = GroupStore.create_group(session, owner_id, name, self.clock.now())

        logger.info('Group created', extra={'group_id': group.id, 'owner_id': owner_id})
        return group

    def list_groups_for_user(self, user_id: int) -> list[GroupMember]:
        """Memberships of a user, each with its group loaded."""
        with self.unit_of_work.transaction() as session:
            return GroupStore.list_memberships_for_user(session, user_id)

    def list_members(self, group_id: int, actor_id: int) -> list[GroupMember]:
        """Members of a group, visible to members only.

        Raises:
            GroupNotFoundError: If the group does not exist
            NotAMemberError: If the actor is not in the group
        """
        with self.unit_of_work.transaction() as session:
            if GroupStore.get_group_by_id(session, group_id) is None:
                raise GroupNotFoundError(group_id=group_id)
            if GroupStore.get_member(session, group_id, actor_id) is None:
                raise NotAMemberError(group_id=group_id, user_id=actor_id)
            return GroupStore.list_members(session, group_id)

    def remove_member(self, group_id: int, target_id: int, actor_id: int) -> None:
        """Remove a member from a group.

        Raises:
            GroupNotFoundError: If the group does not exist
            NotAMemberError: If the actor is not in the group
            MemberNotFoundError: If the target is not in the group
            OwnerConstraintError: If the target is the owner
            CannotRemoveSelfError: If actor and target are the same user
            NotAuthorizedError: If the actor's role may not remove the target's
        """
        with self.unit_of_work.transaction() as session:
            if GroupStore.get_group_by_id(session, group_id) is None:
                raise GroupNotFoundError(group_id=group_id)

            members = GroupStore.get_members_by_user_ids(
                session, group_id, [actor_id, target_id], for_update=True
            )
            actor = members.get(actor_id)
            if actor is None:
                raise NotAMemberError(group_id=group_id, user_id=actor_id)
            target = members.get(target_id)
            if target is None:
                raise MemberNotFoundError(group_id=group_id, user_id=target_id)

            if target.role == GroupRole.OWNER:
                raise OwnerConstraintError(
                    'The group owner cannot be removed',
                    group_id=group_id,
                    actor_id=actor_id,
                )
            if actor_id == target_id:
                raise CannotRemoveSelfError(group_id=group_id, user_id=actor_id)
            if not can_remove(actor.role, target.role):
                raise NotAuthorizedError(
                    action='remove_member',
                    group_id=group_id,
                    actor_role=actor.role.value,
                    target_role=target.role.value,
                )

            GroupStore.remove_member(session, group_id, target_id)

        logger.info(
            'Group member removed',
            extra={'group_id': group_id, 'user_id': target_id, 'actor_id': actor_id},
        )

    def update_member_role(
        self, group_id: int, target_id: int, new_role: GroupRole, actor_id: int
    ) -> GroupMember:
        """Promote or demote a member between ADMIN and MEMBER.

        Ownership cannot be granted, taken or transferred here.

        Raises:
            GroupNotFoundError: If the group does not exist
            NotAMemberError: If the actor is not in the group
            NotAuthorizedError: If the actor is not the owner
            MemberNotFoundError: If the target is not in the group
            OwnerConstraintError: If the target is the owner or ``new_role`` is OWNER
        """
        with self.unit_of_work.transaction() as session:
            if GroupStore.get_group_by_id(session, group_id) is None:
                raise GroupNotFoundError(group_id=group_id)

            members = GroupStore.get_members_by_user_ids(
                session, group_id, [actor_id, target_id], for_update=True
            )
            actor = members.get(actor_id)
            if actor is None:
                raise NotAMemberError(group_id=group_id, user_id=actor_id)
            if actor.role != GroupRole.OWNER:
                raise NotAuthorizedError(
                    action='update_role', group_id=group_id, actor_role=actor.role.value
                )
            target = members.get(target_id)
            if target is None:
                raise MemberNotFoundError(group_id=group_id, user_id=target_id)

            if (
                target_id == actor_id
                or not can_update_role(actor.role, target.role)
                or new_role == GroupRole.OWNER
            ):
                raise OwnerConstraintError(
                    'The owner role cannot be changed',
                    group_id=group_id,
                    target_id=target_id,
                    new_role=new_role.value,
                )

            if target.role != new_role:
                old_role = target.role
                GroupStore.update_member_role(session, target, new_role)
                logger.info(
                    'Group member role updated',
                    extra={
                        'group_id': group_id,
                        'user_id': target_id,
                        'old_role': old_role.value,
                        'new_role': new_role.value,
                    },
                )
            return target

    def leave_group(self, group_id: int, user_id: int) -> None:
        """
        Raises:
            MemberNotFoundError: If the user is not in the group
            OwnerConstraintError: If the user is the owner
        """
        with self.unit_of_work.transaction() as session:
            member = GroupStore.get_member(session, group_id, user_id, for_update=True)
            if member is None:
                raise MemberNotFoundError(group_id=group_id, user_id=user_id)
            if not can_leave(member.role):
                raise OwnerConstraintError(
                    'The group owner cannot leave the group', group_id=group_id
                )
            GroupStore.remove_member(session, group_id, user_id)

        logger.info('Group member left', extra={'group_id': group_id, 'user_id': user_id})

    def disband_group(self, group_id: int, actor_id: int) -> None:
        """Delete a group with its memberships and tasks.

        Outstanding invitation and assignment links for the group stop
        working; their token rows are kept, unlinked from the deleted rows.

        Raises:
            GroupNotFoundError: If the group does not exist
            NotAMemberError: If the actor is not in the group
            NotAuthorizedError: If the actor is not the owner
        """
        now = self.clock.now()
        with self.unit_of_work.transaction() as session:
            if GroupStore.get_group_by_id(session, group_id) is None:
                raise GroupNotFoundError(group_id=group_id)
            actor = GroupStore.get_member(session, group_id, actor_id, for_update=True)
            if actor is None:
                raise NotAMemberError(group_id=group_id, user_id=actor_id)
            if not can_disband(actor.role):
                raise NotAuthorizedError(
                    action='disband_group', group_id=group_id, actor_role=actor.role.value
                )

            task_ids, sub_task_ids = TaskStore.list_group_task_ids(session, group_id)
            revoked = ActionTokenStore.detach_group(
                session, group_id, task_ids, sub_task_ids, now
            )
            tasks = TaskStore.delete_tasks(session, task_ids)
            members = GroupStore.delete_group(session, group_id)

        logger.info(
            'Group disbanded',
            extra={
                'group_id': group_id,
                'actor_id': actor_id,
                'members': members,
                'tasks': tasks,
                'tokens_revoked': revoked,
            },
        )

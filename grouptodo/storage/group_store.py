"""
Store class for managing groups and their members.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, joinedload
from grouptodo.server.auth.authorization import GroupRole
from grouptodo.storage.group import Group
from grouptodo.storage.group_member import GroupMember


class GroupStore:
    """Store for managing groups and memberships."""

    @staticmethod
    def create_group(session: Session, owner_id: int, name: str, now: datetime) -> Group:
        """Create a group together with its owner membership."""
        group = Group(name=name, owner_id=owner_id, created_at=now)
        session.add(group)
        session.flush()
        session.add(
            GroupMember(
                group_id=group.id,
                user_id=owner_id,
                role=GroupRole.OWNER,
                joined_at=now,
            )
        )
        session.flush()
        return group

    @staticmethod
    def get_group_by_id(session: Session, group_id: int) -> Optional[Group]:
        return session.get(Group, group_id)

    @staticmethod
    def get_member(
        session: Session,
        group_id: int,
        user_id: int,
        for_update: bool = False,
    ) -> Optional[GroupMember]:
        """Get a membership row.

        Args:
            session: Transactional session
            group_id: Group id
            user_id: User id
            for_update: Lock the row for the rest of the transaction

        Returns:
            GroupMember or None if the user is not in the group
        """
        stmt = select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def get_members_by_user_ids(
        session: Session,
        group_id: int,
        user_ids: list[int],
        for_update: bool = False,
    ) -> dict[int, GroupMember]:
        """Get several memberships of one group keyed by user id."""
        stmt = select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id.in_(user_ids),
        )
        if for_update:
            stmt = stmt.with_for_update()
        return {member.user_id: member for member in session.execute(stmt).scalars()}

    @staticmethod
    def add_member(
        session: Session,
        group_id: int,
        user_id: int,
        role: GroupRole,
        now: datetime,
    ) -> GroupMember:
        """Add a user to a group; an existing membership is returned unchanged."""
        existing = GroupStore.get_member(session, group_id, user_id)
        if existing:
            return existing
        member = GroupMember(group_id=group_id, user_id=user_id, role=role, joined_at=now)
        session.add(member)
        session.flush()
        return member

    @staticmethod
    def update_member_role(session: Session, member: GroupMember, role: GroupRole) -> None:
        member.role = role
        session.flush()

    @staticmethod
    def remove_member(session: Session, group_id: int, user_id: int) -> int:
        """Delete a non-owner membership.

        Returns:
            int: Number of rows deleted
        """
        result = session.execute(
            delete(GroupMember)
            .where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
                GroupMember.role != GroupRole.OWNER,
            )
            .execution_options(synchronize_session='fetch')
        )
        return result.rowcount

    @staticmethod
    def delete_group(session: Session, group_id: int) -> int:
        """Delete a group and every membership in it, the owner's included.

        Returns:
            int: Number of memberships deleted
        """
        members = session.execute(
            delete(GroupMember)
            .where(GroupMember.group_id == group_id)
            .execution_options(synchronize_session='fetch')
        ).rowcount
        session.execute(
            delete(Group)
            .where(Group.id == group_id)
            .execution_options(synchronize_session='fetch')
        )
        return members

    @staticmethod
    def list_members(session: Session, group_id: int) -> list[GroupMember]:
        return list(
            session.execute(
                select(GroupMember)
                .options(joinedload(GroupMember.user))
                .where(GroupMember.group_id == group_id)
                .order_by(GroupMember.joined_at.asc(), GroupMember.user_id.asc())
            ).scalars()
        )

    @staticmethod
    def list_memberships_for_user(session: Session, user_id: int) -> list[GroupMember]:
        return list(
            session.execute(
                select(GroupMember)
                .options(joinedload(GroupMember.group))
                .where(GroupMember.user_id == user_id)
                .order_by(GroupMember.joined_at.asc(), GroupMember.group_id.asc())
            ).scalars()
        )

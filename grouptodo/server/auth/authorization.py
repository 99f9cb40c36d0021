"""
Role-based authorization for group operations.

Every decision about what a group role may do lives here so the rules are
tested once, exhaustively, instead of being re-derived at each call site.
The functions are pure: callers resolve the actor's and target's current
roles (inside the transaction that applies the change) and pass them in.

Two shapes of rule exist:

* Permissions that depend only on the actor's role (inviting, assigning
  tasks, closing group tasks, disbanding) are expressed through
  ``ROLE_PERMISSIONS`` and ``has_permission``.
* Rules that depend on both the actor and the target (removal, role
  updates) are expressed as matrices over ``(actor_role, target_role)``.

Usage:
    from grouptodo.server.auth.authorization import GroupRole, can_remove

    if not can_remove(actor.role, target.role):
        raise NotAuthorizedError(...)
"""

from enum import Enum


class GroupRole(str, Enum):
    """Roles a user can hold within a group."""

    OWNER = 'OWNER'
    ADMIN = 'ADMIN'
    MEMBER = 'MEMBER'


class GroupPermission(str, Enum):
    """Permissions that can be assigned to roles."""

    INVITE_MEMBER = 'invite_member'
    UPDATE_MEMBER_ROLE = 'update_member_role'
    ASSIGN_TASK = 'assign_task'
    CLOSE_GROUP_TASK = 'close_group_task'
    CREATE_GROUP_TASK = 'create_group_task'
    EDIT_GROUP_TASK = 'edit_group_task'
    DISBAND_GROUP = 'disband_group'


ROLE_PERMISSIONS: dict[GroupRole, frozenset[GroupPermission]] = {
    GroupRole.OWNER: frozenset(
        [
            GroupPermission.INVITE_MEMBER,
            GroupPermission.UPDATE_MEMBER_ROLE,
            GroupPermission.ASSIGN_TASK,
            GroupPermission.CLOSE_GROUP_TASK,
            GroupPermission.CREATE_GROUP_TASK,
            GroupPermission.EDIT_GROUP_TASK,
            GroupPermission.DISBAND_GROUP,
        ]
    ),
    GroupRole.ADMIN: frozenset(
        [
            GroupPermission.INVITE_MEMBER,
            GroupPermission.ASSIGN_TASK,
            GroupPermission.CLOSE_GROUP_TASK,
            GroupPermission.CREATE_GROUP_TASK,
            GroupPermission.EDIT_GROUP_TASK,
        ]
    ),
    GroupRole.MEMBER: frozenset(
        [
            GroupPermission.CREATE_GROUP_TASK,
        ]
    ),
}

# Which target roles each actor role may remove from a group.
REMOVAL_MATRIX: dict[GroupRole, frozenset[GroupRole]] = {
    GroupRole.OWNER: frozenset([GroupRole.ADMIN, GroupRole.MEMBER]),
    GroupRole.ADMIN: frozenset([GroupRole.MEMBER]),
    GroupRole.MEMBER: frozenset(),
}


def has_permission(role: GroupRole, permission: GroupPermission) -> bool:
    """
    Check if a role has a specific permission.

    Args:
        role: The member's group role
        permission: Permission to check

    Returns:
        True if the role has the permission
    """
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def is_adminish(role: GroupRole | None) -> bool:
    return role in (GroupRole.OWNER, GroupRole.ADMIN)


def can_invite(actor_role: GroupRole) -> bool:
    return has_permission(actor_role, GroupPermission.INVITE_MEMBER)


def can_remove(actor_role: GroupRole, target_role: GroupRole) -> bool:
    """
    Check if an actor may remove a member holding ``target_role``.

    Self-removal is not expressible here; callers reject it before consulting
    the matrix. No role may remove an owner.
    """
    return target_role in REMOVAL_MATRIX.get(actor_role, frozenset())


def can_update_role(actor_role: GroupRole, target_role: GroupRole) -> bool:
    """
    Check if an actor may change the role of a member holding ``target_role``.

    Only owners change roles, and an owner's own role is immutable through
    this path.
    """
    return (
        has_permission(actor_role, GroupPermission.UPDATE_MEMBER_ROLE)
        and target_role != GroupRole.OWNER
    )


def can_leave(role: GroupRole) -> bool:
    return role != GroupRole.OWNER


def can_disband(role: GroupRole) -> bool:
    return has_permission(role, GroupPermission.DISBAND_GROUP)

"""
Authorization and last-owner rules for conversation memberships.

Every check returns `None` when the action is allowed and a `ServiceError`
otherwise, so the service can hand the error straight back to its caller.
"""

from typing import Iterable, Optional

from app.core.errors import ErrorKind, ServiceError
from app.conversations.models import MemberRole, Membership


MUTATING_ROLES = (MemberRole.OWNER, MemberRole.ADMIN)


def count_owners(memberships: Iterable[Membership]) -> int:
    return sum(1 for m in memberships if m.active and m.role == MemberRole.OWNER)


def authorize_mutate(actor_role: Optional[MemberRole]) -> Optional[ServiceError]:
    if actor_role in MUTATING_ROLES:
        return None
    return ServiceError(
        ErrorKind.FORBIDDEN, "User is not allowed to modify this conversation."
    )


def authorize_view(has_active_membership: bool) -> Optional[ServiceError]:
    if has_active_membership:
        return None
    return ServiceError(
        ErrorKind.FORBIDDEN, "You are not a member of this conversation."
    )


def guard_role_change(
    current_role: MemberRole, target_role: MemberRole, active_owner_count: int
) -> Optional[ServiceError]:
    # Demoting the only owner would leave the conversation ownerless
    if (
        current_role == MemberRole.OWNER
        and target_role != MemberRole.OWNER
        and active_owner_count <= 1
    ):
        return ServiceError(
            ErrorKind.CONFLICT, "Cannot demote the last owner of a conversation."
        )
    return None


def guard_removal(role: MemberRole, active_owner_count: int) -> Optional[ServiceError]:
    if role == MemberRole.OWNER and active_owner_count <= 1:
        return ServiceError(
            ErrorKind.CONFLICT, "Cannot remove the last owner of a conversation."
        )
    return None

import logging
from typing import List, Optional

from app.core.errors import ErrorKind, Result, fail, ok, propagate
from app.core.locks import KeyedLocks
from app.conversations.direct_key import canonicalize
from app.conversations.guard import (
    authorize_mutate,
    authorize_view,
    count_owners,
    guard_removal,
    guard_role_change,
)
from app.conversations.models import (
    Conversation,
    ConversationType,
    ConversationView,
    MemberRole,
    Membership,
)
from app.conversations.repository import ConversationRepository, ConversationMembership
from app.utils.display_name import UNKNOWN_USER, group_display_name


logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = (MemberRole.OWNER, MemberRole.MEMBER)


def lock_key(conversation_id: str) -> str:
    # Conversation ids are uuids; any spelling of one must share a lock
    return str(conversation_id).lower()


class ConversationService:
    """
    Conversation and membership use cases.

    Each use case is a fixed sequence of repository calls; a step that fails
    ends the sequence and its error is returned as is. Nothing is rolled
    back, so a failure half way through a create leaves what was already
    written (see `create_conversation`).
    """

    def __init__(self, repository: ConversationRepository, locks: Optional[KeyedLocks] = None):
        self._repository = repository
        self._locks = locks if locks is not None else KeyedLocks()

    # --- conversations ---

    def create_conversation(
        self,
        actor_id: str,
        conversation_type: str,
        name: Optional[str] = None,
        target_id: Optional[str] = None,
    ) -> Result[Conversation]:
        """
        Create a conversation owned by the actor.

        **Group**
        - Inserts the conversation, then the actor as `owner`.
        - If the owner insert fails, the conversation row stays behind without
          members; the error is returned and the orphan is logged.

        **Direct**
        - `target_id` is required and must be another existing profile.
        - At most one live direct conversation exists per pair: if one exists
          it is returned unchanged with status 200.
        - Otherwise the row is created with its direct key, the actor joins
          as `owner` and the target as `member`, status 201.

        **Errors**
        - InvalidInput: unknown type, missing target, self-target
        - NotFound: target profile does not exist
        """
        try:
            kind = ConversationType(conversation_type)
        except ValueError:
            return fail(
                ErrorKind.INVALID_INPUT, "Field 'type' must be 'direct' or 'group'."
            )

        if kind == ConversationType.GROUP:
            return self._create_group(actor_id, name)
        return self._create_direct(actor_id, target_id)

    def _create_group(self, actor_id: str, name: Optional[str]) -> Result[Conversation]:
        name = name.strip() if name else None

        created = self._repository.create_conversation(
            ConversationType.GROUP, name or None, None, actor_id
        )
        if created.failed:
            return created

        conversation = created.value
        owner = self._repository.insert_membership(conversation.id, actor_id, MemberRole.OWNER)
        if owner.failed:
            logger.warning(
                f"orphan_conversation id={conversation.id} created_by={actor_id} "
                f"error={owner.error.message}"
            )
            return propagate(owner)

        logger.info(f"conversation_created id={conversation.id} type=group by={actor_id}")
        return ok(conversation, status_code=201)

    def _create_direct(self, actor_id: str, target_id: Optional[str]) -> Result[Conversation]:
        if not target_id:
            return fail(
                ErrorKind.INVALID_INPUT,
                "Field 'target_user_id' is required for direct conversations.",
            )

        target = self._resolve_profile(target_id, "Target user not found.")
        if target.failed:
            return target

        # From here on only the stored spelling of the id is used
        target_id = target.value

        if target_id == str(actor_id):
            return fail(
                ErrorKind.INVALID_INPUT, "Cannot start a direct conversation with yourself."
            )

        direct_key = canonicalize(actor_id, target_id)

        with self._locks.hold(f"direct:{direct_key}"):
            existing = self._repository.find_direct_by_key(direct_key)
            if existing.failed:
                return existing
            if existing.value is not None:
                return ok(existing.value, status_code=200)

            created = self._repository.create_conversation(
                ConversationType.DIRECT, None, direct_key, actor_id
            )
            if created.failed:
                if created.error.kind != ErrorKind.CONFLICT:
                    return created

                # Another writer created the pair first; its row wins
                winner = self._repository.find_direct_by_key(direct_key)
                if winner.failed:
                    return winner
                if winner.value is None:
                    return created
                return ok(winner.value, status_code=200)

            conversation = created.value

            for user_id, role in ((actor_id, MemberRole.OWNER), (target_id, MemberRole.MEMBER)):
                inserted = self._repository.insert_membership(conversation.id, user_id, role)
                if inserted.failed:
                    logger.warning(
                        f"incomplete_direct_conversation id={conversation.id} "
                        f"missing_member={user_id} error={inserted.error.message}"
                    )
                    return propagate(inserted)

        logger.info(f"conversation_created id={conversation.id} type=direct by={actor_id}")
        return ok(conversation, status_code=201)

    def list_conversations(self, actor_id: str) -> Result[List[ConversationView]]:
        """Live conversations the actor is an active member of, with display names."""
        rows = self._repository.list_for_member(actor_id)
        if rows.failed:
            return propagate(rows)

        return ok([self._enrich(actor_id, pair) for pair in rows.value])

    def get_conversation(self, actor_id: str, conversation_id: str) -> Result[ConversationView]:
        found = self._visible(actor_id, conversation_id)
        if found.failed:
            return propagate(found)

        return ok(self._enrich(actor_id, found.value))

    def update_conversation(
        self, actor_id: str, conversation_id: str, name: Optional[str]
    ) -> Result[Conversation]:
        """
        Rename a group conversation.

        Direct conversations have no stored name to change (their display
        name comes from the other participant), so any rename of one is a
        Conflict whatever the actor's role.
        """
        if name is None or not name.strip():
            return fail(
                ErrorKind.INVALID_INPUT, "Nothing to update (expecting at least 'name')."
            )

        found = self._visible(actor_id, conversation_id)
        if found.failed:
            return propagate(found)

        conversation, membership = found.value

        if conversation.type == ConversationType.DIRECT:
            return fail(ErrorKind.CONFLICT, "Direct conversations cannot be renamed.")

        denied = authorize_mutate(membership.role)
        if denied:
            return Result(error=denied)

        patched = self._repository.patch_conversation(conversation_id, {"name": name.strip()})
        if patched.failed:
            return propagate(patched)
        if patched.value is None:
            return fail(ErrorKind.NOT_FOUND, "Conversation not found.")

        return ok(patched.value)

    def delete_conversation(self, actor_id: str, conversation_id: str) -> Result[Conversation]:
        """
        Soft delete: stamps `deleted_at` and `updated_at`, never removes the row.

        Repeating the call is harmless. The conversation is already gone from
        every read, the first `deleted_at` is kept, and the row is
        returned again.
        """
        membership = self._repository.find_active_membership(conversation_id, actor_id)
        if membership.failed:
            return propagate(membership)
        if membership.value is None:
            return fail(
                ErrorKind.NOT_FOUND, "Conversation not found or user is not a member."
            )

        denied = authorize_mutate(membership.value.role)
        if denied:
            return Result(error=denied)

        deleted = self._repository.soft_delete_conversation(conversation_id)
        if deleted.failed:
            return propagate(deleted)

        if deleted.value is None:
            current = self._repository.find_conversation(conversation_id)
            if current.failed:
                return propagate(current)
            if current.value is None:
                return fail(ErrorKind.NOT_FOUND, "Conversation not found.")
            return ok(current.value)

        logger.info(f"conversation_deleted id={conversation_id} by={actor_id}")
        return ok(deleted.value)

    # --- members ---

    def add_member(
        self, actor_id: str, conversation_id: str, new_member_id: str
    ) -> Result[Membership]:
        if not new_member_id:
            return fail(ErrorKind.INVALID_INPUT, "Field 'user_id' is required.")

        found = self._visible(actor_id, conversation_id)
        if found.failed:
            return propagate(found)

        denied = authorize_mutate(found.value[1].role)
        if denied:
            return Result(error=denied)

        member = self._resolve_profile(new_member_id)
        if member.failed:
            return member
        new_member_id = member.value

        inserted = self._repository.insert_membership(
            conversation_id, new_member_id, MemberRole.MEMBER
        )
        if inserted.failed:
            if inserted.error.kind == ErrorKind.CONFLICT:
                return fail(
                    ErrorKind.CONFLICT, "User is already a member of this conversation."
                )
            return inserted

        logger.info(
            f"member_added conversation={conversation_id} user={new_member_id} by={actor_id}"
        )
        return ok(inserted.value, status_code=201)

    def list_members(self, actor_id: str, conversation_id: str) -> Result[List[Membership]]:
        found = self._repository.get_for_member(actor_id, conversation_id)
        if found.failed:
            return propagate(found)

        denied = authorize_view(found.value is not None)
        if denied:
            return Result(error=denied)

        return self._repository.list_active_memberships(conversation_id)

    def update_member_role(
        self, actor_id: str, conversation_id: str, target_id: str, role: str
    ) -> Result[Membership]:
        """
        Change a member's role to `owner` or `member`.

        **Errors**
        - InvalidInput: role is not `owner` or `member`
        - Forbidden: actor is not an owner/admin
        - NotFound: target has no profile or no active membership, or the
          membership disappeared before the update landed
        - Conflict: the target is the last owner and would be demoted
        """
        try:
            new_role = MemberRole(role)
        except ValueError:
            new_role = None
        if new_role not in ASSIGNABLE_ROLES:
            return fail(ErrorKind.INVALID_INPUT, "Field 'role' must be 'owner' or 'member'.")

        with self._locks.hold(lock_key(conversation_id)):
            found = self._visible(actor_id, conversation_id)
            if found.failed:
                return propagate(found)

            denied = authorize_mutate(found.value[1].role)
            if denied:
                return Result(error=denied)

            resolved = self._resolve_profile(target_id)
            if resolved.failed:
                return resolved
            target_id = resolved.value

            target = self._active_target(conversation_id, target_id)
            if target.failed:
                return propagate(target)
            membership, owners = target.value

            conflict = guard_role_change(membership.role, new_role, owners)
            if conflict:
                return Result(error=conflict)

            patched = self._repository.patch_membership_role(
                conversation_id, target_id, new_role, only_active=True
            )
            if patched.failed:
                return propagate(patched)
            if not patched.value:
                return fail(ErrorKind.NOT_FOUND, "Member not found.")

        logger.info(
            f"member_role_changed conversation={conversation_id} user={target_id} "
            f"role={new_role.value} by={actor_id}"
        )
        return ok(patched.value[0])

    def delete_member(
        self, actor_id: str, conversation_id: str, target_id: str
    ) -> Result[Membership]:
        """
        Remove a member (hard delete of the membership row).

        Leaving a conversation yourself only needs an active membership;
        removing someone else needs owner/admin. Either way the last owner
        cannot be removed.
        """
        with self._locks.hold(lock_key(conversation_id)):
            found = self._visible(actor_id, conversation_id)
            if found.failed:
                return propagate(found)

            resolved = self._resolve_profile(target_id)
            if resolved.failed:
                return resolved
            target_id = resolved.value

            if target_id != str(actor_id):
                denied = authorize_mutate(found.value[1].role)
                if denied:
                    return Result(error=denied)

            target = self._active_target(conversation_id, target_id)
            if target.failed:
                return propagate(target)
            membership, owners = target.value

            conflict = guard_removal(membership.role, owners)
            if conflict:
                return Result(error=conflict)

            deleted = self._repository.delete_membership(conversation_id, target_id)
            if deleted.failed:
                return propagate(deleted)
            if not deleted.value:
                return fail(ErrorKind.NOT_FOUND, "Member not found.")

        logger.info(
            f"member_removed conversation={conversation_id} user={target_id} by={actor_id}"
        )
        return ok(deleted.value[0])

    # --- helpers ---

    def _visible(self, actor_id: str, conversation_id: str) -> Result[ConversationMembership]:
        found = self._repository.get_for_member(actor_id, conversation_id)
        if found.failed:
            return found
        if found.value is None:
            return fail(
                ErrorKind.NOT_FOUND, "Conversation not found or user is not a member."
            )
        return found

    def _resolve_profile(self, profile_id: str, missing: str = "User not found.") -> Result[str]:
        """
        The profile id as the store spells it.

        Ids arrive from request bodies and paths in whatever case the caller
        used; comparisons and direct keys must only ever see this form.
        """
        profile = self._repository.find_profile(profile_id)
        if profile.failed:
            return propagate(profile)
        if profile.value is None:
            return fail(ErrorKind.NOT_FOUND, missing)
        return ok(profile.value.id)

    def _active_target(self, conversation_id: str, target_id: str) -> Result:
        """The target's active membership plus the current active owner count."""
        members = self._repository.list_active_memberships(conversation_id)
        if members.failed:
            return members

        membership = next(
            (m for m in members.value if str(m.user_id) == str(target_id)), None
        )
        if membership is None:
            return fail(
                ErrorKind.NOT_FOUND, "User is not an active member of this conversation."
            )

        return ok((membership, count_owners(members.value)))

    def _enrich(self, actor_id: str, pair: ConversationMembership) -> ConversationView:
        conversation, membership = pair
        fields = {
            **conversation.model_dump(),
            "role": membership.role,
            "joined_at": membership.joined_at,
        }

        if conversation.type == ConversationType.GROUP:
            return ConversationView(**fields, display_name=group_display_name(conversation.name))

        # Best effort: a direct row that cannot be enriched is still listed
        members = self._repository.list_active_memberships(conversation.id)
        if members.failed:
            logger.warning(
                f"enrichment_degraded conversation={conversation.id} error={members.error.message}"
            )
            return ConversationView(**fields, display_name=UNKNOWN_USER)

        other_user_id = next(
            (m.user_id for m in members.value if str(m.user_id) != str(actor_id)), None
        )
        if other_user_id is None:
            logger.warning(f"enrichment_degraded conversation={conversation.id} error=no counterpart")
            return ConversationView(**fields, display_name=UNKNOWN_USER)

        name = self._repository.profile_display_name(other_user_id)
        if name.failed:
            logger.warning(
                f"enrichment_degraded conversation={conversation.id} error={name.error.message}"
            )
            return ConversationView(
                **fields, display_name=UNKNOWN_USER, other_user_id=other_user_id
            )

        return ConversationView(**fields, display_name=name.value, other_user_id=other_user_id)

"""
Conversation and membership persistence.

`ConversationRepository` is the contract the service depends on; each method
is one independent round trip to the store and returns a `Result`. There is
no transaction spanning two calls.

`SupabaseConversationRepository` implements it on top of supabase-py
(PostgREST). Store failures become `Infrastructure` errors; unique
violations become `Conflict` so the store constraints can act as the final
uniqueness guard.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError
from supabase import Client, PostgrestAPIError

from app.core.errors import ErrorKind, Result, fail, ok, propagate
from app.conversations.models import (
    Conversation,
    ConversationType,
    MemberRole,
    Membership,
    Profile,
)
from app.utils.display_name import display_name


logger = logging.getLogger(__name__)

CONVERSATIONS = "conversations"
MEMBERS = "conversation_members"
PROFILES = "profiles"

UNIQUE_VIOLATION = "23505"
INVALID_TEXT_REPRESENTATION = "22P02"

MEMBERSHIP_COLUMNS = "id, conversation_id, user_id, role, joined_at, left_at"
MEMBERSHIP_WITH_CONVERSATION = (
    f"{MEMBERSHIP_COLUMNS}, conversation:conversations!inner(*)"
)

ConversationMembership = Tuple[Conversation, Membership]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConversationRepository(ABC):
    @abstractmethod
    def create_conversation(
        self,
        conversation_type: ConversationType,
        name: Optional[str],
        direct_key: Optional[str],
        creator_id: str,
    ) -> Result[Conversation]: ...

    @abstractmethod
    def patch_conversation(
        self, conversation_id: str, fields: Dict[str, Any]
    ) -> Result[Optional[Conversation]]: ...

    @abstractmethod
    def soft_delete_conversation(
        self, conversation_id: str
    ) -> Result[Optional[Conversation]]: ...

    @abstractmethod
    def find_conversation(self, conversation_id: str) -> Result[Optional[Conversation]]: ...

    @abstractmethod
    def list_for_member(self, member_id: str) -> Result[List[ConversationMembership]]: ...

    @abstractmethod
    def get_for_member(
        self, member_id: str, conversation_id: str
    ) -> Result[Optional[ConversationMembership]]: ...

    @abstractmethod
    def insert_membership(
        self, conversation_id: str, member_id: str, role: MemberRole
    ) -> Result[Membership]: ...

    @abstractmethod
    def find_active_membership(
        self, conversation_id: str, member_id: str
    ) -> Result[Optional[Membership]]: ...

    @abstractmethod
    def list_active_memberships(self, conversation_id: str) -> Result[List[Membership]]: ...

    @abstractmethod
    def patch_membership_role(
        self,
        conversation_id: str,
        user_id: str,
        role: MemberRole,
        only_active: bool = True,
    ) -> Result[List[Membership]]: ...

    @abstractmethod
    def delete_membership(
        self, conversation_id: str, user_id: str
    ) -> Result[List[Membership]]: ...

    @abstractmethod
    def find_direct_by_key(self, direct_key: str) -> Result[Optional[Conversation]]: ...

    @abstractmethod
    def find_profile_by_identity(self, external_identity: str) -> Result[Optional[Profile]]: ...

    @abstractmethod
    def find_profile(self, profile_id: str) -> Result[Optional[Profile]]: ...

    def profile_exists(self, profile_id: str) -> Result[bool]:
        found = self.find_profile(profile_id)
        if found.failed:
            return propagate(found)
        return ok(found.value is not None)

    @abstractmethod
    def profile_display_name(self, profile_id: str) -> Result[str]: ...


class SupabaseConversationRepository(ConversationRepository):
    def __init__(self, client: Client):
        self._client = client

    def _execute(self, query, action: str) -> Result[List[Dict[str, Any]]]:
        try:
            response = query.execute()
        except PostgrestAPIError as error:
            if error.code == UNIQUE_VIOLATION:
                logger.info(f"store_conflict action={action} detail={error.message}")
                return fail(ErrorKind.CONFLICT, f"Duplicate row while trying to {action}.")
            if error.code == INVALID_TEXT_REPRESENTATION:
                # e.g. a path id that is not a UUID
                return fail(ErrorKind.INVALID_INPUT, f"Malformed identifier while trying to {action}.")

            logger.error(
                f"store_error action={action} code={error.code} message={error.message}"
            )
            return fail(ErrorKind.INFRASTRUCTURE, f"Database error while trying to {action}.")
        except httpx.HTTPError as error:
            logger.error(f"store_unreachable action={action} error={error}")
            return fail(ErrorKind.INFRASTRUCTURE, f"Database unreachable while trying to {action}.")

        data = response.data
        if data is None:
            return ok([])
        if isinstance(data, dict):
            return ok([data])
        if not isinstance(data, list):
            logger.error(f"store_malformed action={action} payload_type={type(data).__name__}")
            return fail(ErrorKind.INFRASTRUCTURE, f"Unexpected response while trying to {action}.")
        return ok(data)

    def _rows(self, query, action: str, model) -> Result[list]:
        executed = self._execute(query, action)
        if executed.failed:
            return executed

        try:
            return ok([model.model_validate(row) for row in executed.value])
        except ValidationError as error:
            logger.error(f"store_malformed action={action} error={error}")
            return fail(ErrorKind.INFRASTRUCTURE, f"Unexpected response while trying to {action}.")

    def _first(self, query, action: str, model) -> Result:
        rows = self._rows(query, action, model)
        if rows.failed:
            return rows
        return ok(rows.value[0] if rows.value else None)

    def _joined(self, query, action: str) -> Result[List[ConversationMembership]]:
        executed = self._execute(query, action)
        if executed.failed:
            return executed

        pairs = []
        try:
            for row in executed.value:
                conversation = row.get("conversation")
                if not conversation:
                    continue
                membership = {k: v for k, v in row.items() if k != "conversation"}
                pairs.append(
                    (
                        Conversation.model_validate(conversation),
                        Membership.model_validate(membership),
                    )
                )
        except (ValidationError, AttributeError) as error:
            logger.error(f"store_malformed action={action} error={error}")
            return fail(ErrorKind.INFRASTRUCTURE, f"Unexpected response while trying to {action}.")

        return ok(pairs)

    # --- conversations ---

    def create_conversation(self, conversation_type, name, direct_key, creator_id):
        payload = {
            "type": ConversationType(conversation_type).value,
            "created_by": creator_id,
        }
        if name:
            payload["name"] = name
        if direct_key:
            payload["direct_key"] = direct_key

        created = self._first(
            self._client.table(CONVERSATIONS).insert(payload),
            "create conversation",
            Conversation,
        )
        if created.failed:
            return created
        if created.value is None:
            return fail(
                ErrorKind.INFRASTRUCTURE, "Conversation created but id missing in response."
            )
        return created

    def patch_conversation(self, conversation_id, fields):
        payload = {**fields, "updated_at": fields.get("updated_at") or now_iso()}

        return self._first(
            self._client.table(CONVERSATIONS)
            .update(payload)
            .eq("id", conversation_id)
            .is_("deleted_at", "null"),
            "update conversation",
            Conversation,
        )

    def soft_delete_conversation(self, conversation_id):
        ts = now_iso()
        return self.patch_conversation(
            conversation_id, {"deleted_at": ts, "updated_at": ts}
        )

    def find_conversation(self, conversation_id):
        return self._first(
            self._client.table(CONVERSATIONS)
            .select("*")
            .eq("id", conversation_id)
            .limit(1),
            "fetch conversation",
            Conversation,
        )

    def list_for_member(self, member_id):
        return self._joined(
            self._client.table(MEMBERS)
            .select(MEMBERSHIP_WITH_CONVERSATION)
            .eq("user_id", member_id)
            .is_("left_at", "null")
            .is_("conversation.deleted_at", "null"),
            "list conversations",
        )

    def get_for_member(self, member_id, conversation_id):
        pairs = self._joined(
            self._client.table(MEMBERS)
            .select(MEMBERSHIP_WITH_CONVERSATION)
            .eq("user_id", member_id)
            .eq("conversation_id", conversation_id)
            .is_("left_at", "null")
            .is_("conversation.deleted_at", "null")
            .limit(1),
            "fetch conversation",
        )
        if pairs.failed:
            return pairs
        return ok(pairs.value[0] if pairs.value else None)

    def find_direct_by_key(self, direct_key):
        return self._first(
            self._client.table(CONVERSATIONS)
            .select("*")
            .eq("type", ConversationType.DIRECT.value)
            .eq("direct_key", direct_key)
            .is_("deleted_at", "null")
            .limit(1),
            "look up direct conversation",
            Conversation,
        )

    # --- memberships ---

    def insert_membership(self, conversation_id, member_id, role):
        inserted = self._first(
            self._client.table(MEMBERS).insert(
                {
                    "conversation_id": conversation_id,
                    "user_id": member_id,
                    "role": MemberRole(role).value,
                }
            ),
            "add member",
            Membership,
        )
        if inserted.failed:
            return inserted
        if inserted.value is None:
            return fail(ErrorKind.INFRASTRUCTURE, "Member inserted but missing in response.")
        return inserted

    def find_active_membership(self, conversation_id, member_id):
        return self._first(
            self._client.table(MEMBERS)
            .select(MEMBERSHIP_COLUMNS)
            .eq("conversation_id", conversation_id)
            .eq("user_id", member_id)
            .is_("left_at", "null")
            .limit(1),
            "check membership",
            Membership,
        )

    def list_active_memberships(self, conversation_id):
        return self._rows(
            self._client.table(MEMBERS)
            .select(MEMBERSHIP_COLUMNS)
            .eq("conversation_id", conversation_id)
            .is_("left_at", "null")
            .order("joined_at"),
            "list members",
            Membership,
        )

    def patch_membership_role(self, conversation_id, user_id, role, only_active=True):
        query = (
            self._client.table(MEMBERS)
            .update({"role": MemberRole(role).value})
            .eq("conversation_id", conversation_id)
            .eq("user_id", user_id)
        )
        if only_active:
            query = query.is_("left_at", "null")

        return self._rows(query, "update member role", Membership)

    def delete_membership(self, conversation_id, user_id):
        return self._rows(
            self._client.table(MEMBERS)
            .delete()
            .eq("conversation_id", conversation_id)
            .eq("user_id", user_id),
            "remove member",
            Membership,
        )

    # --- profiles ---

    def find_profile_by_identity(self, external_identity):
        return self._first(
            self._client.table(PROFILES)
            .select("id, external_identity, first_name, last_name")
            .eq("external_identity", external_identity)
            .limit(1),
            "look up profile",
            Profile,
        )

    def find_profile(self, profile_id):
        # The returned id is the store's spelling, whatever case was asked for
        return self._first(
            self._client.table(PROFILES)
            .select("id, external_identity, first_name, last_name")
            .eq("id", profile_id)
            .limit(1),
            "look up user",
            Profile,
        )

    def profile_display_name(self, profile_id):
        profile = self._first(
            self._client.table(PROFILES)
            .select("id, first_name, last_name")
            .eq("id", profile_id)
            .limit(1),
            "look up user",
            Profile,
        )
        if profile.failed:
            return propagate(profile)
        if profile.value is None:
            return fail(ErrorKind.NOT_FOUND, "Participant profile could not be found.")
        return ok(display_name(profile.value.first_name, profile.value.last_name))

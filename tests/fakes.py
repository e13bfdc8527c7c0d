"""
Test doubles.

- InMemoryConversationRepository: the repository contract over dicts, with the
  same uniqueness rules as the store (live direct key, one row per member).
- FakeSupabase / FakeQuery: records the PostgREST builder calls made by
  SupabaseConversationRepository and replays queued responses.
- FakeAuth: stands in for `client.auth`.
"""

import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

from app.core.errors import ErrorKind, fail, ok
from app.conversations.models import (
    Conversation,
    ConversationType,
    MemberRole,
    Membership,
    Profile,
)
from app.conversations.repository import ConversationRepository
from app.utils.display_name import display_name


class InMemoryConversationRepository(ConversationRepository):
    def __init__(self):
        self.profiles: Dict[str, Profile] = {}
        self.conversations: Dict[str, dict] = {}
        self.memberships: List[dict] = []
        self.failing: Dict[str, ErrorKind] = {}
        self.calls: List[str] = []
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    # --- test helpers ---

    def add_profile(self, profile_id, first_name=None, last_name=None, external_identity=None):
        self.profiles[profile_id] = Profile(
            id=profile_id,
            external_identity=external_identity,
            first_name=first_name,
            last_name=last_name,
        )

    def fail_on(self, method: str, kind: ErrorKind = ErrorKind.INFRASTRUCTURE):
        self.failing[method] = kind

    def role_of(self, conversation_id: str, user_id: str) -> Optional[str]:
        for row in self.memberships:
            if row["conversation_id"] == conversation_id and row["user_id"] == user_id:
                return MemberRole(row["role"]).value
        return None

    def members_of(self, conversation_id: str) -> List[dict]:
        return [m for m in self.memberships if m["conversation_id"] == conversation_id]

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _check(self, method: str):
        self.calls.append(method)
        if method in self.failing:
            return fail(self.failing[method], f"{method} failed")
        return None

    def _live(self, conversation_id: str) -> Optional[dict]:
        row = self.conversations.get(conversation_id)
        if row is None or row["deleted_at"] is not None:
            return None
        return row

    # --- conversations ---

    def create_conversation(self, conversation_type, name, direct_key, creator_id):
        failed = self._check("create_conversation")
        if failed:
            return failed

        if direct_key and any(
            c["direct_key"] == direct_key and c["deleted_at"] is None
            for c in self.conversations.values()
        ):
            return fail(ErrorKind.CONFLICT, "Duplicate row while trying to create conversation.")

        now = self._tick()
        row = {
            "id": str(uuid.uuid4()),
            "type": ConversationType(conversation_type).value,
            "name": name,
            "direct_key": direct_key,
            "created_by": creator_id,
            "created_at": now,
            "updated_at": now,
            "deleted_at": None,
        }
        self.conversations[row["id"]] = row
        return ok(Conversation(**row))

    def patch_conversation(self, conversation_id, fields):
        failed = self._check("patch_conversation")
        if failed:
            return failed

        row = self._live(conversation_id)
        if row is None:
            return ok(None)
        row.update(fields)
        row["updated_at"] = fields.get("updated_at") or self._tick()
        return ok(Conversation(**row))

    def soft_delete_conversation(self, conversation_id):
        now = self._tick()
        return self.patch_conversation(conversation_id, {"deleted_at": now, "updated_at": now})

    def find_conversation(self, conversation_id):
        failed = self._check("find_conversation")
        if failed:
            return failed

        row = self.conversations.get(conversation_id)
        return ok(Conversation(**row) if row else None)

    def _pairs(self, member_id, conversation_id=None):
        pairs = []
        for m in self.memberships:
            if m["user_id"] != member_id or m["left_at"] is not None:
                continue
            if conversation_id is not None and m["conversation_id"] != conversation_id:
                continue
            row = self._live(m["conversation_id"])
            if row is None:
                continue
            pairs.append((Conversation(**row), Membership(**m)))
        return pairs

    def list_for_member(self, member_id):
        failed = self._check("list_for_member")
        if failed:
            return failed
        return ok(self._pairs(member_id))

    def get_for_member(self, member_id, conversation_id):
        failed = self._check("get_for_member")
        if failed:
            return failed
        pairs = self._pairs(member_id, conversation_id)
        return ok(pairs[0] if pairs else None)

    def find_direct_by_key(self, direct_key):
        failed = self._check("find_direct_by_key")
        if failed:
            return failed

        for row in self.conversations.values():
            if (
                row["type"] == ConversationType.DIRECT.value
                and row["direct_key"] == direct_key
                and row["deleted_at"] is None
            ):
                return ok(Conversation(**row))
        return ok(None)

    # --- memberships ---

    def insert_membership(self, conversation_id, member_id, role):
        failed = self._check("insert_membership")
        if failed:
            return failed

        if any(
            m["conversation_id"] == conversation_id and m["user_id"] == member_id
            for m in self.memberships
        ):
            return fail(ErrorKind.CONFLICT, "Duplicate row while trying to add member.")

        row = {
            "id": str(uuid.uuid4()),
            "conversation_id": conversation_id,
            "user_id": member_id,
            "role": MemberRole(role).value,
            "joined_at": self._tick(),
            "left_at": None,
        }
        self.memberships.append(row)
        return ok(Membership(**row))

    def find_active_membership(self, conversation_id, member_id):
        failed = self._check("find_active_membership")
        if failed:
            return failed

        for m in self.memberships:
            if (
                m["conversation_id"] == conversation_id
                and m["user_id"] == member_id
                and m["left_at"] is None
            ):
                return ok(Membership(**m))
        return ok(None)

    def list_active_memberships(self, conversation_id):
        failed = self._check("list_active_memberships")
        if failed:
            return failed

        rows = [
            Membership(**m)
            for m in self.memberships
            if m["conversation_id"] == conversation_id and m["left_at"] is None
        ]
        return ok(sorted(rows, key=lambda m: m.joined_at))

    def patch_membership_role(self, conversation_id, user_id, role, only_active=True):
        failed = self._check("patch_membership_role")
        if failed:
            return failed

        patched = []
        for m in self.memberships:
            if m["conversation_id"] != conversation_id or m["user_id"] != user_id:
                continue
            if only_active and m["left_at"] is not None:
                continue
            m["role"] = MemberRole(role).value
            patched.append(Membership(**m))
        return ok(patched)

    def delete_membership(self, conversation_id, user_id):
        failed = self._check("delete_membership")
        if failed:
            return failed

        removed = [
            m
            for m in self.memberships
            if m["conversation_id"] == conversation_id and m["user_id"] == user_id
        ]
        self.memberships = [m for m in self.memberships if m not in removed]
        return ok([Membership(**m) for m in removed])

    # --- profiles ---

    def find_profile_by_identity(self, external_identity):
        failed = self._check("find_profile_by_identity")
        if failed:
            return failed

        for profile in self.profiles.values():
            if profile.external_identity == external_identity:
                return ok(profile)
        return ok(None)

    def find_profile(self, profile_id):
        failed = self._check("find_profile")
        if failed:
            return failed

        # uuid columns compare case-insensitively
        for profile in self.profiles.values():
            if profile.id.lower() == str(profile_id).lower():
                return ok(profile)
        return ok(None)

    def profile_display_name(self, profile_id):
        failed = self._check("profile_display_name")
        if failed:
            return failed

        profile = self.profiles.get(profile_id)
        if profile is None:
            return fail(ErrorKind.NOT_FOUND, "Participant profile could not be found.")
        return ok(display_name(profile.first_name, profile.last_name))


class FakeQuery:
    """Chainable stand-in for a postgrest request builder."""

    def __init__(self, table_name, data=None, error=None):
        self.table_name = table_name
        self.data = data
        self.error = error
        self.calls = []

    def __getattr__(self, name):
        if name.startswith("__"):
            raise AttributeError(name)

        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return record

    def execute(self):
        self.calls.append(("execute", (), {}))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)

    def called(self, name):
        return [(args, kwargs) for call, args, kwargs in self.calls if call == name]


class FakeSupabase:
    def __init__(self):
        self._queued = defaultdict(list)
        self.queries: List[FakeQuery] = []

    def respond(self, table_name, data=None, error=None):
        self._queued[table_name].append(FakeQuery(table_name, data, error))

    def table(self, table_name):
        queued = self._queued[table_name]
        query = queued.pop(0) if queued else FakeQuery(table_name, [])
        self.queries.append(query)
        return query

    @property
    def last(self) -> FakeQuery:
        return self.queries[-1]


class FakeAuth:
    """`client.auth` with a fixed token -> auth user id table."""

    def __init__(self, users=None, error=None):
        self.users = users or {}
        self.error = error
        self.tokens_seen = []

    def get_user(self, jwt=None):
        self.tokens_seen.append(jwt)
        if self.error is not None:
            raise self.error
        user_id = self.users.get(jwt)
        if user_id is None:
            return None
        return SimpleNamespace(user=SimpleNamespace(id=user_id, email=f"{user_id}@example.com"))

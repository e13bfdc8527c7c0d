from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ConversationType(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


class MemberRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class Profile(BaseModel):
    id: str
    external_identity: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class Conversation(BaseModel):
    id: str
    type: ConversationType
    name: Optional[str] = None
    direct_key: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class Membership(BaseModel):
    id: Optional[str] = None
    conversation_id: str
    user_id: str
    role: MemberRole
    joined_at: datetime
    left_at: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self.left_at is None


class ConversationView(Conversation):
    """A conversation as seen by one of its members."""

    role: MemberRole
    joined_at: Optional[datetime] = None
    display_name: str
    other_user_id: Optional[str] = None


profiles_sql = """
CREATE TABLE profiles (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    external_identity UUID UNIQUE NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    first_name TEXT,
    last_name TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

conversations_sql = """
CREATE TABLE conversations (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    type TEXT NOT NULL,
    name TEXT,
    direct_key TEXT,
    created_by UUID NOT NULL REFERENCES profiles(id),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    deleted_at TIMESTAMPTZ,

    CONSTRAINT conversation_type CHECK (type IN ('direct', 'group')),

    -- direct_key is derived, and only direct conversations carry one
    CONSTRAINT direct_key_only_for_direct CHECK (
        (type = 'direct' AND direct_key IS NOT NULL)
        OR (type = 'group' AND direct_key IS NULL)
    )
);

-- At most one live direct conversation per canonical pair
CREATE UNIQUE INDEX unique_live_direct_key
    ON conversations (direct_key)
    WHERE deleted_at IS NULL;
"""

conversation_members_sql = """
CREATE TABLE conversation_members (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    role TEXT NOT NULL DEFAULT 'member',
    joined_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    left_at TIMESTAMPTZ,

    CONSTRAINT member_role CHECK (role IN ('owner', 'admin', 'member')),
    UNIQUE (conversation_id, user_id)
);
"""

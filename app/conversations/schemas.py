from pydantic import BaseModel
from typing import List, Optional

from .models import Conversation, ConversationView, Membership


# Create conversation
class CreateConversationModel(BaseModel):
    type: str
    name: Optional[str] = None
    target_user_id: Optional[str] = None


class ConversationResponseModel(BaseModel):
    conversation: Conversation


# List / get conversations
class GetConversationsResponseModel(BaseModel):
    conversations: List[ConversationView]


class GetConversationResponseModel(BaseModel):
    conversation: ConversationView


# Update conversation
class UpdateConversationModel(BaseModel):
    name: Optional[str] = None


# Members
class AddMemberModel(BaseModel):
    user_id: str


class UpdateMemberRoleModel(BaseModel):
    role: str


class MemberResponseModel(BaseModel):
    member: Membership


class GetMembersResponseModel(BaseModel):
    members: List[Membership]


class RemoveMemberResponseModel(BaseModel):
    member_removed: bool
    member: Membership

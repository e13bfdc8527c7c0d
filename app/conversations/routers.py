from fastapi import APIRouter, Depends, Response

from app.core.dependencies import get_conversation_service, get_current_member
from app.conversations.service import ConversationService

from .schemas import (
    CreateConversationModel,
    ConversationResponseModel,
    GetConversationsResponseModel,
    GetConversationResponseModel,
    UpdateConversationModel,
    AddMemberModel,
    UpdateMemberRoleModel,
    MemberResponseModel,
    GetMembersResponseModel,
    RemoveMemberResponseModel,
)


router = APIRouter()


@router.post("", response_model=ConversationResponseModel, status_code=201)
def create_conversation(
    data: CreateConversationModel,
    response: Response,
    actor_id: str = Depends(get_current_member),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Create a group conversation, or get-or-create a direct one.

    **Input**
    - `type`: `"group"` or `"direct"`
    - `name`: Optional group name (ignored for direct conversations)
    - `target_user_id`: Profile id of the other participant (direct only)

    **Returns**
    - `conversation`: The conversation record
    - Status `201` when created, `200` when an existing direct conversation
      between the two users is returned

    **Errors**
    - 400: Invalid type, missing target, or targeting yourself
    - 401: Missing or invalid token
    - 404: Target user not found
    - 503: Database unavailable (retry after `Retry-After` seconds)
    """
    result = service.create_conversation(
        actor_id, data.type, name=data.name, target_id=data.target_user_id
    )
    conversation = result.unwrap()
    response.status_code = result.status_code

    return {"conversation": conversation}


@router.get("", response_model=GetConversationsResponseModel, status_code=200)
def list_conversations(
    actor_id: str = Depends(get_current_member),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Retrieve every live conversation the authenticated user belongs to.

    Direct conversations carry the other participant's name as
    `display_name` and their id as `other_user_id`; group conversations
    show their stored name.
    """
    return {"conversations": service.list_conversations(actor_id).unwrap()}


@router.get(
    "/{conversation_id}", response_model=GetConversationResponseModel, status_code=200
)
def get_conversation(
    conversation_id: str,
    actor_id: str = Depends(get_current_member),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    **Errors**
    - 404: Conversation does not exist, was deleted, or you are not a member
    """
    return {"conversation": service.get_conversation(actor_id, conversation_id).unwrap()}


@router.patch(
    "/{conversation_id}", response_model=ConversationResponseModel, status_code=200
)
def update_conversation(
    conversation_id: str,
    data: UpdateConversationModel,
    actor_id: str = Depends(get_current_member),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Rename a group conversation (owners and admins only).

    **Errors**
    - 400: No name given
    - 403: You are not an owner/admin
    - 404: Conversation not found
    - 409: Direct conversations cannot be renamed
    """
    result = service.update_conversation(actor_id, conversation_id, data.name)
    return {"conversation": result.unwrap()}


@router.delete(
    "/{conversation_id}", response_model=ConversationResponseModel, status_code=200
)
def delete_conversation(
    conversation_id: str,
    actor_id: str = Depends(get_current_member),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Soft delete a conversation (owners and admins only). Safe to repeat.
    """
    result = service.delete_conversation(actor_id, conversation_id)
    return {"conversation": result.unwrap()}


@router.post(
    "/{conversation_id}/members", response_model=MemberResponseModel, status_code=201
)
def add_member(
    conversation_id: str,
    data: AddMemberModel,
    actor_id: str = Depends(get_current_member),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Add a user to a conversation as `member`.

    **Errors**
    - 403: You are not an owner/admin
    - 404: Conversation or user not found
    - 409: User is already a member
    """
    result = service.add_member(actor_id, conversation_id, data.user_id)
    return {"member": result.unwrap()}


@router.get(
    "/{conversation_id}/members", response_model=GetMembersResponseModel, status_code=200
)
def list_members(
    conversation_id: str,
    actor_id: str = Depends(get_current_member),
    service: ConversationService = Depends(get_conversation_service),
):
    return {"members": service.list_members(actor_id, conversation_id).unwrap()}


@router.patch(
    "/{conversation_id}/members/{user_id}",
    response_model=MemberResponseModel,
    status_code=200,
)
def update_member_role(
    conversation_id: str,
    user_id: str,
    data: UpdateMemberRoleModel,
    actor_id: str = Depends(get_current_member),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Change a member's role (`owner` or `member`).

    **Errors**
    - 400: Unknown role
    - 403: You are not an owner/admin
    - 404: User is not an active member
    - 409: Would demote the last owner
    """
    result = service.update_member_role(actor_id, conversation_id, user_id, data.role)
    return {"member": result.unwrap()}


@router.delete(
    "/{conversation_id}/members/{user_id}",
    response_model=RemoveMemberResponseModel,
    status_code=200,
)
def delete_member(
    conversation_id: str,
    user_id: str,
    actor_id: str = Depends(get_current_member),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Remove a member, or leave the conversation when `user_id` is yourself.

    **Errors**
    - 403: Removing someone else without being an owner/admin
    - 404: User is not an active member
    - 409: Would remove the last owner
    """
    result = service.delete_member(actor_id, conversation_id, user_id)
    return {"member_removed": True, "member": result.unwrap()}

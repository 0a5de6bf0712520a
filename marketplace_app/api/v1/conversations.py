from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from marketplace_app.database.connection import get_db
from marketplace_app.dependencies import get_current_user_id, get_message_router
from marketplace_app.exceptions import (
    ConversationNotFound,
    InconsistencyError,
    NotFoundError,
    PermissionDeniedError,
)
from marketplace_app.realtime.router import MessageRouter
from marketplace_app.schemas.message import (
    ConversationResponse,
    MessageResponse,
    SendMessageRequest,
    StartConversationRequest,
    StartConversationResponse,
)
from marketplace_app.services.message_service import MessageService

router = APIRouter(tags=["conversations"])


@router.get("/conversations", response_model=List[ConversationResponse])
def list_conversations(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """The caller's conversations, most recent activity first"""
    return MessageService(db).list_conversations(user_id)


@router.post("/conversations/start", response_model=StartConversationResponse)
def start_conversation(
    request: StartConversationRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Get or create the conversation of an application"""
    try:
        conversation, created = MessageService(db).start_conversation(request.application_id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except InconsistencyError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return StartConversationResponse(conversation_id=conversation.id, created=created)


@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageResponse])
def get_messages(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Message history, oldest first"""
    service = MessageService(db)
    try:
        service.get_conversation_for(conversation_id, user_id)
    except ConversationNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    return service.get_messages(conversation_id)


@router.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    message_router: MessageRouter = Depends(get_message_router),
):
    """
    Send a message over HTTP.

    Fallback for clients without a live socket; the message is
    persisted and pushed to live participants exactly like a
    chat_message frame.
    """
    if not request.content.strip():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Message is empty")

    service = MessageService(db)
    try:
        conversation = service.get_conversation_for(request.conversation_id, user_id)
    except ConversationNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    message = service.create_message(conversation, user_id, request.content)
    await message_router.publish_new_message(message, conversation.participant_ids)
    return message

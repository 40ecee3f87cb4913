"""
Chat endpoints for buyer/seller conversations and rate negotiation.
New messages and events are pushed to both participants over /ws.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Security, status, Depends
from pydantic import BaseModel

from auth import get_current_user
from chats import (
    ChatManager, ChatError, ChatNotFoundError, ChatForbiddenError,
    RateProposalNotFoundError, RateConflictError
)
from database.exceptions import DatabaseError
from ..dependencies import get_chat_manager, get_connection_manager

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/api/chats",
    tags=["Chats"]
)

class OpenChatRequest(BaseModel):
    listing_id: Optional[str] = None

class SendMessageRequest(BaseModel):
    text: Optional[Any] = None

class ProposeRateRequest(BaseModel):
    amount: Optional[Any] = None

class RespondRateRequest(BaseModel):
    response: Optional[str] = None
    proposal_id: Optional[str] = None

def _chat_http_error(e: Exception) -> HTTPException:
    if isinstance(e, RateConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, (ChatNotFoundError, RateProposalNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ChatForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, ChatError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not isinstance(e, DatabaseError):
        logger.error(f"Unexpected chat error: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

@router.post("")
async def open_chat(
    request: Optional[OpenChatRequest] = None,
    current_user: str = Security(get_current_user),
    manager: ChatManager = Depends(get_chat_manager)
):
    """Get or create your chat with the owner of a listing."""
    request = request or OpenChatRequest()
    try:
        return await manager.get_or_create(current_user, request.listing_id)
    except Exception as e:
        raise _chat_http_error(e)

@router.get("")
async def list_chats(
    current_user: str = Security(get_current_user),
    manager: ChatManager = Depends(get_chat_manager)
):
    """List your chats, most recent activity first."""
    try:
        return await manager.list_chats(current_user)
    except Exception as e:
        raise _chat_http_error(e)

@router.get("/{chat_id}/messages")
async def get_messages(
    chat_id: str,
    limit: Optional[int] = Query(None, ge=1),
    current_user: str = Security(get_current_user),
    manager: ChatManager = Depends(get_chat_manager)
):
    """Get a chat's messages, oldest first, with decoded rate and deal events."""
    try:
        return await manager.get_messages(chat_id, current_user, limit=limit)
    except Exception as e:
        raise _chat_http_error(e)

@router.post("/{chat_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    chat_id: str,
    request: Optional[SendMessageRequest] = None,
    current_user: str = Security(get_current_user),
    manager: ChatManager = Depends(get_chat_manager),
    connections = Depends(get_connection_manager)
):
    """Send a text message."""
    request = request or SendMessageRequest()
    try:
        result = await manager.send_message(chat_id, current_user, request.text)
    except Exception as e:
        raise _chat_http_error(e)

    await connections.publish_chat_message(result['chat'], result['message'])
    return result['message']

@router.post("/{chat_id}/rate/propose", status_code=status.HTTP_201_CREATED)
async def propose_rate(
    chat_id: str,
    request: Optional[ProposeRateRequest] = None,
    current_user: str = Security(get_current_user),
    manager: ChatManager = Depends(get_chat_manager),
    connections = Depends(get_connection_manager)
):
    """Offer a price in a chat.

    Returns:
        The stored message, whose event carries the new proposalId
    """
    request = request or ProposeRateRequest()
    try:
        result = await manager.propose_rate(chat_id, current_user, request.amount)
    except Exception as e:
        raise _chat_http_error(e)

    await connections.publish_chat_message(result['chat'], result['message'])
    return result['message']

@router.put("/{chat_id}/rate/respond")
async def respond_to_rate(
    chat_id: str,
    request: Optional[RespondRateRequest] = None,
    current_user: str = Security(get_current_user),
    manager: ChatManager = Depends(get_chat_manager),
    connections = Depends(get_connection_manager)
):
    """Accept or reject the other participant's price.

    Returns:
        Dict with status ('accepted' or 'rejected') and amount
    """
    request = request or RespondRateRequest()
    try:
        result = await manager.respond_rate(
            chat_id,
            current_user,
            request.proposal_id,
            request.response
        )
    except Exception as e:
        raise _chat_http_error(e)

    for message in result['messages']:
        await connections.publish_chat_message(result['chat'], message)
    return {
        "status": result['status'],
        "amount": result['amount']
    }

"""Chats module for buyer/seller conversations about a listing.

This module handles:
- Creating and listing chats between a buyer and a listing's owner
- Plain text messages
- The rate negotiation protocol (propose, accept, reject) and deal closing

Rate responses run in one transaction holding a lock on the chat row, and
each proposal id can be recorded in rate_resolutions only once, so a
proposal is resolved at most once even under concurrent responses.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from asyncpg.exceptions import PostgresError, ForeignKeyViolationError

from config import settings_conf
from database import get_pool, normalize_id, to_dict, to_dicts
from database.exceptions import DatabaseError
from listings import SOLD_STATUS, is_active
from .events import (
    RATE_PROPOSED, RATE_ACCEPTED, RATE_REJECTED, SOLD,
    encode_event, decode_event, is_reserved, preview,
    rate_proposed, rate_resolved, deal_closed
)
from .exceptions import (
    ChatError, InvalidChatRequestError, ChatNotFoundError, ChatForbiddenError,
    RateProposalNotFoundError, RateConflictError
)
from .negotiation import (
    RESOLUTION_STATUS, parse_rate_response, parse_amount, round_amount, check_rate_response
)

logger = logging.getLogger(__name__)

# Messages scanned when resolving a rate proposal
RATE_HISTORY_LIMIT = settings_conf['rate_history_limit']

def _require_id(value: Any, label: str) -> str:
    normalized = normalize_id(value)
    if normalized is None:
        raise InvalidChatRequestError(f"Invalid {label} ID format: {value}")
    return normalized

def _message_out(row: Dict[str, Any]) -> Dict[str, Any]:
    message = dict(row)
    message['event'] = decode_event(message.get('content'))
    return message

def _is_participant(chat: Dict[str, Any], user_id: str) -> bool:
    return str(user_id) in (str(chat['buyer_id']), str(chat['seller_id']))

class ChatManager:
    """Manager class for chats, messages and rate negotiation."""

    def __init__(self, pool=None):
        """Initialize chat manager.

        Args:
            pool: Optional database connection pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def _get_participant_chat(self, conn, chat_id: str, user_id: str, lock: bool = False) -> Dict[str, Any]:
        query = 'SELECT * FROM chats WHERE id = $1'
        if lock:
            query += ' FOR UPDATE'
        chat = to_dict(await conn.fetchrow(query, chat_id))
        if chat is None:
            raise ChatNotFoundError(f"Chat {chat_id} not found")
        if not _is_participant(chat, user_id):
            raise ChatForbiddenError("You are not a participant in this chat")
        return chat

    async def _append(self, conn, chat_id: str, sender_id: str, content: str) -> Dict[str, Any]:
        row = await conn.fetchrow(
            '''
            INSERT INTO messages (chat_id, sender_id, content)
            VALUES ($1, $2, $3)
            RETURNING *
            ''',
            chat_id,
            sender_id,
            content
        )
        return _message_out(to_dict(row))

    async def get_or_create(self, user_id: str, listing_id: Any) -> Dict[str, Any]:
        """Get the chat between the user (as buyer) and a listing's owner, creating it if needed.

        Raises:
            InvalidChatRequestError: If the id is malformed or the listing is the user's own
            ChatNotFoundError: If the listing doesn't exist
            DatabaseError: If the data layer fails
        """
        if not listing_id:
            raise InvalidChatRequestError("listing_id is required")
        listing_id = _require_id(listing_id, 'listing')
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                listing = await conn.fetchrow(
                    'SELECT id, user_id FROM listings WHERE id = $1',
                    listing_id
                )
                if not listing:
                    raise ChatNotFoundError(f"Listing {listing_id} not found")
                seller_id = str(listing['user_id'])
                if seller_id == str(user_id):
                    raise InvalidChatRequestError("You cannot start a chat about your own listing")

                chat = await conn.fetchrow(
                    '''
                    INSERT INTO chats (listing_id, buyer_id, seller_id)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (listing_id, buyer_id, seller_id) DO NOTHING
                    RETURNING *
                    ''',
                    listing_id,
                    user_id,
                    seller_id
                )
                if chat is not None:
                    logger.info(f"Created chat {chat['id']} for listing {listing_id}")
                else:
                    chat = await conn.fetchrow(
                        '''
                        SELECT * FROM chats
                        WHERE listing_id = $1 AND buyer_id = $2 AND seller_id = $3
                        ''',
                        listing_id,
                        user_id,
                        seller_id
                    )
        except PostgresError as e:
            logger.error(f"Error opening chat for listing {listing_id}: {e}")
            raise DatabaseError(f"Failed to open chat: {e}")

        return to_dict(chat)

    async def list_chats(self, user_id: str) -> List[Dict[str, Any]]:
        """List a user's chats, most recent activity first, with a last message preview."""
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                rows = to_dicts(await conn.fetch(
                    '''
                    SELECT
                        c.*,
                        l.title AS listing_title,
                        l.image_url AS listing_image_url,
                        l.status AS listing_status,
                        CASE WHEN c.buyer_id = $1 THEN s.username ELSE b.username END AS counterpart_name,
                        lm.content AS last_content,
                        lm.sender_id AS last_sender_id,
                        lm.created_at AS last_message_at
                    FROM chats c
                    LEFT JOIN listings l ON l.id = c.listing_id
                    LEFT JOIN users b ON b.id = c.buyer_id
                    LEFT JOIN users s ON s.id = c.seller_id
                    LEFT JOIN LATERAL (
                        SELECT content, sender_id, created_at
                        FROM messages m
                        WHERE m.chat_id = c.id
                        ORDER BY m.created_at DESC
                        LIMIT 1
                    ) lm ON TRUE
                    WHERE c.buyer_id = $1 OR c.seller_id = $1
                    ORDER BY COALESCE(lm.created_at, c.created_at) DESC
                    ''',
                    user_id
                ))
        except PostgresError as e:
            logger.error(f"Error listing chats for {user_id}: {e}")
            raise DatabaseError(f"Failed to list chats: {e}")

        chats = []
        for row in rows:
            content = row.pop('last_content')
            sender_id = row.pop('last_sender_id')
            created_at = row.pop('last_message_at')
            row['counterpart_id'] = row['seller_id'] if row['buyer_id'] == str(user_id) else row['buyer_id']
            row['last_message'] = {
                'preview': preview(content),
                'sender_id': sender_id,
                'created_at': created_at,
                'event': decode_event(content)
            } if content is not None else None
            chats.append(row)
        return chats

    async def get_messages(
        self,
        chat_id: Any,
        user_id: str,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Get a chat's messages oldest first, each annotated with its decoded event.

        Args:
            chat_id: The chat UUID
            user_id: The acting user, who must be a participant
            limit: Only return the most recent `limit` messages

        Raises:
            InvalidChatRequestError: If the id is malformed
            ChatNotFoundError: If the chat doesn't exist
            ChatForbiddenError: If the user isn't a participant
            DatabaseError: If the data layer fails
        """
        chat_id = _require_id(chat_id, 'chat')
        await self.ensure_pool()

        query = 'SELECT * FROM messages WHERE chat_id = $1 ORDER BY created_at DESC, id'
        params = [chat_id]
        if limit:
            query += ' LIMIT $2'
            params.append(limit)

        try:
            async with self.pool.acquire() as conn:
                await self._get_participant_chat(conn, chat_id, user_id)
                rows = to_dicts(await conn.fetch(query, *params))
        except PostgresError as e:
            logger.error(f"Error fetching messages for chat {chat_id}: {e}")
            raise DatabaseError(f"Failed to fetch messages: {e}")

        return [_message_out(row) for row in reversed(rows)]

    async def send_message(self, chat_id: Any, user_id: str, text: Any) -> Dict[str, Any]:
        """Send a plain text message.

        Returns:
            Dict with the stored message and the chat it belongs to

        Raises:
            InvalidChatRequestError: If the text is empty or looks like an encoded event
            ChatNotFoundError: If the chat doesn't exist
            ChatForbiddenError: If the user isn't a participant
            DatabaseError: If the insert fails
        """
        chat_id = _require_id(chat_id, 'chat')
        if not isinstance(text, str) or not text.strip():
            raise InvalidChatRequestError("Message text is required")
        if is_reserved(text):
            raise InvalidChatRequestError("Message text uses a reserved prefix")
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                chat = await self._get_participant_chat(conn, chat_id, user_id)
                message = await self._append(conn, chat_id, user_id, text)
        except PostgresError as e:
            logger.error(f"Error sending message to chat {chat_id}: {e}")
            raise DatabaseError(f"Failed to send message: {e}")

        return {'chat': chat, 'message': message}

    async def propose_rate(self, chat_id: Any, user_id: str, amount: Any) -> Dict[str, Any]:
        """Post a rate proposal to a chat.

        Returns:
            Dict with the stored rate_proposed message and the chat

        Raises:
            InvalidChatRequestError: If the amount isn't a positive number or the listing is closed
            ChatNotFoundError: If the chat doesn't exist
            ChatForbiddenError: If the user isn't a participant
            DatabaseError: If the insert fails
        """
        chat_id = _require_id(chat_id, 'chat')
        amount = parse_amount(amount)
        await self.ensure_pool()

        proposal_id = str(uuid.uuid4())
        try:
            async with self.pool.acquire() as conn:
                chat = await self._get_participant_chat(conn, chat_id, user_id)
                if chat['listing_id'] is not None:
                    status = await conn.fetchval(
                        'SELECT status FROM listings WHERE id = $1',
                        chat['listing_id']
                    )
                    if status is None or not is_active(status):
                        raise InvalidChatRequestError("Listing is no longer available")
                message = await self._append(
                    conn,
                    chat_id,
                    user_id,
                    encode_event(rate_proposed(proposal_id, amount, str(user_id)))
                )
        except PostgresError as e:
            logger.error(f"Error proposing rate in chat {chat_id}: {e}")
            raise DatabaseError(f"Failed to propose rate: {e}")

        logger.info(f"Rate proposal {proposal_id} of {amount} in chat {chat_id} by {user_id}")
        return {'chat': chat, 'message': message}

    async def _close_listing(self, conn, listing_id: str, amount: int) -> str:
        """Remove a sold listing, or mark it sold when other rows still reference it.

        Chats let go of a deleted listing (listing_id is set to NULL); wishlist
        entries and swap matches block the delete, which falls back to marking
        the listing sold with its final rate.
        """
        try:
            async with conn.transaction():
                result = await conn.execute('DELETE FROM listings WHERE id = $1', listing_id)
            if result != 'DELETE 0':
                logger.info(f"Deleted listing {listing_id} after sale at {amount}")
                return 'deleted'
        except ForeignKeyViolationError:
            await conn.execute(
                '''
                UPDATE listings
                SET status = $2,
                    ai_metadata = COALESCE(ai_metadata, '{}'::jsonb) || $3::jsonb
                WHERE id = $1
                ''',
                listing_id,
                SOLD_STATUS,
                {'final_rate': amount}
            )
            logger.info(f"Listing {listing_id} still referenced, marked sold at {amount}")
            return 'sold'
        return 'missing'

    async def respond_rate(
        self,
        chat_id: Any,
        responder_id: str,
        proposal_id: Any,
        response: Any
    ) -> Dict[str, Any]:
        """Accept or reject a rate proposal.

        On accept the amount is rounded half up, the listing is closed and a
        sold event is appended after the acceptance.

        Returns:
            Dict with status ('accepted' or 'rejected'), amount, the chat and the appended messages

        Raises:
            InvalidChatRequestError: If the response or proposal_id is missing or malformed
            ChatNotFoundError: If the chat doesn't exist
            ChatForbiddenError: If the responder isn't a participant or made the proposal
            RateProposalNotFoundError: If the proposal isn't in the recent history
            RateConflictError: If the proposal was already resolved, or on accept
                when the listing is already sold or swapped
            DatabaseError: If the data layer fails
        """
        event_type = parse_rate_response(response)
        if proposal_id is None or str(proposal_id).strip() == '':
            raise InvalidChatRequestError("proposal_id is required")
        proposal_id = str(proposal_id).strip()
        chat_id = _require_id(chat_id, 'chat')
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    chat = await self._get_participant_chat(conn, chat_id, responder_id, lock=True)
                    history = await conn.fetch(
                        '''
                        SELECT sender_id, content FROM messages
                        WHERE chat_id = $1
                        ORDER BY created_at DESC
                        LIMIT $2
                        ''',
                        chat_id,
                        RATE_HISTORY_LIMIT
                    )
                    proposal = check_rate_response(to_dicts(history), proposal_id, responder_id)
                    amount = parse_amount(proposal.get('amount'))
                    if event_type == RATE_ACCEPTED:
                        amount = round_amount(amount)
                        if chat['listing_id'] is not None:
                            listing_status = await conn.fetchval(
                                'SELECT status FROM listings WHERE id = $1 FOR UPDATE',
                                chat['listing_id']
                            )
                            # A listing that is already gone is skipped when closing
                            if listing_status is not None and not is_active(listing_status):
                                raise RateConflictError("Listing is no longer available")

                    recorded = await conn.fetchval(
                        '''
                        INSERT INTO rate_resolutions (proposal_id, chat_id, responder_id, response, amount)
                        VALUES ($1, $2, $3, $4, $5)
                        ON CONFLICT (proposal_id) DO NOTHING
                        RETURNING proposal_id
                        ''',
                        proposal_id,
                        chat_id,
                        responder_id,
                        event_type,
                        Decimal(str(amount))
                    )
                    if recorded is None:
                        raise RateConflictError("Rate proposal has already been resolved")

                    messages = [await self._append(
                        conn,
                        chat_id,
                        responder_id,
                        encode_event(rate_resolved(event_type, proposal_id, amount, str(responder_id)))
                    )]

                    if event_type == RATE_ACCEPTED:
                        if chat['listing_id'] is not None:
                            await self._close_listing(conn, chat['listing_id'], amount)
                        messages.append(await self._append(
                            conn,
                            chat_id,
                            responder_id,
                            encode_event(deal_closed(
                                proposal_id,
                                chat['listing_id'],
                                chat['buyer_id'],
                                chat['seller_id'],
                                amount
                            ))
                        ))
        except PostgresError as e:
            logger.error(f"Error resolving rate proposal {proposal_id}: {e}")
            raise DatabaseError(f"Failed to resolve rate proposal: {e}")

        status = RESOLUTION_STATUS[event_type]
        logger.info(f"Rate proposal {proposal_id} {status} by {responder_id} at {amount}")
        return {
            'status': status,
            'amount': amount,
            'chat': chat,
            'messages': messages
        }

__all__ = [
    'ChatManager',
    'RATE_HISTORY_LIMIT',
    'RATE_PROPOSED',
    'RATE_ACCEPTED',
    'RATE_REJECTED',
    'SOLD',
    'encode_event',
    'decode_event',
    'is_reserved',
    'preview',
    'parse_rate_response',
    'parse_amount',
    'round_amount',
    'check_rate_response',
    'ChatError',
    'InvalidChatRequestError',
    'ChatNotFoundError',
    'ChatForbiddenError',
    'RateProposalNotFoundError',
    'RateConflictError'
]

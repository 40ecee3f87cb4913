"""Chat event codec.

Negotiation and deal events are stored as message content behind a fixed
prefix followed by a JSON object, so existing chat clients can tell them
apart from ordinary text:

    __RATE_EVENT__{"type": "rate_proposed", "proposalId": "...", "amount": 500, ...}
    __DEAL_EVENT__{"type": "sold", "listingId": "...", "amount": 500, ...}

Anything that fails to decode is treated as plain text.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

RATE_EVENT_PREFIX = '__RATE_EVENT__'
DEAL_EVENT_PREFIX = '__DEAL_EVENT__'
RESERVED_PREFIXES = (RATE_EVENT_PREFIX, DEAL_EVENT_PREFIX)

RATE_PROPOSED = 'rate_proposed'
RATE_ACCEPTED = 'rate_accepted'
RATE_REJECTED = 'rate_rejected'
SOLD = 'sold'

RESOLUTION_TYPES = frozenset({RATE_ACCEPTED, RATE_REJECTED})

# Event types allowed behind each prefix
EVENT_TYPES = {
    RATE_EVENT_PREFIX: frozenset({RATE_PROPOSED, RATE_ACCEPTED, RATE_REJECTED}),
    DEAL_EVENT_PREFIX: frozenset({SOLD})
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _prefix_for(event_type: str) -> Optional[str]:
    for prefix, types in EVENT_TYPES.items():
        if event_type in types:
            return prefix
    return None


def encode_event(event: Dict[str, Any]) -> str:
    """Serialize an event dict to message content.

    Raises:
        ValueError: If the event type is unknown
    """
    prefix = _prefix_for(event.get('type'))
    if prefix is None:
        raise ValueError(f"Unknown chat event type: {event.get('type')}")
    return prefix + json.dumps(event, default=str)


def decode_event(content: Any) -> Optional[Dict[str, Any]]:
    """Parse message content into an event, or None for plain text."""
    if not isinstance(content, str):
        return None
    for prefix, types in EVENT_TYPES.items():
        if not content.startswith(prefix):
            continue
        try:
            event = json.loads(content[len(prefix):])
        except ValueError:
            logger.debug("Ignoring malformed event payload")
            return None
        if not isinstance(event, dict) or event.get('type') not in types:
            return None
        return event
    return None


def is_reserved(text: str) -> bool:
    """Whether free text would be mistaken for an encoded event."""
    return text.startswith(RESERVED_PREFIXES)


def preview(content: Any) -> str:
    """Short human-readable rendering used in chat lists."""
    event = decode_event(content)
    if event is None:
        return content if isinstance(content, str) else ''
    amount = event.get('amount')
    kind = event['type']
    if kind == RATE_PROPOSED:
        return f"Offered ₹{amount}"
    if kind == RATE_ACCEPTED:
        return f"Accepted ₹{amount}"
    if kind == RATE_REJECTED:
        return f"Declined ₹{amount}"
    return f"Sold for ₹{amount}"


def rate_proposed(proposal_id: str, amount: Any, proposer_id: str) -> Dict[str, Any]:
    return {
        'type': RATE_PROPOSED,
        'proposalId': proposal_id,
        'amount': amount,
        'proposerId': proposer_id,
        'createdAt': _now()
    }


def rate_resolved(
    event_type: str,
    proposal_id: str,
    amount: Any,
    responder_id: str
) -> Dict[str, Any]:
    return {
        'type': event_type,
        'proposalId': proposal_id,
        'amount': amount,
        'responderId': responder_id,
        'createdAt': _now()
    }


def deal_closed(
    proposal_id: str,
    listing_id: Optional[str],
    buyer_id: str,
    seller_id: str,
    amount: Any
) -> Dict[str, Any]:
    return {
        'type': SOLD,
        'proposalId': proposal_id,
        'listingId': listing_id,
        'buyerId': buyer_id,
        'sellerId': seller_id,
        'amount': amount,
        'createdAt': _now()
    }

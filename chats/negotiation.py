"""Rate negotiation rules over a chat's message history.

A rate proposal may be answered once, by the other participant. The checks
here are pure; ChatManager runs them against the recent history it reads
while holding the chat row lock.
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Mapping, Union

from .events import RATE_PROPOSED, RATE_ACCEPTED, RATE_REJECTED, RESOLUTION_TYPES, decode_event
from .exceptions import (
    InvalidChatRequestError, ChatForbiddenError, RateProposalNotFoundError, RateConflictError
)

RATE_RESPONSES = {
    'accept': RATE_ACCEPTED,
    'reject': RATE_REJECTED
}

# Status reported back to the responder
RESOLUTION_STATUS = {
    RATE_ACCEPTED: 'accepted',
    RATE_REJECTED: 'rejected'
}


def parse_rate_response(response: Any) -> str:
    """Map accept/reject (case-insensitive) to the resolution event type."""
    event_type = RATE_RESPONSES.get(str(response).strip().lower()) if response is not None else None
    if event_type is None:
        raise InvalidChatRequestError("response must be 'accept' or 'reject'")
    return event_type


def parse_amount(amount: Any) -> Union[int, float]:
    """Validate a proposed rate: a finite number greater than zero."""
    if isinstance(amount, bool) or amount is None or amount == '':
        raise InvalidChatRequestError("amount must be a positive number")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise InvalidChatRequestError("amount must be a positive number")
    if not math.isfinite(value) or value <= 0:
        raise InvalidChatRequestError("amount must be a positive number")
    return int(value) if value.is_integer() else value


def round_amount(amount: Any) -> int:
    """Round to the nearest whole rupee, halves away from zero."""
    return int(Decimal(str(amount)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def check_rate_response(
    history: Iterable[Mapping[str, Any]],
    proposal_id: str,
    responder_id: str
) -> Dict[str, Any]:
    """Find the proposal a response refers to and check it can be answered.

    Args:
        history: Message rows with content and sender_id, any order
        proposal_id: The proposalId being answered
        responder_id: The acting participant

    Returns:
        The rate_proposed event, with proposerId filled from the sender if absent

    Raises:
        RateProposalNotFoundError: If no rate_proposed event carries the id
        ChatForbiddenError: If the responder made the proposal
        RateConflictError: If the proposal was already accepted or rejected
    """
    proposal = None
    resolved = False
    for message in history:
        event = decode_event(message.get('content'))
        if event is None or str(event.get('proposalId')) != str(proposal_id):
            continue
        if event['type'] == RATE_PROPOSED and proposal is None:
            proposal = dict(event)
            proposal.setdefault('proposerId', str(message.get('sender_id')))
        elif event['type'] in RESOLUTION_TYPES:
            resolved = True

    if proposal is None:
        raise RateProposalNotFoundError(f"Rate proposal {proposal_id} not found")
    if str(proposal['proposerId']) == str(responder_id):
        raise ChatForbiddenError("You cannot respond to your own rate proposal")
    if resolved:
        raise RateConflictError("Rate proposal has already been resolved")
    return proposal

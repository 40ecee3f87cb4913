"""Swap proposal state machine: pending -> accepted | rejected."""

from typing import Any, Mapping, Optional

from listings.nearby import is_active
from .exceptions import (
    InvalidSwapRequestError, SwapNotFoundError, SwapForbiddenError, SwapStateError
)

PENDING = 'pending'
ACCEPTED = 'accepted'
REJECTED = 'rejected'
TERMINAL_STATES = frozenset({ACCEPTED, REJECTED})

# Accepted response values and the state each one leads to
RESPONSES = {
    'accept': ACCEPTED,
    'reject': REJECTED
}


def parse_response(response: Any) -> str:
    """Map an accept/reject response (case-insensitive) to its target state.

    Raises:
        InvalidSwapRequestError: For any other value
    """
    target = RESPONSES.get(str(response).strip().lower()) if response is not None else None
    if target is None:
        raise InvalidSwapRequestError("response must be 'accept' or 'reject'")
    return target


def check_proposal(
    proposer_id: str,
    offered: Optional[Mapping[str, Any]],
    desired: Optional[Mapping[str, Any]]
) -> None:
    """Check a proposal against the current listing rows.

    Raises:
        SwapNotFoundError: If either listing is missing
        SwapForbiddenError: If the offered listing isn't the proposer's
        InvalidSwapRequestError: If the desired listing is the proposer's own
        SwapStateError: If either listing is sold or swapped
    """
    if desired is None:
        raise SwapNotFoundError("Desired listing not found")
    if offered is None:
        raise SwapNotFoundError("Offered listing not found")
    if str(offered['user_id']) != str(proposer_id):
        raise SwapForbiddenError("You can only offer your own listing")
    if str(desired['user_id']) == str(proposer_id):
        raise InvalidSwapRequestError("You cannot propose a swap for your own listing")
    for label, listing in (('Offered', offered), ('Desired', desired)):
        if not is_active(listing['status']):
            raise SwapStateError(f"{label} listing is no longer available ({listing['status']})")


def check_response(match: Optional[Mapping[str, Any]], responder_id: str) -> None:
    """Check that a responder may answer a match.

    Raises:
        SwapNotFoundError: If the match doesn't exist
        SwapForbiddenError: If the responder isn't the recipient
        SwapStateError: If the match was already answered
    """
    if match is None:
        raise SwapNotFoundError("Swap proposal not found")
    if str(match['user_2_id']) != str(responder_id):
        raise SwapForbiddenError("Only the recipient can respond to this swap")
    if match['status'] != PENDING:
        raise SwapStateError(f"Swap proposal is no longer pending ({match['status']})")


def check_swappable(
    offered: Optional[Mapping[str, Any]],
    desired: Optional[Mapping[str, Any]]
) -> None:
    """Check that both listings can still change hands when a swap is accepted.

    Raises:
        SwapStateError: If either listing is gone, sold or swapped
    """
    for label, listing in (('Offered', offered), ('Desired', desired)):
        if listing is None:
            raise SwapStateError(f"{label} listing no longer exists")
        if not is_active(listing['status']):
            raise SwapStateError(f"{label} listing is no longer available ({listing['status']})")

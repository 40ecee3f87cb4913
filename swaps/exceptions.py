"""Swap exception types."""


class SwapError(Exception):
    """Base exception for swap operations."""
    pass


class InvalidSwapRequestError(SwapError):
    """Raised when a proposal or response is malformed or not allowed."""
    pass


class SwapNotFoundError(SwapError):
    """Raised when a match or one of its listings doesn't exist."""
    pass


class SwapForbiddenError(SwapError):
    """Raised when the acting user is not the right counterparty."""
    pass


class SwapStateError(SwapError):
    """Raised when a match or listing is no longer in a state that allows the action."""
    pass


__all__ = [
    'SwapError',
    'InvalidSwapRequestError',
    'SwapNotFoundError',
    'SwapForbiddenError',
    'SwapStateError'
]

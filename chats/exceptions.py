"""Chat exception types."""


class ChatError(Exception):
    """Base exception for chat operations."""
    pass


class InvalidChatRequestError(ChatError):
    """Raised when a chat request is malformed or not allowed."""
    pass


class ChatNotFoundError(ChatError):
    """Raised when a chat or its listing doesn't exist."""
    pass


class ChatForbiddenError(ChatError):
    """Raised when the acting user may not perform the action in a chat."""
    pass


class RateProposalNotFoundError(ChatError):
    """Raised when a rate response references an unknown proposal."""
    pass


class RateConflictError(ChatError):
    """Raised when a rate proposal has already been accepted or rejected."""
    pass


__all__ = [
    'ChatError',
    'InvalidChatRequestError',
    'ChatNotFoundError',
    'ChatForbiddenError',
    'RateProposalNotFoundError',
    'RateConflictError'
]

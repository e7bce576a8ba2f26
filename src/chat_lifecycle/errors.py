"""
Error taxonomy for the message lifecycle.

Every failure the orchestrator can observe is mapped onto one of these classes
so the retry policy and the send result can branch on type instead of message
text. Only 'NetworkError' is retryable; everything else aborts the current send
or regeneration immediately.

Regeneration conflicts (a second regeneration for a message that is already in
flight) are deliberately absent: they are a silent no-op, not an error.
"""


class LifecycleError(Exception):
    """Base class for all errors raised by the lifecycle components."""


class RequestValidationError(LifecycleError):
    """A send or regeneration precondition is not met (empty content, no session, no model)."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NetworkError(LifecycleError):
    """A single completion attempt failed in transport (connection, timeout, 5xx)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class CompletionRejectedError(LifecycleError):
    """The completion endpoint refused the request (4xx other than 408 / 429)."""

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class ResponseFormatError(LifecycleError):
    """The completion endpoint answered, but without usable content."""


class PersistenceError(LifecycleError):
    """A durable-store operation failed."""


class TargetNotFoundError(LifecycleError):
    """The message addressed by a regeneration is not in the current history."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message {message_id!r} not found for regeneration")
        self.message_id = message_id


class InvalidStateTransition(LifecycleError):
    """A turn was asked to move backwards (or out of a terminal state) in its lifecycle."""

    def __init__(self, message_id: str, current: str, target: str) -> None:
        super().__init__(f"Turn {message_id!r} cannot move from {current!r} to {target!r}")
        self.message_id = message_id
        self.current = current
        self.target = target

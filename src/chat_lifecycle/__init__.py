"""
Conversational message lifecycle.

Turns a typed user message into an animated, persisted, retry-safe exchange
with a remote completion endpoint, and lets any earlier assistant answer be
regenerated while other messages are still in flight. 'ChatController' is the
entry point; the components it wires together live in 'chat_lifecycle.lifecycle'.
"""

from chat_lifecycle.config import LifecycleSettings
from chat_lifecycle.controller import ChatController
from chat_lifecycle.lifecycle.orchestrator import FailureReason, SendRequest, SendResult
from chat_lifecycle.messages import Roles, Turn, TurnState

__all__ = [
    "ChatController",
    "FailureReason",
    "LifecycleSettings",
    "Roles",
    "SendRequest",
    "SendResult",
    "Turn",
    "TurnState",
]

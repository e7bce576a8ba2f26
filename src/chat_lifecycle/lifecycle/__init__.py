from chat_lifecycle.lifecycle.animation import AnimationDriver, AnimationParams, compute_animation_params
from chat_lifecycle.lifecycle.orchestrator import FailureReason, MessageOrchestrator, SendRequest, SendResult
from chat_lifecycle.lifecycle.persistence import ROOM_NAME_MAX_LENGTH, PersistenceGateway, turn_from_stored
from chat_lifecycle.lifecycle.regeneration import InFlightSet, RegenerationTracker
from chat_lifecycle.lifecycle.validation import RequestValidator, ValidatedSend

__all__ = [
    "AnimationDriver",
    "AnimationParams",
    "FailureReason",
    "InFlightSet",
    "MessageOrchestrator",
    "PersistenceGateway",
    "ROOM_NAME_MAX_LENGTH",
    "RegenerationTracker",
    "RequestValidator",
    "SendRequest",
    "SendResult",
    "ValidatedSend",
    "compute_animation_params",
    "turn_from_stored",
]

from chat_lifecycle.state.model_store import KeyValueStore
from chat_lifecycle.state.turn_list import TurnList, TurnListEvent, TurnListEventKind

__all__ = ["KeyValueStore", "TurnList", "TurnListEvent", "TurnListEventKind"]

import secrets
import uuid

from chat_lifecycle.utils.time import get_current_timestamp


def generate_uid() -> str:
    return uuid.uuid4().hex


def generate_message_id() -> str:
    """Client-side turn identifier, stable across retries and regenerations."""
    return f"msg_{get_current_timestamp()}_{secrets.token_hex(6)}"


def generate_request_id() -> str:
    """Correlation id for one send, used for logging only."""
    return f"req_{get_current_timestamp()}_{secrets.token_hex(5)[:9]}"

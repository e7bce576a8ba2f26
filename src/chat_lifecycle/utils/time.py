import time
from datetime import UTC, datetime


def get_current_timestamp() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


def get_current_epoch_seconds() -> int:
    return int(time.time())


def get_current_iso_timestamp() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")

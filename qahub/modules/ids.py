"""
Submission id generation.
"""

import threading
import time

_lock = threading.Lock()
_last_millis = 0


def next_millis() -> int:
    """Wall-clock epoch milliseconds, strictly increasing within the process."""
    global _last_millis
    with _lock:
        now = time.time_ns() // 1_000_000
        _last_millis = now if now > _last_millis else _last_millis + 1
        return _last_millis


def generate_submission_id(content_type: str) -> str:
    """Generate id ``submission_<type>_<epochMillis>``."""
    return f"submission_{content_type}_{next_millis()}"

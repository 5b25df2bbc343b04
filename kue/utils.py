"""
Time helpers. The queue keeps every timestamp as integer epoch milliseconds.
"""

import time
from datetime import datetime, timezone


def now_ms() -> int:
    return int(time.time() * 1000)


def to_epoch_ms(when: datetime | int | float | str) -> int:
    """
    Convert an absolute time to epoch milliseconds.

    Numbers are epoch seconds; strings are ISO-8601. Naive datetimes are
    taken as UTC.

    Raises:
        ValueError: If a string cannot be parsed.
    """
    if isinstance(when, str):
        when = datetime.fromisoformat(when.strip())
    if isinstance(when, datetime):
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return int(when.timestamp() * 1000)
    return int(when * 1000)

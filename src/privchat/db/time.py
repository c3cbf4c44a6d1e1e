# src/privchat/db/time.py
"""Time utilities for message rows."""

import time
from datetime import datetime


def unix_now() -> int:
    """Return the current time as whole unix seconds."""
    return int(time.time())


def format_time_text(timestamp: int, now: int | None = None) -> str:
    """Render a message timestamp the way chat clients display it.

    Messages from the last 24 hours show ``HH:MM``; older ones show ``MM.DD.YY``.
    Both use the server's local time zone.
    """
    if not timestamp:
        return ""
    if now is None:
        now = unix_now()
    moment = datetime.fromtimestamp(timestamp)
    if timestamp < now - 86_400:
        return moment.strftime("%m.%d.%y")
    return moment.strftime("%H:%M")

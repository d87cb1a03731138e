"""Server clock.

Slot dates and HH:MM times are the school's local wall-clock time, so every
comparison against "now" uses the server's naive local time.
"""
from datetime import datetime


def now() -> datetime:
    return datetime.now().replace(microsecond=0)



"""Epoch-millisecond helpers shared by the storage and coordinator layers."""

import time
from typing import Callable

Clock = Callable[[], int]

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


def now_ms() -> int:
    return int(time.time() * 1000)


def hours_to_ms(hours: float) -> int:
    return int(hours * HOUR_MS)


def days_to_ms(days: float) -> int:
    return int(days * DAY_MS)

"""UTC calendar helpers. Streak days are UTC calendar days."""

import datetime
from typing import Callable

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def utc_today(clock: Clock = utc_now) -> datetime.date:
    return clock().date()

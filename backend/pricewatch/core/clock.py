"""Injectable wall clock.

Everything that stamps or compares times takes a ``Clock`` so scheduled
behaviour can be driven deterministically.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

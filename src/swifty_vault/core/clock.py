"""Time and identifier sources.

Both are passed into boxes and vaults as plain callables so tests can pin
them to fixed values.
"""

import time
from typing import Callable
from uuid import uuid4

Clock = Callable[[], int]
IdFactory = Callable[[], str]


def now_ms() -> int:
    """Current wall-clock time as milliseconds since the epoch."""
    return int(time.time() * 1000)


def new_id() -> str:
    """Random 128-bit identifier, hex encoded."""
    return uuid4().hex

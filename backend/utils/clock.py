"""Wall-clock helpers; services take a `Clock` so tests can pin time."""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def current_millis() -> int:
    return int(time.time() * 1000)

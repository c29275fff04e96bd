"""
tests/helpers.py -- Constants and small test doubles shared by conftest and test modules.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

ACCESS_SECRET = "a" * 32 + "-access-signing-secret"
REFRESH_SECRET = "r" * 32 + "-refresh-signing-secret"

# Cost factor 4 is bcrypt's minimum; the production default of 12 would make
# every hash in the suite take hundreds of milliseconds.
FAST_ROUNDS = 4


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def shared_memory_url(name: str) -> str:
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"

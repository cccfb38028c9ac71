from __future__ import annotations
import secrets
from datetime import datetime, timezone

CODE_MIN = 100_000
CODE_MAX = 999_999


class SystemClock:
    """Wall clock plus the code generator; swap it out to control time in tests."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def new_code(self) -> str:
        # uniform over [100000, 999999]
        return f"{CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1):06d}"


system_clock = SystemClock()

from __future__ import annotations
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text


async def lock_email_slot(db: AsyncSession, email: str) -> None:
    """
    Serialize writers for one email's OTP slot until the current transaction ends.

    PostgreSQL: transaction-scoped advisory lock keyed on hashtext(email); it is
    released automatically on COMMIT/ROLLBACK. Other dialects (SQLite in tests)
    already serialize writers at the database level, so this is a no-op there.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:email))"), {"email": email})

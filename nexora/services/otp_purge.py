from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..repos.otp_codes import OtpCodeRepo
from ..observability.metrics import OTP_PURGED


async def purge_expired_codes(db: AsyncSession, *, batch: int = 500, now: Optional[datetime] = None) -> int:
    """
    Delete at most `batch` OTP codes whose expires_at <= now. Returns the number
    removed. Verification already ignores expired rows; this only reclaims space.
    """
    now = now or datetime.now(timezone.utc)
    codes = OtpCodeRepo(db)
    deleted = await codes.delete_expired(now=now, batch=batch)
    if not deleted:
        await codes.rollback()
        return 0
    await codes.commit()
    OTP_PURGED.inc(deleted)
    return deleted

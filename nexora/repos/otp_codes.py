from __future__ import annotations
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import db_errors
from ..models import OtpCode
from ..services.tx import lock_email_slot


class OtpCodeRepo:
    """OTP records keyed by recipient email. Writes flush; the caller commits."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def insert(self, *, email: str, code: str, created_at: datetime, expires_at: datetime) -> OtpCode:
        async with db_errors("otp insert"):
            rec = OtpCode(email=email, code=code, created_at=created_at, expires_at=expires_at)
            self.db.add(rec)
            await self.db.flush()
            return rec

    async def find_active(self, *, email: str, code: str, now: datetime) -> Optional[OtpCode]:
        # exact (email, code) match that has not yet reached expires_at
        async with db_errors("otp lookup"):
            res = await self.db.execute(
                select(OtpCode)
                .where(OtpCode.email == email, OtpCode.code == code, OtpCode.expires_at > now)
                .order_by(OtpCode.created_at.desc())
                .limit(1)
            )
            return res.scalar_one_or_none()

    async def delete_by_id(self, otp_id: uuid.UUID) -> bool:
        async with db_errors("otp delete"):
            res = await self.db.execute(delete(OtpCode).where(OtpCode.id == otp_id))
            return (res.rowcount or 0) > 0

    async def delete_all_by_email(self, email: str) -> int:
        async with db_errors("otp bulk delete"):
            res = await self.db.execute(delete(OtpCode).where(OtpCode.email == email))
            return res.rowcount or 0

    async def replace_for_email(
        self, *, email: str, code: str, created_at: datetime, expires_at: datetime
    ) -> OtpCode:
        """Invalidate every code for `email` and insert the new one in one transaction."""
        async with db_errors("otp replace"):
            await lock_email_slot(self.db, email)
        await self.delete_all_by_email(email)
        return await self.insert(email=email, code=code, created_at=created_at, expires_at=expires_at)

    async def delete_expired(self, *, now: datetime, batch: int = 500) -> int:
        async with db_errors("otp purge"):
            ids = (
                await self.db.execute(
                    select(OtpCode.id)
                    .where(OtpCode.expires_at <= now)
                    .order_by(OtpCode.expires_at.asc())
                    .limit(batch)
                )
            ).scalars().all()
            if not ids:
                return 0
            res = await self.db.execute(delete(OtpCode).where(OtpCode.id.in_(ids)))
            return res.rowcount or 0

    async def commit(self) -> None:
        async with db_errors("otp commit"):
            await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

from __future__ import annotations
from datetime import datetime
from typing import Optional

from sqlalchemy import case, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import db_errors
from ..domain.errors import PersistenceError
from ..models import Account


class AccountRepo:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def exists_by_username_or_email(self, username: str, email: str) -> bool:
        async with db_errors("account lookup"):
            res = await self.db.execute(
                select(exists().where(or_(Account.username == username, Account.email == email)))
            )
            return bool(res.scalar())

    async def insert(
        self,
        *,
        first_name: str,
        last_name: str,
        full_name: str,
        username: str,
        email: str,
        password: str,
        dob: str,
        gender: str,
        region: str,
        created_at: datetime,
    ) -> Account:
        """Raises DuplicateKeyError when the username/email unique index trips."""
        acc = Account(
            first_name=first_name,
            last_name=last_name,
            full_name=full_name,
            username=username,
            email=email,
            password=password,
            dob=dob,
            gender=gender,
            region=region,
            created_at=created_at,
        )
        try:
            async with db_errors("account insert"):
                self.db.add(acc)
                await self.db.flush()
        except PersistenceError:
            await self.db.rollback()
            raise
        return acc

    async def find_by_identifier(self, identifier: str) -> list[Account]:
        """Every account whose username or email equals `identifier`, email match first.

        Uniqueness holds per column only, so one account's username can equal
        another's email; the caller picks between them.
        """
        async with db_errors("account lookup"):
            res = await self.db.execute(
                select(Account)
                .where(or_(Account.username == identifier, Account.email == identifier))
                .order_by(case((Account.email == identifier, 0), else_=1))
            )
            return list(res.scalars().all())

    async def find_by_email(self, email: str) -> Optional[Account]:
        async with db_errors("account lookup"):
            res = await self.db.execute(select(Account).where(Account.email == email))
            return res.scalar_one_or_none()

    async def update_password(self, account: Account, new_password: str) -> None:
        async with db_errors("account update"):
            account.password = new_password
            await self.db.flush()

    async def commit(self) -> None:
        async with db_errors("account commit"):
            await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

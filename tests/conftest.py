import os
import re
from datetime import datetime, timedelta, timezone

# Settings are read on first import of the package; point them at test backends first.
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("EMAIL_BACKEND", "console")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.pool import StaticPool

from nexora.api.deps import get_clock, get_email_sender
from nexora.db import build_engine, build_sessionmaker
from nexora.domain.errors import DeliveryError
from nexora.main import create_app
from nexora.models import Account, Base, OtpCode
from nexora.repos.accounts import AccountRepo
from nexora.repos.otp_codes import OtpCodeRepo
from nexora.services.accounts import AccountService, SignupFields
from nexora.services.otp_clock import SystemClock
from nexora.services.otp_lifecycle import OtpLifecycle

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock(SystemClock):
    """Clock that only moves when told to; hands out queued codes first."""

    def __init__(self, start: datetime = T0, codes=()):
        self.current = start
        self.codes = list(codes)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    def new_code(self) -> str:
        if self.codes:
            return self.codes.pop(0)
        return super().new_code()


class RecordingSender:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, *, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise DeliveryError("mail transport down")
        self.sent.append({"to": to, "subject": subject, "body": body})

    def last_code(self) -> str:
        return re.search(r"\b(\d{6})\b", self.sent[-1]["body"]).group(1)


# One in-memory SQLite database per test. StaticPool keeps every session on
# the same connection, otherwise each checkout would see an empty database.
@pytest_asyncio.fixture
async def engine():
    eng = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    async with build_sessionmaker(engine)() as s:
        yield s


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def otp(db, sender, clock):
    return OtpLifecycle(OtpCodeRepo(db), sender, clock)


@pytest.fixture
def accounts(db, otp):
    return AccountService(AccountRepo(db), otp)


@pytest_asyncio.fixture
async def client(engine, sender, clock):
    app = create_app()
    # stand-in for the lifespan, which would build its engine from DATABASE_URL
    app.state.db_engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)
    app.dependency_overrides[get_email_sender] = lambda: sender
    app.dependency_overrides[get_clock] = lambda: clock
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


# ---------- helpers ----------
def signup_fields(**overrides) -> SignupFields:
    data = dict(
        first_name="Alice",
        last_name="Liddell",
        full_name="Alice Liddell",
        username="alice",
        email="a@x.com",
        password="p1",
        dob="2000-01-01",
        gender="female",
        region="EU",
    )
    data.update(overrides)
    return SignupFields(**data)


def signup_payload(**overrides) -> dict:
    f = signup_fields(**overrides)
    return {
        "firstName": f.first_name,
        "lastName": f.last_name,
        "fullName": f.full_name,
        "username": f.username,
        "email": f.email,
        "password": f.password,
        "dob": f.dob,
        "gender": f.gender,
        "region": f.region,
    }


async def count_rows(db, model) -> int:
    return int((await db.execute(select(func.count()).select_from(model))).scalar_one())


async def count_codes(db, email: str) -> int:
    res = await db.execute(select(func.count()).select_from(OtpCode).where(OtpCode.email == email))
    return int(res.scalar_one())


async def count_accounts(db) -> int:
    return await count_rows(db, Account)

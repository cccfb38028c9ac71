import pytest

from nexora.services.otp_purge import purge_expired_codes
from tests.conftest import count_codes

pytestmark = pytest.mark.asyncio


async def test_purge_removes_only_expired_codes(otp, db, clock):
    await otp.issue_code("old@x.com")
    clock.advance(200)
    fresh = await otp.issue_code("new@x.com")
    clock.advance(100)  # old is now exactly at its expiry, new has 200s left

    purged = await purge_expired_codes(db, now=clock.now())

    assert purged == 1
    assert await count_codes(db, "old@x.com") == 0
    assert await count_codes(db, "new@x.com") == 1
    await otp.verify_code("new@x.com", fresh.code)


async def test_purge_respects_batch(otp, db, clock):
    for i in range(5):
        await otp.issue_code(f"u{i}@x.com")
    clock.advance(301)

    assert await purge_expired_codes(db, batch=3, now=clock.now()) == 3
    assert await purge_expired_codes(db, batch=3, now=clock.now()) == 2
    assert await purge_expired_codes(db, batch=3, now=clock.now()) == 0

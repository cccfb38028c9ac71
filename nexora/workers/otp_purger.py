from __future__ import annotations
import asyncio
import logging

from ..config import get_settings
from ..db import build_engine, build_sessionmaker
from ..redis_client import redis
from ..services.otp_purge import purge_expired_codes
from ..observability.heartbeat import beat
from ..observability.logging import setup_logging

S = get_settings()
log = logging.getLogger("worker.otp_purger")

def _lock_key() -> str: return "lock:otp_purger"

async def _acquire_lock() -> bool:
    # Only one instance performs the scan; others idle
    return await redis.set(_lock_key(), "1", ex=S.OTP_PURGE_LOCK_TTL_SEC, nx=True) is True

async def run_once(sessionmaker) -> int:
    # Acquire short lock; if taken, just skip this tick
    if not await _acquire_lock():
        return 0
    async with sessionmaker() as db:
        purged = await purge_expired_codes(db, batch=S.OTP_PURGE_BATCH)
    if purged:
        log.info(f"purged {purged} expired otp codes")
    return purged

async def run_forever():
    engine = build_engine()
    sessionmaker = build_sessionmaker(engine)
    # heartbeat for ops
    hb = asyncio.create_task(beat("hb:otp_purger"))
    try:
        while True:
            try:
                await run_once(sessionmaker)
            except Exception as e:
                log.exception("otp_purger error: %s", e)
            await asyncio.sleep(S.OTP_PURGE_INTERVAL_SEC)
    finally:
        hb.cancel()
        await engine.dispose()

def main():
    setup_logging()
    asyncio.run(run_forever())

if __name__ == "__main__":
    main()

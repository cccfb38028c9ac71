# nexora/services/otp_lifecycle.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from ..config import get_settings
from ..domain.errors import DeliveryError, InvalidOrExpired, ValidationError
from ..observability.metrics import OTP_DELIVERY_FAILED, OTP_ISSUED, OTP_VERIFICATIONS
from ..repos.otp_codes import OtpCodeRepo
from .mailer import EmailSender

log = logging.getLogger("nexora.otp")

S = get_settings()


class Clock(Protocol):
    def now(self) -> datetime: ...
    def new_code(self) -> str: ...


@dataclass(frozen=True)
class IssuedCode:
    email: str
    code: str
    expires_at: datetime


class OtpLifecycle:
    """Issue, reissue and verify one-time email codes.

    Each stored code is ACTIVE until it is either consumed by `verify_code`
    (deleted by id) or expires: `expires_at` is reached, or `reissue_code`
    invalidates every code for the address. Expiry is checked in the lookup
    itself, so a row the purger has not removed yet still never verifies.
    """

    def __init__(
        self,
        codes: OtpCodeRepo,
        sender: EmailSender,
        clock: Clock,
        *,
        ttl_seconds: int | None = None,
        subject: str | None = None,
    ) -> None:
        self.codes = codes
        self.sender = sender
        self.clock = clock
        self.ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else S.OTP_TTL_SECONDS)
        self.subject = subject or S.OTP_EMAIL_SUBJECT

    async def issue_code(self, email: str) -> IssuedCode:
        """Store a new code for `email` alongside any existing ones, then email it."""
        _require_email(email)
        now, code = self.clock.now(), self.clock.new_code()
        try:
            await self.codes.insert(email=email, code=code, created_at=now, expires_at=now + self.ttl)
            await self.codes.commit()
        except Exception:
            await self.codes.rollback()
            raise
        OTP_ISSUED.labels(kind="issue").inc()
        issued = IssuedCode(email=email, code=code, expires_at=now + self.ttl)
        await self._deliver(issued)
        return issued

    async def reissue_code(self, email: str) -> IssuedCode:
        """Replace every code for `email` with a fresh one, then email it."""
        _require_email(email)
        now, code = self.clock.now(), self.clock.new_code()
        try:
            await self.codes.replace_for_email(email=email, code=code, created_at=now, expires_at=now + self.ttl)
            await self.codes.commit()
        except Exception:
            await self.codes.rollback()
            raise
        OTP_ISSUED.labels(kind="reissue").inc()
        issued = IssuedCode(email=email, code=code, expires_at=now + self.ttl)
        await self._deliver(issued)
        return issued

    async def verify_code(self, email: str, code: str) -> None:
        """Consume the matching code or raise InvalidOrExpired."""
        try:
            await self.consume_code(email, code)
            await self.codes.commit()
        except Exception:
            await self.codes.rollback()
            raise

    async def consume_code(self, email: str, code: str) -> None:
        """Delete the matching code without committing.

        The caller owns the transaction; a rollback makes the code usable again.
        """
        if not email or not code:
            raise ValidationError("Email and code required", fields=[n for n, v in (("email", email), ("code", code)) if not v])

        record = await self.codes.find_active(email=email, code=code, now=self.clock.now())
        if record is None:
            OTP_VERIFICATIONS.labels(result="invalid").inc()
            raise InvalidOrExpired()

        # delete by id, not by email: a newer code for the same address stays put
        if not await self.codes.delete_by_id(record.id):
            # lost the race to a concurrent verify of the same code
            OTP_VERIFICATIONS.labels(result="invalid").inc()
            raise InvalidOrExpired()
        OTP_VERIFICATIONS.labels(result="ok").inc()

    async def _deliver(self, issued: IssuedCode) -> None:
        minutes = max(1, int(self.ttl.total_seconds() // 60))
        body = f"Your verification code is: {issued.code}\nThis code expires in {minutes} minutes."
        try:
            await self.sender.send(to=issued.email, subject=self.subject, body=body)
        except DeliveryError:
            # the stored code is kept; a resend replaces it
            OTP_DELIVERY_FAILED.inc()
            log.exception("otp_delivery_failed", extra={"email": issued.email})
            raise


def _require_email(email: str) -> None:
    if not email:
        raise ValidationError("Email is required", fields=["email"])

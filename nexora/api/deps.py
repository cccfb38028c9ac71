from __future__ import annotations
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..repos.accounts import AccountRepo
from ..repos.otp_codes import OtpCodeRepo
from ..services.accounts import AccountService
from ..services.mailer import EmailSender, build_email_sender
from ..services.otp_clock import system_clock
from ..services.otp_lifecycle import Clock, OtpLifecycle

_email_sender: EmailSender | None = None


def get_email_sender() -> EmailSender:
    # built on first use so settings errors surface at request time, not import
    global _email_sender
    if _email_sender is None:
        _email_sender = build_email_sender()
    return _email_sender


def get_clock() -> Clock:
    return system_clock


def get_otp_lifecycle(
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
    clock: Clock = Depends(get_clock),
) -> OtpLifecycle:
    return OtpLifecycle(OtpCodeRepo(db), sender, clock)


def get_account_service(
    db: AsyncSession = Depends(get_db),
    otp: OtpLifecycle = Depends(get_otp_lifecycle),
) -> AccountService:
    # same request, same session: FastAPI caches get_db per request
    return AccountService(AccountRepo(db), otp)

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, fields
from typing import Optional

from ..domain.errors import Conflict, DeliveryError, DuplicateKeyError, NotFound, Unauthorized, ValidationError
from ..models import Account
from ..observability.metrics import SIGNUPS
from ..repos.accounts import AccountRepo
from .otp_lifecycle import OtpLifecycle

log = logging.getLogger("nexora.accounts")


@dataclass(frozen=True)
class SignupFields:
    first_name: Optional[str]
    last_name: Optional[str]
    full_name: Optional[str]
    username: Optional[str]
    email: Optional[str]
    password: Optional[str]
    dob: Optional[str]
    gender: Optional[str]
    region: Optional[str]

    def missing(self) -> list[str]:
        return [f.name for f in fields(self) if not getattr(self, f.name)]


@dataclass(frozen=True)
class SignupResult:
    account: Account
    otp_sent: bool


class AccountService:
    def __init__(self, accounts: AccountRepo, otp: OtpLifecycle) -> None:
        self.accounts = accounts
        self.otp = otp

    async def signup(self, data: SignupFields) -> SignupResult:
        """
        Create the account, then send its first verification code.

        The account is committed before the code is issued, so it survives a
        failed email. Delivery failure is reported through `otp_sent`; a storage
        failure while issuing the code propagates.
        """
        missing = data.missing()
        if missing:
            SIGNUPS.labels(result="invalid").inc()
            raise ValidationError("All fields are required", fields=missing)

        if await self.accounts.exists_by_username_or_email(data.username, data.email):
            SIGNUPS.labels(result="conflict").inc()
            raise Conflict()

        try:
            account = await self.accounts.insert(
                first_name=data.first_name,
                last_name=data.last_name,
                full_name=data.full_name,
                username=data.username,
                email=data.email,
                password=data.password,
                dob=data.dob,
                gender=data.gender,
                region=data.region,
                created_at=self.otp.clock.now(),
            )
            await self.accounts.commit()
        except DuplicateKeyError as exc:
            # a concurrent signup took the username/email after our check
            SIGNUPS.labels(result="conflict").inc()
            raise Conflict() from exc
        SIGNUPS.labels(result="created").inc()

        # same invalidate-and-replace path as resend: stale codes for this address die here
        try:
            await self.otp.reissue_code(data.email)
        except DeliveryError:
            log.warning("signup_otp_not_sent", extra={"account_id": str(account.id)})
            return SignupResult(account=account, otp_sent=False)
        return SignupResult(account=account, otp_sent=True)

    async def signin(self, identifier: Optional[str], password: Optional[str]) -> Account:
        if not identifier or not password:
            raise ValidationError("Identifier and password are required")

        candidates = await self.accounts.find_by_identifier(identifier)
        if not candidates:
            raise NotFound()
        # plaintext comparison, constant-time; email matches come first
        secret = password.encode("utf-8")
        for account in candidates:
            if secrets.compare_digest(account.password.encode("utf-8"), secret):
                return account
        raise Unauthorized()

    async def reset_password(self, email: Optional[str], code: Optional[str], new_password: Optional[str]) -> Account:
        """Consume a verification code for `email` and set the new password in one commit.

        If the password write fails the code is rolled back with it and stays usable.
        """
        if not email or not code or not new_password:
            raise ValidationError("Email, code and New Password are required")

        account = await self.accounts.find_by_email(email)
        if account is None:
            raise NotFound("User Not Found")

        try:
            await self.otp.consume_code(email, code)
            await self.accounts.update_password(account, new_password)
            await self.accounts.commit()
        except Exception:
            await self.accounts.rollback()
            raise
        return account

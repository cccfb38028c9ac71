from __future__ import annotations
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...domain.errors import ServiceFailure
from ...domain.schemas.auth import (
    AccountOut,
    MessageOut,
    ResetPasswordIn,
    SendCodeIn,
    SigninIn,
    SignupIn,
    SignupOut,
    VerifyCodeIn,
)
from ...services.accounts import AccountService, SignupFields
from ...services.otp_lifecycle import OtpLifecycle
from ..deps import get_account_service, get_otp_lifecycle

router = APIRouter(prefix="/api", tags=["auth"])

log = logging.getLogger("nexora.api.auth")


def _server_error(event: str, detail: str, exc: ServiceFailure) -> HTTPException:
    # cause goes to the log only; callers get the generic message
    log.error(event, exc_info=exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


@router.post("/signup", response_model=SignupOut, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupIn, accounts: AccountService = Depends(get_account_service)):
    try:
        result = await accounts.signup(SignupFields(**payload.model_dump()))
    except ServiceFailure as exc:
        raise _server_error("signup_error", "Signup failed", exc) from exc

    message = "User registered. OTP sent." if result.otp_sent else "User registered. OTP could not be sent; request a new code."
    return SignupOut(message=message, otp_sent=result.otp_sent)


@router.post("/send-code", response_model=MessageOut)
async def send_code(payload: SendCodeIn, otp: OtpLifecycle = Depends(get_otp_lifecycle)):
    try:
        await otp.reissue_code(payload.email)
    except ServiceFailure as exc:
        raise _server_error("resend_error", "Failed to send OTP", exc) from exc
    return MessageOut(message="OTP sent successfully")


@router.post("/verify-code", response_model=MessageOut)
async def verify_code(payload: VerifyCodeIn, otp: OtpLifecycle = Depends(get_otp_lifecycle)):
    try:
        await otp.verify_code(payload.email, payload.code)
    except ServiceFailure as exc:
        raise _server_error("verification_error", "Verification failed", exc) from exc
    return MessageOut(message="Email verified successfully")


@router.post("/signin", response_model=AccountOut)
async def signin(payload: SigninIn, accounts: AccountService = Depends(get_account_service)):
    try:
        account = await accounts.signin(payload.identifier, payload.password)
    except ServiceFailure as exc:
        raise _server_error("signin_error", "Signin failed", exc) from exc
    return AccountOut.from_model(account)


@router.post("/reset-password", response_model=MessageOut)
async def reset_password(payload: ResetPasswordIn, accounts: AccountService = Depends(get_account_service)):
    try:
        await accounts.reset_password(payload.email, payload.code, payload.new_password)
    except ServiceFailure as exc:
        raise _server_error("reset_password_error", "Error Updating Password", exc) from exc
    return MessageOut(message="Password Updated Successfully")

import pytest

from nexora.db import build_sessionmaker
from nexora.domain.errors import PersistenceError
from nexora.repos.otp_codes import OtpCodeRepo
from nexora.models import Account
from tests.conftest import signup_payload, count_rows

pytestmark = pytest.mark.asyncio


async def test_signup_resend_verify_scenario(client, sender, clock):
    clock.codes = ["111111", "222222"]
    r = await client.post("/api/signup", json=signup_payload())
    assert r.status_code == 201
    assert r.json() == {"message": "User registered. OTP sent.", "otpSent": True}
    assert sender.last_code() == "111111"

    r = await client.post("/api/send-code", json={"email": "a@x.com"})
    assert r.status_code == 200
    assert sender.last_code() == "222222"
    assert len(sender.sent) == 2

    r = await client.post("/api/verify-code", json={"email": "a@x.com", "code": "111111"})
    assert r.status_code == 400

    r = await client.post("/api/verify-code", json={"email": "a@x.com", "code": "222222"})
    assert r.status_code == 200
    assert r.json() == {"message": "Email verified successfully"}

    r = await client.post("/api/verify-code", json={"email": "a@x.com", "code": "222222"})
    assert r.status_code == 400
    assert r.json() == {"detail": "Invalid or expired code"}


async def test_signup_missing_field(client, sender):
    payload = signup_payload()
    del payload["region"]
    r = await client.post("/api/signup", json=payload)
    assert r.status_code == 400
    assert r.json() == {"detail": "All fields are required"}
    assert sender.sent == []


async def test_signup_conflict(client):
    assert (await client.post("/api/signup", json=signup_payload())).status_code == 201
    r = await client.post("/api/signup", json=signup_payload(email="other@x.com"))
    assert r.status_code == 409
    r = await client.post("/api/signup", json=signup_payload(username="bob"))
    assert r.status_code == 409


async def test_signup_mail_failure_still_creates_account(client, sender):
    sender.fail = True
    r = await client.post("/api/signup", json=signup_payload())
    assert r.status_code == 201
    assert r.json()["otpSent"] is False


async def test_signup_storage_failure_returns_500_and_keeps_account(client, engine, monkeypatch):
    async def broken(self, **kwargs):
        raise PersistenceError("otp replace failed")

    monkeypatch.setattr(OtpCodeRepo, "replace_for_email", broken)

    r = await client.post("/api/signup", json=signup_payload())
    assert r.status_code == 500
    assert r.json() == {"detail": "Signup failed"}

    async with build_sessionmaker(engine)() as s:
        assert await count_rows(s, Account) == 1


async def test_send_code_requires_email(client):
    r = await client.post("/api/send-code", json={})
    assert r.status_code == 400
    assert r.json() == {"detail": "Email is required"}


async def test_send_code_delivery_failure(client, sender):
    sender.fail = True
    r = await client.post("/api/send-code", json={"email": "a@x.com"})
    assert r.status_code == 500
    assert r.json() == {"detail": "Failed to send OTP"}


async def test_send_code_for_address_without_account(client, sender):
    r = await client.post("/api/send-code", json={"email": "new@x.com"})
    assert r.status_code == 200
    assert sender.sent[-1]["to"] == "new@x.com"


async def test_verify_code_requires_both(client):
    r = await client.post("/api/verify-code", json={"email": "a@x.com"})
    assert r.status_code == 400
    assert r.json() == {"detail": "Email and code required"}


async def test_verify_code_expired(client, sender, clock):
    await client.post("/api/send-code", json={"email": "a@x.com"})
    code = sender.last_code()
    clock.advance(300)
    r = await client.post("/api/verify-code", json={"email": "a@x.com", "code": code})
    assert r.status_code == 400


async def test_signin_flow(client):
    await client.post("/api/signup", json=signup_payload())

    r = await client.post("/api/signin", json={"identifier": "alice", "password": "wrong"})
    assert r.status_code == 401

    r = await client.post("/api/signin", json={"identifier": "ghost", "password": "p1"})
    assert r.status_code == 404

    r = await client.post("/api/signin", json={"identifier": "alice"})
    assert r.status_code == 400

    r = await client.post("/api/signin", json={"identifier": "alice", "password": "p1"})
    assert r.status_code == 200
    body = r.json()
    assert body["username"] == "alice"
    assert body["email"] == "a@x.com"
    assert body["firstName"] == "Alice"
    assert body["fullName"] == "Alice Liddell"
    assert "password" not in body


async def test_signin_by_email_that_is_also_someone_elses_username(client):
    await client.post("/api/signup", json=signup_payload(username="b@x.com", email="a@x.com", password="pa"))
    await client.post("/api/signup", json=signup_payload(username="bob", email="b@x.com", password="pb"))

    r = await client.post("/api/signin", json={"identifier": "b@x.com", "password": "pb"})
    assert r.status_code == 200
    assert r.json()["username"] == "bob"


async def test_reset_password_flow(client, sender):
    await client.post("/api/signup", json=signup_payload())
    code = sender.last_code()

    r = await client.post("/api/reset-password", json={"email": "a@x.com", "code": code, "newPassword": "p2"})
    assert r.status_code == 200
    assert r.json() == {"message": "Password Updated Successfully"}

    r = await client.post("/api/signin", json={"identifier": "alice", "password": "p2"})
    assert r.status_code == 200

    r = await client.post("/api/reset-password", json={"email": "ghost@x.com", "code": code, "newPassword": "p3"})
    assert r.status_code == 404

    r = await client.post("/api/reset-password", json={"email": "a@x.com"})
    assert r.status_code == 400


async def test_malformed_body_is_400(client):
    r = await client.post("/api/verify-code", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400


async def test_root_liveness_and_request_id(client):
    r = await client.get("/")
    assert r.status_code == 200
    assert "X-Request-ID" in r.headers

    r = await client.get("/health/liveness", headers={"X-Request-ID": "abc123"})
    assert r.json() == {"alive": True}
    assert r.headers["X-Request-ID"] == "abc123"


async def test_metrics_exposes_otp_counters(client):
    await client.post("/api/send-code", json={"email": "a@x.com"})
    r = await client.get("/metrics")
    assert r.status_code == 200
    assert "otp_issued_total" in r.text

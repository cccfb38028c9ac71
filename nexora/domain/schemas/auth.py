import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ...models import Account


class _CamelModel(BaseModel):
    # wire format is camelCase (firstName, newPassword, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Request fields are all optional here: presence is checked by the services so
# a missing field yields the service's 400, not a schema error.
class SignupIn(_CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    dob: Optional[str] = None
    gender: Optional[str] = None
    region: Optional[str] = None


class SendCodeIn(_CamelModel):
    email: Optional[str] = None


class VerifyCodeIn(_CamelModel):
    email: Optional[str] = None
    code: Optional[str] = None


class SigninIn(_CamelModel):
    identifier: Optional[str] = None
    password: Optional[str] = None


class ResetPasswordIn(_CamelModel):
    email: Optional[str] = None
    code: Optional[str] = None
    new_password: Optional[str] = None


class MessageOut(_CamelModel):
    message: str


class SignupOut(_CamelModel):
    message: str
    otp_sent: bool


class AccountOut(_CamelModel):
    """Account as returned to clients. The password is never echoed back."""
    id: uuid.UUID
    first_name: str
    last_name: str
    full_name: str
    username: str
    email: str
    dob: str
    gender: str
    region: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, a: Account) -> "AccountOut":
        return cls(
            id=a.id,
            first_name=a.first_name,
            last_name=a.last_name,
            full_name=a.full_name,
            username=a.username,
            email=a.email,
            dob=a.dob,
            gender=a.gender,
            region=a.region,
            created_at=a.created_at,
        )

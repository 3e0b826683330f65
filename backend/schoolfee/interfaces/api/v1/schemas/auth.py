from pydantic import BaseModel, EmailStr, Field

from schoolfee.application.services.identity_service import SessionEvent
from schoolfee.domain.roles import AppRole
from schoolfee.domain.subscription import SubscriptionStatus


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str = ""
    school_name: str | None = None
    school_address: str | None = None
    school_phone: str | None = None


class SignupResponse(TokenResponse):
    user_id: int
    school_id: int


class SessionEventRequest(BaseModel):
    event: SessionEvent = SessionEvent.signed_in


class SessionResponse(BaseModel):
    user_id: int
    school_id: int | None
    is_super_admin: bool
    needs_onboarding: bool
    subscription_status: SubscriptionStatus | None


class RoleGrantResponse(BaseModel):
    id: int
    role: AppRole

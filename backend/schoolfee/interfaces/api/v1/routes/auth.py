from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from schoolfee.application.services.access_policy_service import Principal
from schoolfee.application.services.identity_service import handle_session_event, list_own_roles
from schoolfee.application.services.security_service import authenticate_user, create_access_token
from schoolfee.application.services.signup_service import register_admin
from schoolfee.infrastructure.db.models import User
from schoolfee.infrastructure.db.session import get_db
from schoolfee.interfaces.api.v1.dependencies.auth import get_current_principal, get_current_user
from schoolfee.interfaces.api.v1.schemas.auth import (
    RoleGrantResponse,
    SessionEventRequest,
    SessionResponse,
    SignupRequest,
    SignupResponse,
    TokenResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/token",
    response_model=TokenResponse,
    summary="Issue access token",
    description="Authenticate with email/password form data and return a bearer token for protected endpoints.",
    responses={401: {"description": "Invalid credentials"}},
)
def issue_token(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    user = authenticate_user(db=db, email=form_data.username, password=form_data.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return TokenResponse(access_token=create_access_token(user.id))


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a school admin",
    description="Create the account, its school on a 7-day trial, the admin profile and the admin role at once.",
    responses={409: {"description": "Email already registered"}},
)
def signup(payload: SignupRequest, db: Session = Depends(get_db)):
    result = register_admin(db=db, payload=payload)
    return SignupResponse(
        access_token=create_access_token(result.user.id),
        user_id=result.user.id,
        school_id=result.school.id,
    )


@router.post(
    "/session",
    response_model=SessionResponse | None,
    summary="Resolve session",
    description=(
        "Session lifecycle callback. Sign-in style events return the tenant, role and onboarding state; "
        "`signed_out` returns null."
    ),
)
def resolve_session_endpoint(
    payload: SessionEventRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    resolution = handle_session_event(db=db, event=payload.event, principal_id=current_user.id)
    if resolution is None:
        return None
    return SessionResponse(
        user_id=resolution.user_id,
        school_id=resolution.school_id,
        is_super_admin=resolution.is_super_admin,
        needs_onboarding=resolution.needs_onboarding,
        subscription_status=resolution.subscription_status,
    )


@router.get("/roles", response_model=list[RoleGrantResponse], summary="List own role grants")
def get_own_roles(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return [{"id": grant.id, "role": grant.role} for grant in list_own_roles(db=db, principal=principal)]

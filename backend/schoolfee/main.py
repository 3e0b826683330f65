from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from schoolfee.application.errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NoTenantError,
    NotFoundError,
    PaymentInitiationError,
    SubscriptionExpiredError,
    ValidationError,
)
from schoolfee.config import settings
from schoolfee.infrastructure.logging import clear_request_context, configure_logging, get_logger
from schoolfee.interfaces.api.v1.router import api_router

logger = get_logger(__name__)

BILLING_URL = "/api/v1/billing"

OPENAPI_DESCRIPTION = """
Multi-tenant school fee management API: students, classes, fee payments and the
school's own subscription.

How to call this API:
- Sign up at `POST /api/v1/auth/signup` or authenticate at `POST /api/v1/auth/token`.
- Use `Authorization: Bearer <access_token>` in protected endpoints.
- Tenant endpoints always act on the caller's own school; there is no school header.
- Expired schools can still read their data; writes answer `402` until the subscription is renewed.
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Service health and connectivity checks."},
    {"name": "auth", "description": "Signup, token issuance and session resolution."},
    {"name": "schools", "description": "Own school profile, onboarding, subscription summary and dashboard."},
    {"name": "students", "description": "Student CRUD for the caller's school."},
    {"name": "fee-structures", "description": "Classes and their fee amounts."},
    {"name": "payments", "description": "Fee payments and receipts."},
    {"name": "billing", "description": "Subscription requests, M-PESA payments and the provider webhook."},
    {"name": "notifications", "description": "Messages from the platform to a school."},
    {"name": "admin", "description": "Super-admin console across all schools."},
]


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    logger.info("app_startup", app_name=settings.app_name, version=settings.app_version)
    yield
    logger.info("app_shutdown", app_name=settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=OPENAPI_DESCRIPTION,
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url, "http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def reset_log_context(request: Request, call_next):
    clear_request_context()
    return await call_next(request)


@app.get("/")
def root():
    return {"message": f"{settings.app_name} is running"}


@app.exception_handler(NotFoundError)
async def handle_not_found(_: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(CapacityExceededError)
async def handle_capacity_exceeded(_: Request, exc: CapacityExceededError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "code": "capacity_exceeded", "current": exc.current, "maximum": exc.maximum},
    )


@app.exception_handler(InvalidTransitionError)
async def handle_invalid_transition(_: Request, exc: InvalidTransitionError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "code": "invalid_transition"},
    )


@app.exception_handler(NoTenantError)
async def handle_no_tenant(_: Request, exc: NoTenantError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "code": "onboarding_required"},
    )


@app.exception_handler(ConflictError)
async def handle_conflict(_: Request, exc: ConflictError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ForbiddenError)
async def handle_forbidden(_: Request, exc: ForbiddenError):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def handle_validation(_: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(SubscriptionExpiredError)
async def handle_subscription_expired(_: Request, exc: SubscriptionExpiredError):
    return JSONResponse(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        content={"detail": str(exc), "code": "subscription_expired", "billing_url": BILLING_URL},
    )


@app.exception_handler(PaymentInitiationError)
async def handle_payment_initiation(_: Request, exc: PaymentInitiationError):
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


app.include_router(api_router)

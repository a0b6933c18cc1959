"""Registration and email verification endpoints."""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field

from stormlink.api.deps import VerificationServiceDep
from stormlink.schemas import ErrorResponse, SuccessResponse
from stormlink.services.verification import (
    AccountExistsError,
    AccountNotFoundError,
    AlreadyVerifiedError,
    DeliveryQueueError,
    InvalidRequestError,
    TokenExpiredError,
    TokenNotFoundError,
    VerificationError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Domain errors mapped to HTTP status codes. Expired is deliberately distinct
# from not-found so clients can offer "resend".
ERROR_STATUS: dict[type[VerificationError], int] = {
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    AccountNotFoundError: status.HTTP_404_NOT_FOUND,
    TokenNotFoundError: status.HTTP_404_NOT_FOUND,
    AccountExistsError: status.HTTP_409_CONFLICT,
    AlreadyVerifiedError: status.HTTP_409_CONFLICT,
    TokenExpiredError: status.HTTP_410_GONE,
    DeliveryQueueError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (400, 404, 409, 410, 503)
}


def http_error(e: VerificationError) -> HTTPException:
    """Translate a verification error into an HTTP error."""
    status_code = ERROR_STATUS.get(type(e), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=status_code, detail=str(e))


class RegisterRequest(BaseModel):
    """Request body for registration."""

    email: EmailStr
    name: str | None = Field(default=None, max_length=255)


class RegisterResponse(BaseModel):
    """Response for a successful registration."""

    user_id: str
    message: str


class ResendRequest(BaseModel):
    """Request body for resending the verification email."""

    email: EmailStr


class VerifyEmailRequest(BaseModel):
    """Request body for email verification."""

    token: str = Field(min_length=1, max_length=255)


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def register(request: RegisterRequest, service: VerificationServiceDep):
    """
    Register a new account.

    The account starts unverified and a verification email is queued.
    """
    try:
        user, _ = await service.register(email=request.email, name=request.name)
    except VerificationError as e:
        raise http_error(e) from e

    return RegisterResponse(
        user_id=user.id,
        message="User registered successfully. Please check your email to verify your account.",
    )


@router.post(
    "/resend-verification",
    response_model=SuccessResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=ERROR_RESPONSES,
)
async def resend_verification(request: ResendRequest, service: VerificationServiceDep):
    """
    Issue a new verification token and queue its delivery.

    Any earlier token for the account stops working.
    """
    try:
        await service.issue_or_resend(email=request.email)
    except VerificationError as e:
        raise http_error(e) from e

    return SuccessResponse(message="Verification email sent successfully.")


@router.post("/verify-email", response_model=SuccessResponse, responses=ERROR_RESPONSES)
async def verify_email(request: VerifyEmailRequest, service: VerificationServiceDep):
    """Consume a verification token and mark its account verified."""
    try:
        message = await service.consume(request.token)
    except VerificationError as e:
        raise http_error(e) from e

    return SuccessResponse(message=message)

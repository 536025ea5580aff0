import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from retail_api.database import get_db
from retail_api.dependencies import get_auth_service, get_current_user, get_optional_user
from retail_api.schemas.auth import (
    RegisterInitiateRequest, RegisterCompleteRequest, LoginRequest,
    PasswordResetInitiateRequest, VerifyOTPRequest, PasswordResetCompleteRequest,
    ResendOTPRequest, UpdateProfileRequest, UserIdentity,
)
from retail_api.schemas.common import SuccessResponse, success_response
from retail_api.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


# ─── POST /auth/register/initiate ─────────────────────────────────────────────
@router.post(
    "/register/initiate",
    status_code=status.HTTP_200_OK,
    summary="Send a registration OTP",
    response_model=SuccessResponse,
)
def register_initiate(
    data: RegisterInitiateRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Step 1 of registration. No account is created yet; name and password
    must be sent again to /register/complete together with the code.
    """
    result = auth_service.initiate_registration(
        db, data.email, data.firstName, data.lastName, data.password,
    )
    return success_response(result["message"], {"delivered": result["delivered"]})


# ─── POST /auth/register/complete ─────────────────────────────────────────────
@router.post(
    "/register/complete",
    status_code=status.HTTP_201_CREATED,
    summary="Verify registration OTP and create the account",
    response_model=SuccessResponse,
)
def register_complete(
    data: RegisterCompleteRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    result = auth_service.complete_registration(
        db, data.email, data.otp, data.firstName, data.lastName, data.password,
    )
    return success_response("Registration successful", result)


# ─── POST /auth/login ─────────────────────────────────────────────────────────
@router.post(
    "/login",
    status_code=status.HTTP_200_OK,
    summary="Login and receive a bearer token",
    response_model=SuccessResponse,
)
def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Returns a bearer token valid for 7 days."""
    result = auth_service.login(db, data.email, data.password)
    return success_response("Login successful", result)


# ─── GET /auth/me ─────────────────────────────────────────────────────────────
@router.get(
    "/me",
    status_code=status.HTTP_200_OK,
    summary="Get current authenticated user",
    response_model=SuccessResponse,
)
def get_me(current_user: UserIdentity = Depends(get_current_user)):
    return success_response("User profile retrieved", {"user": current_user.model_dump()})


# ─── PUT /auth/profile ────────────────────────────────────────────────────────
@router.put(
    "/profile",
    status_code=status.HTTP_200_OK,
    summary="Update name, email or phone of the current user",
    response_model=SuccessResponse,
)
def update_profile(
    data: UpdateProfileRequest,
    db: Session = Depends(get_db),
    current_user: UserIdentity = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    user = auth_service.update_profile(db, current_user.id, data)
    return success_response("Profile updated", {"user": user})


# ─── POST /auth/password-reset/initiate ───────────────────────────────────────
@router.post(
    "/password-reset/initiate",
    status_code=status.HTTP_200_OK,
    summary="Request OTP for password reset",
    response_model=SuccessResponse,
)
def password_reset_initiate(
    data: PasswordResetInitiateRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Always returns 200 with the same message, even if the email does not
    exist (prevents enumeration).
    """
    result = auth_service.initiate_password_reset(db, data.email)
    return success_response(result["message"], None)


# ─── POST /auth/password-reset/verify-otp ─────────────────────────────────────
@router.post(
    "/password-reset/verify-otp",
    status_code=status.HTTP_200_OK,
    summary="Exchange a password reset OTP for a reset token",
    response_model=SuccessResponse,
)
def password_reset_verify_otp(
    data: VerifyOTPRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    result = auth_service.verify_password_reset_otp(db, data.email, data.otp)
    return success_response(result["message"], {"token": result["token"]})


# ─── POST /auth/password-reset/complete ───────────────────────────────────────
@router.post(
    "/password-reset/complete",
    status_code=status.HTTP_200_OK,
    summary="Set a new password using the reset token",
    response_model=SuccessResponse,
)
def password_reset_complete(
    data: PasswordResetCompleteRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    result = auth_service.reset_password(db, data.token, data.password)
    return success_response(result["message"], None)


# ─── POST /auth/resend-otp ────────────────────────────────────────────────────
@router.post(
    "/resend-otp",
    status_code=status.HTTP_200_OK,
    summary="Reissue an OTP once the previous one is used or expired",
    response_model=SuccessResponse,
)
def resend_otp(
    data: ResendOTPRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    result = auth_service.resend_otp(db, data.email, data.type)
    return success_response(result["message"], {"delivered": result["delivered"]})


# ─── POST /auth/logout ────────────────────────────────────────────────────────
@router.post(
    "/logout",
    status_code=status.HTTP_200_OK,
    summary="Logout (the client discards its token)",
    response_model=SuccessResponse,
)
def logout(current_user: UserIdentity | None = Depends(get_optional_user)):
    if current_user:
        logger.info(f"User {current_user.id} logged out")
    return success_response("Logged out successfully", None)

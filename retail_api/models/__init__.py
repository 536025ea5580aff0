"""
Import all models here so that:
1. Alembic can auto-detect them when generating migrations
2. Base.metadata.create_all() sees every table

Import parent tables before child tables.
"""

from retail_api.models.user import User
from retail_api.models.otp_verification import OTPVerification, OTPPurpose
from retail_api.models.password_reset_token import PasswordResetToken

__all__ = [
    "User",
    "OTPVerification",
    "OTPPurpose",
    "PasswordResetToken",
]

from pydantic import BaseModel, EmailStr, field_validator, model_validator
import re

from retail_api.models.otp_verification import OTPPurpose


# ─── Helpers ──────────────────────────────────────────────────────────────────
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72  # bcrypt ignores anything past 72 bytes
OTP_PATTERN = re.compile(r"^\d{6}$")


def normalize_email(v: str) -> str:
    return v.strip().lower()


def validate_password_length(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return v


def validate_otp_format(v: str) -> str:
    v = v.strip()
    if not OTP_PATTERN.match(v):
        raise ValueError("OTP must be 6 digits")
    return v


def validate_required_name(v: str) -> str:
    if not v.strip():
        raise ValueError("Name cannot be empty")
    return v.strip()


class EmailRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def email_normalized(cls, v: str) -> str:
        return normalize_email(v)


# ─── Request Schemas ──────────────────────────────────────────────────────────
class RegisterInitiateRequest(EmailRequest):
    firstName:       str
    lastName:        str
    password:        str
    confirmPassword: str

    @field_validator("firstName", "lastName")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        return validate_required_name(v)

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return validate_password_length(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterInitiateRequest":
        if self.password != self.confirmPassword:
            raise ValueError("Passwords don't match")
        return self


class RegisterCompleteRequest(EmailRequest):
    otp:       str
    firstName: str | None = None
    lastName:  str | None = None
    password:  str

    @field_validator("otp")
    @classmethod
    def otp_format(cls, v: str) -> str:
        return validate_otp_format(v)

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return validate_password_length(v)


class LoginRequest(EmailRequest):
    password: str


class PasswordResetInitiateRequest(EmailRequest):
    pass


class VerifyOTPRequest(EmailRequest):
    otp: str

    @field_validator("otp")
    @classmethod
    def otp_format(cls, v: str) -> str:
        return validate_otp_format(v)


class PasswordResetCompleteRequest(BaseModel):
    token:           str
    password:        str
    confirmPassword: str

    @field_validator("token")
    @classmethod
    def token_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Token is required")
        return v.strip()

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return validate_password_length(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordResetCompleteRequest":
        if self.password != self.confirmPassword:
            raise ValueError("Passwords don't match")
        return self


class ResendOTPRequest(EmailRequest):
    type: OTPPurpose


class UpdateProfileRequest(BaseModel):
    firstName: str | None = None
    lastName:  str | None = None
    email:     EmailStr | None = None
    phone:     str | None = None

    @field_validator("email")
    @classmethod
    def email_normalized(cls, v: str | None) -> str | None:
        return normalize_email(v) if v is not None else None


class CreateUserAccountRequest(EmailRequest):
    firstName: str
    lastName:  str
    phone:     str | None = None
    password:  str

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return validate_password_length(v)


# ─── Response Schemas ─────────────────────────────────────────────────────────
class UserIdentity(BaseModel):
    """What a bearer token resolves to. Never carries the password hash."""
    id:              str
    email:           str
    firstName:       str | None = None
    lastName:        str | None = None
    isEmailVerified: bool

    model_config = {"from_attributes": True}


class UserProfile(UserIdentity):
    phone: str | None = None


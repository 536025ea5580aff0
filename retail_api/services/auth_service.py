import logging

from sqlalchemy.orm import Session

from retail_api.models.user import User
from retail_api.models.otp_verification import OTPVerification, OTPPurpose
from retail_api.models.password_reset_token import PasswordResetToken
from retail_api.schemas.auth import (
    UserIdentity, UserProfile, UpdateProfileRequest, CreateUserAccountRequest,
)
from retail_api.utils.security import (
    verify_password, hash_password,
    create_access_token, decode_access_token,
    generate_otp, otp_expiry, generate_reset_token, reset_token_expiry,
    is_expired, utcnow,
)
from retail_api.utils.email import Notifier, DeliveryResult, DELIVERY_FAILED_MARKER
from retail_api.utils.exceptions import (
    DuplicateEntryException, InvalidCredentialsException, EmailNotVerifiedException,
    OTPInvalidException, OTPAlreadyActiveException, ResetTokenInvalidException,
    InvalidTokenException, NotFoundException,
)

logger = logging.getLogger(__name__)


REGISTRATION_OTP_SENT = "OTP sent to your email. Please verify to complete registration."
PASSWORD_RESET_OTP_SENT = "If an account with this email exists, you will receive a password reset OTP."
RESET_OTP_VERIFIED = "OTP verified. You can now reset your password."
PASSWORD_RESET_DONE = "Password reset successfully"
OTP_RESENT = "New OTP sent to your email"


def _identity(user: User) -> dict:
    return UserIdentity.model_validate(user).model_dump()


def _profile(user: User) -> dict:
    return UserProfile.model_validate(user).model_dump()


class AuthService:
    """
    Registration, login and password reset on top of the OTP and reset-token
    ledgers. The session is supplied per call; the notifier at construction.
    """

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    # ─── Lookups ──────────────────────────────────────────────────────────────
    @staticmethod
    def _get_user_by_email(db: Session, email: str) -> User | None:
        return db.query(User).filter(User.email == email).first()

    @staticmethod
    def _find_active_otp(db: Session, email: str, purpose: OTPPurpose) -> OTPVerification | None:
        otp = db.query(OTPVerification).filter(
            OTPVerification.email == email,
            OTPVerification.purpose == purpose.value,
            OTPVerification.isUsed == False,
        ).first()
        if otp is None or is_expired(otp.expiresAt):
            return None
        return otp

    def _match_otp(self, db: Session, email: str, purpose: OTPPurpose, otp_code: str) -> OTPVerification:
        """Return the live code equal to `otp_code` or raise. Never mutates."""
        otp = self._find_active_otp(db, email, purpose)
        if otp is None or otp.otpCode != otp_code:
            raise OTPInvalidException()
        return otp

    # ─── OTP Ledger ───────────────────────────────────────────────────────────
    def _issue_otp(self, db: Session, email: str, purpose: OTPPurpose) -> str:
        """
        Replace whatever code the (email, purpose) pair holds with a fresh one.
        Delete and insert commit together; the unique (email, purpose)
        constraint rejects a concurrent second insert.
        """
        otp_code = generate_otp()

        db.query(OTPVerification).filter(
            OTPVerification.email == email,
            OTPVerification.purpose == purpose.value,
        ).delete()
        db.flush()

        db.add(OTPVerification(
            email=email,
            otpCode=otp_code,
            purpose=purpose.value,
            expiresAt=otp_expiry(),
            isUsed=False,
        ))
        db.commit()

        logger.info(f"Issued {purpose.value} OTP for {email}")
        return otp_code

    def _deliver(self, email: str, otp_code: str, purpose: OTPPurpose) -> DeliveryResult:
        result = self.notifier.send(email, otp_code, purpose)
        if not result.delivered:
            logger.warning(
                "%s email=%s purpose=%s error=%s",
                DELIVERY_FAILED_MARKER, email, purpose.value, result.error,
            )
        return result

    # ─── Register ─────────────────────────────────────────────────────────────
    def initiate_registration(
        self, db: Session, email: str, first_name: str, last_name: str, password: str
    ) -> dict:
        """
        Step 1: send a registration code. Nothing about the pending profile is
        stored; the client posts name and password again on completion.
        """
        if self._get_user_by_email(db, email):
            raise DuplicateEntryException("User already exists with this email", field="email")

        otp_code = self._issue_otp(db, email, OTPPurpose.REGISTER)
        result = self._deliver(email, otp_code, OTPPurpose.REGISTER)
        return {"message": REGISTRATION_OTP_SENT, "delivered": result.delivered}

    def complete_registration(
        self,
        db: Session,
        email: str,
        otp_code: str,
        first_name: str | None,
        last_name: str | None,
        password: str,
    ) -> dict:
        otp = self._match_otp(db, email, OTPPurpose.REGISTER, otp_code)

        if self._get_user_by_email(db, email):
            raise DuplicateEntryException("User already exists with this email", field="email")

        otp.isUsed = True
        user = User(
            email=email,
            firstName=first_name,
            lastName=last_name,
            password=hash_password(password),
            isEmailVerified=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"Registration completed for {email} (user {user.id})")
        return {"user": _identity(user), "token": create_access_token(user.id)}

    # ─── Login ────────────────────────────────────────────────────────────────
    def login(self, db: Session, email: str, password: str) -> dict:
        user = self._get_user_by_email(db, email)

        if not user or not verify_password(password, user.password):
            raise InvalidCredentialsException()

        if not user.isEmailVerified:
            raise EmailNotVerifiedException()

        logger.info(f"User {user.id} logged in")
        return {"user": _identity(user), "token": create_access_token(user.id)}

    # ─── Password Reset ───────────────────────────────────────────────────────
    def initiate_password_reset(self, db: Session, email: str) -> dict:
        """
        Same answer whether or not the account exists, to prevent email
        enumeration. The code is only issued and sent for a real account.
        """
        user = self._get_user_by_email(db, email)
        if user:
            otp_code = self._issue_otp(db, email, OTPPurpose.RESET_PASSWORD)
            self._deliver(email, otp_code, OTPPurpose.RESET_PASSWORD)
        else:
            logger.info(f"Password reset requested for unknown email {email}")

        return {"message": PASSWORD_RESET_OTP_SENT}

    def verify_password_reset_otp(self, db: Session, email: str, otp_code: str) -> dict:
        otp = self._match_otp(db, email, OTPPurpose.RESET_PASSWORD, otp_code)
        otp.isUsed = True

        token = generate_reset_token()
        db.query(PasswordResetToken).filter(
            PasswordResetToken.email == email,
        ).delete()
        db.flush()
        db.add(PasswordResetToken(
            email=email,
            token=token,
            expiresAt=reset_token_expiry(),
            isUsed=False,
        ))
        db.commit()

        logger.info(f"Reset token issued for {email}")
        return {"token": token, "message": RESET_OTP_VERIFIED}

    def reset_password(self, db: Session, token: str, new_password: str) -> dict:
        """The token alone decides whose password changes."""
        record = db.query(PasswordResetToken).filter(
            PasswordResetToken.token == token,
            PasswordResetToken.isUsed == False,
        ).first()
        if record is None or is_expired(record.expiresAt):
            raise ResetTokenInvalidException()

        user = self._get_user_by_email(db, record.email)
        if user is None:
            raise ResetTokenInvalidException()

        record.isUsed = True
        user.password = hash_password(new_password)
        user.updatedAt = utcnow()
        db.commit()

        logger.info(f"Password reset for user {user.id}")
        return {"message": PASSWORD_RESET_DONE}

    # ─── Resend OTP ───────────────────────────────────────────────────────────
    def resend_otp(self, db: Session, email: str, purpose: OTPPurpose) -> dict:
        purpose = OTPPurpose(purpose)
        if self._find_active_otp(db, email, purpose):
            raise OTPAlreadyActiveException()

        otp_code = self._issue_otp(db, email, purpose)
        result = self._deliver(email, otp_code, purpose)
        return {"message": OTP_RESENT, "delivered": result.delivered}

    # ─── Bearer Token ─────────────────────────────────────────────────────────
    def verify_token(self, db: Session, token: str) -> dict:
        payload = decode_access_token(token)

        user = db.query(User).filter(User.id == str(payload["sub"])).first()
        if not user:
            raise InvalidTokenException()

        return _identity(user)

    # ─── Accounts ─────────────────────────────────────────────────────────────
    def create_user_account(self, db: Session, data: CreateUserAccountRequest) -> dict:
        """Create an already-verified account (staff accounts), bypassing OTP."""
        if self._get_user_by_email(db, data.email):
            raise DuplicateEntryException("User already exists with this email", field="email")

        user = User(
            email=data.email,
            firstName=data.firstName,
            lastName=data.lastName,
            phone=data.phone,
            password=hash_password(data.password),
            isEmailVerified=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"Account created for {user.email} (user {user.id})")
        return _profile(user)

    def update_profile(self, db: Session, user_id: str, data: UpdateProfileRequest) -> dict:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundException("User")

        updates = data.model_dump(exclude_unset=True)
        new_email = updates.get("email")
        if new_email and new_email != user.email:
            if self._get_user_by_email(db, new_email):
                raise DuplicateEntryException("User already exists with this email", field="email")

        for field, value in updates.items():
            if field == "email" and value is None:
                continue
            setattr(user, field, value)
        user.updatedAt = utcnow()
        db.commit()
        db.refresh(user)

        return _profile(user)

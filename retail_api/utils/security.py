import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from retail_api.config import settings
from retail_api.utils.exceptions import InvalidTokenException

# ─── Password Hashing ─────────────────────────────────────────────────────────
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password using bcrypt."""
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain-text password against a bcrypt hash.
    Secrets passlib refuses to hash (PasswordSizeError) simply do not match.
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


# ─── Clock ────────────────────────────────────────────────────────────────────
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    """
    True once `now` has reached `expires_at`; a record is only live while
    its expiry is strictly in the future. Naive values (SQLite) are UTC.
    """
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or utcnow())


# ─── JWT ──────────────────────────────────────────────────────────────────────
def create_access_token(user_id: str) -> str:
    """
    Create the bearer token handed out on login and registration.
    Payload: sub (user_id), type, exp
    """
    expire = utcnow() + timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
    payload = {
        "sub": str(user_id),
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and validate a bearer token.
    Bad signatures, expired tokens and foreign token types all raise InvalidTokenException.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise InvalidTokenException()

    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidTokenException()
    return payload


# ─── OTP ──────────────────────────────────────────────────────────────────────
def generate_otp() -> str:
    """Six-digit numeric code, uniform over 100000..999999."""
    return str(100000 + secrets.randbelow(900000))


def otp_expiry() -> datetime:
    """Return OTP expiry timestamp (UTC)."""
    return utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)


# ─── Reset Token ──────────────────────────────────────────────────────────────
def generate_reset_token() -> str:
    """32 random bytes, hex-encoded."""
    return secrets.token_hex(32)


def reset_token_expiry() -> datetime:
    return utcnow() + timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)

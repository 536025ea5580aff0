import enum

from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP, UniqueConstraint
from sqlalchemy.sql import func
from retail_api.database import Base


class OTPPurpose(str, enum.Enum):
    REGISTER       = "register"
    RESET_PASSWORD = "reset-password"


class OTPVerification(Base):
    """
    One-time code ledger. A row is keyed by (email, purpose); issuing a new
    code replaces the previous row, so the pair never holds two codes.
    """
    __tablename__ = "otp_verifications"
    __table_args__ = (
        UniqueConstraint("email", "purpose", name="uq_otp_verifications_email_purpose"),
    )

    id        = Column(Integer, primary_key=True, index=True)
    email     = Column(String(255), nullable=False, index=True)
    otpCode   = Column(String(6), nullable=False)
    purpose   = Column(String(20), nullable=False)
    expiresAt = Column(TIMESTAMP(timezone=True), nullable=False)
    isUsed    = Column(Boolean, default=False, nullable=False)
    createdAt = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<OTPVerification id={self.id} email={self.email} purpose={self.purpose} isUsed={self.isUsed}>"

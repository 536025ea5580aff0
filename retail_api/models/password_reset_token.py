from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP
from sqlalchemy.sql import func
from retail_api.database import Base


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id        = Column(Integer, primary_key=True, index=True)
    email     = Column(String(255), nullable=False, unique=True, index=True)
    token     = Column(String(64), nullable=False, unique=True)
    expiresAt = Column(TIMESTAMP(timezone=True), nullable=False)
    isUsed    = Column(Boolean, default=False, nullable=False)
    createdAt = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PasswordResetToken id={self.id} email={self.email} isUsed={self.isUsed}>"

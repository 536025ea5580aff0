import uuid

from sqlalchemy import Column, String, Boolean, TIMESTAMP
from sqlalchemy.sql import func
from retail_api.database import Base


class User(Base):
    __tablename__ = "users"

    id              = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email           = Column(String(255), unique=True, nullable=False, index=True)
    firstName       = Column(String(100), nullable=True)
    lastName        = Column(String(100), nullable=True)
    phone           = Column(String(30), nullable=True)
    password        = Column(String(255), nullable=False)
    isEmailVerified = Column(Boolean, default=False, nullable=False)
    createdAt       = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updatedAt       = Column(TIMESTAMP(timezone=True), server_default=func.now(),
                             onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<User id={self.id} email={self.email} verified={self.isEmailVerified}>"

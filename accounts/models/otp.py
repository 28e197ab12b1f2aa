"""One-time password model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from accounts.database import Base


class OneTimePassword(Base):
    """Password reset code. At most one row per user."""

    __tablename__ = "otp"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    otp = Column(String(16), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

# app/models/password_reset.py

from sqlalchemy import Column, Integer, String, DateTime
from app.utils.database import Base, utcnow

class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, nullable=False, index=True)
    token = Column(String, unique=True, nullable=False, index=True)     # 64 hex-символа
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

# app/models/email.py

from sqlalchemy import Column, Integer, String, Text, DateTime
from app.utils.database import Base, utcnow

class EmailLog(Base):
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True)
    to = Column(String, nullable=False, index=True)
    subject = Column(String, nullable=False)
    type = Column(String, nullable=False)               # ORDER_CONFIRMATION, SHIPPING, DELIVERY, REVIEW_REQUEST, PASSWORD_RESET
    resend_id = Column(String, nullable=True)
    status = Column(String, nullable=False)             # SENT | FAILED
    error = Column(Text, nullable=True)
    user_id = Column(Integer, nullable=True)
    order_id = Column(Integer, nullable=True)
    meta = Column("metadata", Text, nullable=True)      # JSON-храним как текст
    created_at = Column(DateTime, default=utcnow, index=True)


class ScheduledEmail(Base):
    __tablename__ = "scheduled_emails"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String, nullable=False)
    to = Column(String, nullable=False)
    scheduled_for = Column(DateTime, nullable=False, index=True)
    status = Column(String, nullable=False, default="PENDING")   # PENDING | SENT | FAILED
    payload = Column(Text, nullable=True)                        # JSON-храним как текст
    order_id = Column(Integer, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

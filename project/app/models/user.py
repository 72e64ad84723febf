# app/models/user.py

from sqlalchemy import Column, Integer, String, DateTime, Boolean
from app.utils.database import Base, utcnow

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    password = Column(String, nullable=True)                    # хеш sha256_crypt
    role = Column(String, nullable=False, default="USER")       # USER | ADMIN
    wishlist_share_id = Column(String, unique=True, nullable=True)
    wishlist_public = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

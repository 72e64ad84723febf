# app/models/product.py

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Numeric
from app.utils.database import Base, utcnow

CATEGORIES = ("Signature", "Niche", "Femme", "Homme", "Coffret")

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    brand = Column(String, nullable=True)
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    volume = Column(String, nullable=True)              # "100ml"
    image = Column(String, nullable=True)
    category = Column(String, nullable=False, index=True)
    subcategory = Column(String, nullable=True)
    stock = Column(Integer, nullable=False, default=0)

    notes_top = Column(Text, nullable=True)
    notes_heart = Column(Text, nullable=True)
    notes_base = Column(Text, nullable=True)

    is_featured = Column(Boolean, nullable=False, default=False)
    is_new = Column(Boolean, nullable=False, default=False)
    is_best_seller = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

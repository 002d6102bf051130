"""
Course Model — Catalog entries sold through checkout.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, Numeric, Text, ForeignKey
from sqlalchemy.orm import relationship

from coursepay.database import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, default="")
    price = Column(Numeric(12, 2), nullable=False)     # currency-agnostic units
    category = Column(String(64), index=True)
    thumbnail = Column(String(512))

    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    instructor_name = Column(String(120))              # legacy free-text fallback

    modules = Column(JSON, default=list)
    # [{"title": str, "videos": [...], "exercises": [...]}], ordered

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    instructor = relationship("User", lazy="joined")

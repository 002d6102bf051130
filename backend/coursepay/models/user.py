"""
User Model — Students, universities, partners, finance and admin staff.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Boolean

from coursepay.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(20))
    password_hash = Column(String(255), nullable=False)

    role = Column(String(16), default="student", nullable=False)
    # Roles: student | university | partner | finance | admin

    is_active = Column(Boolean, default=True)
    university_id = Column(Integer, nullable=True)   # set when enrolled in a university-hosted course

    created_at = Column(DateTime, default=datetime.utcnow)

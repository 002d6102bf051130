"""
Enrollment & Progress Models — Created when a payment succeeds.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, Boolean, ForeignKey, UniqueConstraint

from coursepay.database import Base


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)

    status = Column(String(16), default="active")    # active | inactive
    source = Column(String(16), default="payment")   # payment | manual
    transaction_id = Column(String(40), nullable=True)
    total_modules = Column(Integer, default=0)

    enrolled_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Progress(Base):
    __tablename__ = "progress"
    __table_args__ = (UniqueConstraint("user_id", "course_id", name="uq_progress_user_course"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)

    completed_videos = Column(JSON, default=list)
    completed_exercises = Column(JSON, default=list)
    is_completed = Column(Boolean, default=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

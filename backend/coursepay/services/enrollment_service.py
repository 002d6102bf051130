"""
Enrollment Service — grants and revokes course access tied to payments.
"""
from sqlalchemy.orm import Session

from coursepay.models.enrollment import Enrollment, Progress
from coursepay.models.transaction import Transaction
from coursepay.utils.logger import get_logger

logger = get_logger(__name__)


class EnrollmentService:

    @staticmethod
    def activate_for(db: Session, txn: Transaction) -> Enrollment:
        """Create (or re-activate) the enrollment and progress rows for a paid transaction."""
        enrollment = db.query(Enrollment).filter_by(user_id=txn.user_id, course_id=txn.course_id).first()
        if enrollment is None:
            enrollment = Enrollment(
                user_id=txn.user_id,
                course_id=txn.course_id,
                status="active",
                source="payment",
                transaction_id=txn.transaction_id,
                total_modules=len(txn.course.modules or []) if txn.course else 0,
            )
            db.add(enrollment)
        else:
            enrollment.status = "active"
            enrollment.transaction_id = txn.transaction_id

        if not db.query(Progress).filter_by(user_id=txn.user_id, course_id=txn.course_id).first():
            db.add(Progress(user_id=txn.user_id, course_id=txn.course_id, completed_videos=[], completed_exercises=[]))

        # University-hosted course: link the student to the university
        instructor = txn.course.instructor if txn.course else None
        if instructor is not None and instructor.role == "university" and txn.user is not None:
            txn.user.university_id = instructor.id

        logger.info("enrollment active: user=%s course=%s txn=%s", txn.user_id, txn.course_id, txn.transaction_id)
        return enrollment

    @staticmethod
    def deactivate_for(db: Session, txn: Transaction) -> None:
        enrollment = db.query(Enrollment).filter_by(user_id=txn.user_id, course_id=txn.course_id).first()
        if enrollment is not None:
            enrollment.status = "inactive"
            logger.info("enrollment deactivated: user=%s course=%s", txn.user_id, txn.course_id)

    @staticmethod
    def is_enrolled(db: Session, user_id: int, course_id: int) -> bool:
        return db.query(Enrollment).filter_by(user_id=user_id, course_id=course_id, status="active").first() is not None

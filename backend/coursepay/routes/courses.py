"""
Course Routes — Catalog reads and instructor-side edits.

Every course leaves the API in a single normalized shape; the instructor
name fallback lives in ``normalize_course`` and nowhere else.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coursepay.database import get_db
from coursepay.errors import NotFoundError, PermissionDeniedError
from coursepay.models.course import Course
from coursepay.models.user import User
from coursepay.schemas.schemas import CourseOut, CourseWriteRequest, CourseUpdateRequest, InstructorOut
from coursepay.services.pricing import to_money
from coursepay.utils.security import require_roles

router = APIRouter(prefix="/api/courses", tags=["Courses"])

DEFAULT_INSTRUCTOR_NAME = "Technical Instructor"


def normalize_course(course: Course) -> CourseOut:
    instructor = course.instructor
    name = (instructor.name if instructor else None) or course.instructor_name or DEFAULT_INSTRUCTOR_NAME
    return CourseOut(
        id=course.id,
        title=course.title,
        description=course.description or "",
        price=float(to_money(course.price)),
        category=course.category,
        thumbnail=course.thumbnail,
        instructor=InstructorOut(id=instructor.id if instructor else None, name=name),
        modules=course.modules or [],
    )


def _get_course(db: Session, course_id: int) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError("Course not found")
    return course


@router.get("", response_model=list[CourseOut])
def list_courses(category: Optional[str] = None, db: Session = Depends(get_db)):
    query = db.query(Course)
    if category:
        query = query.filter(Course.category == category)
    return [normalize_course(c) for c in query.order_by(Course.id).all()]


@router.get("/{course_id}", response_model=CourseOut)
def get_course(course_id: int, db: Session = Depends(get_db)):
    return normalize_course(_get_course(db, course_id))


@router.post("", response_model=CourseOut, status_code=201)
def create_course(
    payload: CourseWriteRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("university", "admin")),
):
    """Publish a course; university accounts become its instructor."""
    course = Course(
        title=payload.title,
        description=payload.description,
        price=to_money(payload.price),
        category=payload.category,
        thumbnail=payload.thumbnail,
        instructor_id=user.id if user.role == "university" else None,
        instructor_name=payload.instructor_name,
        modules=payload.modules,
    )
    db.add(course)
    db.commit()
    db.refresh(course)
    return normalize_course(course)


@router.put("/{course_id}", response_model=CourseOut)
def update_course(
    course_id: int,
    payload: CourseUpdateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("university", "admin")),
):
    course = _get_course(db, course_id)
    if user.role == "university" and course.instructor_id != user.id:
        raise PermissionDeniedError("Not authorized to edit this course")

    changes = payload.model_dump(exclude_unset=True)
    if "price" in changes and changes["price"] is not None:
        changes["price"] = to_money(changes["price"])
    for field, value in changes.items():
        setattr(course, field, value)

    db.commit()
    db.refresh(course)
    return normalize_course(course)

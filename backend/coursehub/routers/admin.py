# coursehub/routers/admin.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..access import Viewer, require_roles
from ..database import get_db
from ..errors import NotFound
from ..models import Course, Enrollment, Lecture, User, ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER
from ..schemas import StaffCreate
from .auth import create_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Admin"])

admin_only = require_roles(ROLE_ADMIN)


# --- Staff accounts ---

@router.post("/teachers")
def create_teacher(payload: StaffCreate, viewer: Viewer = Depends(admin_only), db: Session = Depends(get_db)):
    user = create_user(
        db, payload.name, payload.email, payload.password, ROLE_TEACHER,
        bio=payload.bio, specialization=payload.specialization,
    )
    return {"ok": True, "id": user.id}


@router.get("/teachers")
def list_teachers(viewer: Viewer = Depends(admin_only), db: Session = Depends(get_db)):
    rows = (
        db.query(
            User,
            func.count(func.distinct(Course.id)),
            func.count(func.distinct(Enrollment.user_id)),
        )
        .outerjoin(Course, Course.teacher_id == User.id)
        .outerjoin(Enrollment, Enrollment.course_id == Course.id)
        .filter(User.role == ROLE_TEACHER)
        .group_by(User.id)
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    teachers = []
    for user, course_count, student_count in rows:
        teachers.append({
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "bio": user.bio,
            "specialization": user.specialization,
            "created_at": user.created_at,
            "course_count": course_count,
            "student_count": student_count,
        })
    return {"teachers": teachers}


@router.delete("/teachers/{teacher_id}")
def delete_teacher(teacher_id: int, viewer: Viewer = Depends(admin_only), db: Session = Depends(get_db)):
    teacher = db.query(User).filter(User.id == teacher_id, User.role == ROLE_TEACHER).first()
    if not teacher:
        raise NotFound("Teacher not found")
    # Their courses and everything under them go too
    db.delete(teacher)
    db.commit()
    logger.info("Admin %s deleted teacher %s", viewer.id, teacher_id)
    return {"ok": True}


@router.post("/admins")
def create_admin(payload: StaffCreate, viewer: Viewer = Depends(admin_only), db: Session = Depends(get_db)):
    user = create_user(db, payload.name, payload.email, payload.password, ROLE_ADMIN)
    return {"ok": True, "id": user.id}


# --- Dashboards ---

@router.get("/admin/stats")
def admin_stats(viewer: Viewer = Depends(admin_only), db: Session = Depends(get_db)):
    return {
        "students": db.query(User).filter(User.role == ROLE_STUDENT).count(),
        "teachers": db.query(User).filter(User.role == ROLE_TEACHER).count(),
        "courses": db.query(Course).count(),
        "lectures": db.query(Lecture).count(),
    }


@router.get("/admin/recent-users")
def recent_users(viewer: Viewer = Depends(admin_only), db: Session = Depends(get_db)):
    users = (
        db.query(User)
        .filter(User.role.in_([ROLE_STUDENT, ROLE_TEACHER]))
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(10)
        .all()
    )
    return {"users": [
        {"name": u.name, "email": u.email, "role": u.role, "created_at": u.created_at}
        for u in users
    ]}


@router.get("/teacher/stats")
def teacher_stats(viewer: Viewer = Depends(require_roles(ROLE_TEACHER)), db: Session = Depends(get_db)):
    courses = db.query(Course).filter(Course.teacher_id == viewer.id).count()
    lectures = (
        db.query(Lecture)
        .join(Course, Course.id == Lecture.course_id)
        .filter(Course.teacher_id == viewer.id)
        .count()
    )
    students = (
        db.query(func.count(func.distinct(Enrollment.user_id)))
        .join(Course, Course.id == Enrollment.course_id)
        .filter(Course.teacher_id == viewer.id)
        .scalar()
    )
    return {"courses": courses, "lectures": lectures, "students": students or 0}

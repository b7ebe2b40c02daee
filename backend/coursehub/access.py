"""
Access control
The viewer is rebuilt from the session cookie on every request and passed
explicitly into handlers. Course-scoped operations declare a Policy and call
policy.check() before doing any work.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .database import get_db
from .errors import Forbidden, NotFound, Unauthorized
from .models import (
    Course, Enrollment, Lecture, GrandQuiz, GrandAssignment, User,
    ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER, ROLES,
)


@dataclass(frozen=True)
class Viewer:
    id: int
    name: str
    email: str
    role: str

    @property
    def is_student(self) -> bool:
        return self.role == ROLE_STUDENT

    @property
    def is_teacher(self) -> bool:
        return self.role == ROLE_TEACHER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (ROLE_TEACHER, ROLE_ADMIN)


def viewer_from_session(request: Request) -> Optional[Viewer]:
    data = request.session.get("user")
    if not data:
        return None
    return Viewer(id=data["id"], name=data["name"], email=data["email"], role=data["role"])


def current_viewer(request: Request, db: Session = Depends(get_db)) -> Viewer:
    """Dependency: the logged-in viewer, or 401.

    The account is re-read on every request, so a deleted user's cookie stops
    working and a changed role takes effect immediately.
    """
    viewer = viewer_from_session(request)
    if viewer is None:
        raise Unauthorized()
    user = db.query(User).filter(User.id == viewer.id).first()
    if user is None:
        request.session.clear()
        raise Unauthorized()
    return Viewer(id=user.id, name=user.name, email=user.email, role=user.role)


def require_roles(*roles):
    """Dependency factory for endpoints that are not scoped to one course."""

    def dependency(viewer: Viewer = Depends(current_viewer)) -> Viewer:
        if viewer.role not in roles:
            raise Forbidden()
        return viewer

    return dependency


def is_enrolled(db: Session, user_id: int, course_id: int) -> bool:
    return db.query(Enrollment.id).filter(
        Enrollment.user_id == user_id,
        Enrollment.course_id == course_id,
    ).first() is not None


@dataclass(frozen=True)
class Policy:
    """A capability: allowed roles plus the course relation each role needs.

    owner    -- teachers must own the course (admins always pass)
    enrolled -- students must have an enrollment row
    """

    roles: Tuple[str, ...]
    owner: bool = False
    enrolled: bool = False
    not_enrolled_message: str = "Not enrolled in this course"
    not_owner_message: str = "Forbidden"

    def check(self, db: Session, viewer: Viewer, course: Course) -> None:
        if viewer.role not in self.roles:
            raise Forbidden()
        if self.owner and viewer.is_teacher and course.teacher_id != viewer.id:
            raise Forbidden(self.not_owner_message)
        if self.enrolled and viewer.is_student and not is_enrolled(db, viewer.id, course.id):
            raise Forbidden(self.not_enrolled_message)


ALL_ROLES = ROLES

# Create, edit and delete course content
AUTHOR = Policy(roles=(ROLE_TEACHER, ROLE_ADMIN), owner=True)
# Only the owning teacher rearranges the sequence
REORDER = Policy(roles=(ROLE_TEACHER,), owner=True)
# Course overview: teachers may browse any course
VIEW_COURSE = Policy(roles=ALL_ROLES, enrolled=True)
# Lecture and grand content detail: teachers only see their own
VIEW_CONTENT = Policy(roles=ALL_ROLES, owner=True, enrolled=True, not_owner_message="Access denied")
# Progress and submissions
STUDY = Policy(roles=(ROLE_STUDENT,), enrolled=True)


# --- Loaders ---

def get_course_or_404(db: Session, course_id: int) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFound("Course not found")
    return course


def get_lecture_or_404(db: Session, lecture_id: int) -> Lecture:
    lecture = db.query(Lecture).filter(Lecture.id == lecture_id).first()
    if not lecture:
        raise NotFound("Lecture not found")
    return lecture


def get_grand_quiz_or_404(db: Session, quiz_id: int) -> GrandQuiz:
    quiz = db.query(GrandQuiz).filter(GrandQuiz.id == quiz_id).first()
    if not quiz:
        raise NotFound("Quiz not found")
    return quiz


def get_grand_assignment_or_404(db: Session, assignment_id: int) -> GrandAssignment:
    assignment = db.query(GrandAssignment).filter(GrandAssignment.id == assignment_id).first()
    if not assignment:
        raise NotFound("Assignment not found")
    return assignment


def authorized_course(db: Session, viewer: Viewer, course_id: int, policy: Policy) -> Course:
    course = get_course_or_404(db, course_id)
    policy.check(db, viewer, course)
    return course


# coursehub/seed_data.py
import json
import logging

from sqlalchemy.orm import Session

from . import config
from .models import (
    User, Course, Lecture, LectureResource, LectureQuiz, LectureAssignment,
    GrandQuiz, GrandAssignment, Enrollment, ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER,
)
from .security import hash_password

logger = logging.getLogger(__name__)


def seed_admin(db: Session):
    """Create the configured admin account if it does not exist yet."""
    email = config.ADMIN_EMAIL.lower()
    admin = db.query(User).filter(User.email == email).first()
    if admin:
        return admin
    admin = User(name="Admin", email=email, password_hash=hash_password(config.ADMIN_PASSWORD), role=ROLE_ADMIN)
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("Seeded admin account %s", email)
    return admin


def _user(db, name, email, role, password):
    user = db.query(User).filter(User.email == email).first()
    if not user:
        user = User(name=name, email=email, password_hash=hash_password(password), role=role)
        db.add(user)
        db.flush()
    return user


def seed_demo(db: Session):
    """A teacher, a student and one enrolled course with mixed content."""
    seed_admin(db)
    teacher = _user(db, "Demo Teacher", "teacher@example.com", ROLE_TEACHER, "Teacher123!")
    student = _user(db, "Demo Student", "student@example.com", ROLE_STUDENT, "Student123!")

    # --- Course ---
    course = Course(
        title="Python for Data Analysis",
        description="Python and the core data libraries: NumPy, Pandas, Matplotlib.",
        teacher_id=teacher.id,
        projected_hours=12,
        is_free=True,
        is_published=True,
    )
    db.add(course)
    db.flush()

    # --- Lectures, with a grand quiz and assignment between them ---
    lectures_data = [
        {"title": "Python and Jupyter", "description": "Installing Python, pip and Jupyter.", "order_index": 0},
        {"title": "NumPy", "description": "Arrays, indexing and vectorised math.", "order_index": 1},
        {"title": "Pandas", "description": "DataFrame, Series and reading CSV files.", "order_index": 3},
        {"title": "Visualisation", "description": "Plotting with Matplotlib.", "order_index": 4},
    ]
    lectures = []
    for data in lectures_data:
        lecture = Lecture(course_id=course.id, **data)
        db.add(lecture)
        lectures.append(lecture)
    db.flush()

    db.add(LectureResource(lecture_id=lectures[0].id, name="Setup notes", text_content="pip install jupyter"))
    db.add(LectureQuiz(
        lecture_id=lectures[1].id,
        title="NumPy basics",
        content_json=json.dumps([
            {"question": "Which call creates an array of zeros?",
             "options": ["np.zeros", "np.empty", "np.array"], "correct_answer": 0},
        ]),
    ))
    db.add(LectureAssignment(
        lecture_id=lectures[2].id,
        title="Load a CSV",
        description="Load a CSV, print the first five rows and filter by a condition.",
    ))
    db.add(GrandQuiz(
        course_id=course.id,
        title="Midterm quiz",
        description="Python and NumPy fundamentals.",
        order_index=2,
        content_json=json.dumps([
            {"question": "What does len([1, 2, 3]) return?", "options": ["2", "3", "4"], "correct_answer": 1},
            {"question": "Which library provides DataFrame?", "options": ["NumPy", "Pandas"], "correct_answer": 1},
        ]),
    ))
    db.add(GrandAssignment(
        course_id=course.id,
        title="Final project",
        description="Full analysis cycle: load, clean, visualise, conclude.",
        order_index=5,
    ))
    db.add(Enrollment(user_id=student.id, course_id=course.id))
    db.commit()
    logger.info("Seeded demo course %s for %s", course.id, student.email)
    return course


if __name__ == "__main__":
    from .database import SessionLocal, init_db

    logging.basicConfig(level=config.LOG_LEVEL)
    init_db()
    db = SessionLocal()
    try:
        seed_demo(db)
    finally:
        db.close()

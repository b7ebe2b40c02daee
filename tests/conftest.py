import os
import tempfile

# Must be set before coursehub is imported
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MEDIA_DIR"] = tempfile.mkdtemp(prefix="coursehub-media-")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coursehub import database
from coursehub.database import get_db, init_db
from coursehub.main import app
from coursehub.models import (
    Course, Enrollment, Lecture, GrandQuiz, GrandAssignment, User,
    ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER,
)
from coursehub.security import hash_password

PASSWORD = "secret123"


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Log a user in on a fresh client sharing the same database."""

    def _login(user):
        c = TestClient(app)
        response = c.post("/api/login", json={"email": user.email, "password": PASSWORD})
        assert response.status_code == 200, response.text
        return c

    return _login


# --- Factories ---

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=ROLE_STUDENT, name=None):
        counter["n"] += 1
        user = User(
            name=name or f"{role.title()} {counter['n']}",
            email=f"{role}{counter['n']}@example.com",
            password_hash=hash_password(PASSWORD),
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def teacher(make_user):
    return make_user(ROLE_TEACHER)


@pytest.fixture
def student(make_user):
    return make_user(ROLE_STUDENT)


@pytest.fixture
def admin(make_user):
    return make_user(ROLE_ADMIN)


@pytest.fixture
def make_course(db):
    def _make(teacher, title="Course", **fields):
        course = Course(title=title, teacher_id=teacher.id, **fields)
        db.add(course)
        db.commit()
        db.refresh(course)
        return course

    return _make


@pytest.fixture
def enroll(db):
    def _enroll(user, course):
        db.add(Enrollment(user_id=user.id, course_id=course.id))
        db.commit()

    return _enroll


@pytest.fixture
def sample_course(db, teacher, make_course):
    """L1 (order 0), Q1 (order 1), L2 (order 2)."""
    course = make_course(teacher, title="Sequenced")
    l1 = Lecture(course_id=course.id, title="L1", order_index=0)
    q1 = GrandQuiz(
        course_id=course.id, title="Q1", order_index=1,
        content_json='[{"question": "2+2?", "options": ["3", "4"], "correct_answer": 1}]',
    )
    l2 = Lecture(course_id=course.id, title="L2", order_index=2)
    db.add_all([l1, q1, l2])
    db.commit()
    for row in (course, l1, q1, l2):
        db.refresh(row)
    return {"course": course, "l1": l1, "q1": q1, "l2": l2}


@pytest.fixture
def grand_assignment(db, sample_course):
    assignment = GrandAssignment(course_id=sample_course["course"].id, title="A1", order_index=3)
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    return assignment


@pytest.fixture
def concurrent_insert(monkeypatch):
    """Call to make the next unique-row lookup miss a row another request already wrote."""

    def arm():
        real = database.find_unique
        calls = {"n": 0}

        def find_unique(db, model, keys):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real(db, model, keys)

        monkeypatch.setattr(database, "find_unique", find_unique)

    return arm

# coursehub/models.py
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Float, ForeignKey, Boolean, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime

ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"
ROLE_ADMIN = "admin"
ROLES = (ROLE_STUDENT, ROLE_TEACHER, ROLE_ADMIN)


class _Base:
    # Columns the JSON API never returns
    __hidden__ = ()

    def to_dict(self):
        return {
            c.name: getattr(self, c.name)
            for c in self.__table__.columns
            if c.name not in self.__hidden__
        }


Base = declarative_base(cls=_Base)


class User(Base):
    __tablename__ = "users"
    __hidden__ = ("password_hash",)
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)  # always lower-case
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False)  # "student", "teacher" or "admin"
    bio = Column(Text, nullable=True)
    specialization = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # A teacher owns many courses
    courses = relationship("Course", back_populates="teacher", cascade="all, delete-orphan")
    enrollments = relationship("Enrollment", back_populates="student", cascade="all, delete-orphan")
    progress = relationship("StudentProgress", back_populates="student", cascade="all, delete-orphan")
    quiz_submissions = relationship("GrandQuizSubmission", back_populates="student", cascade="all, delete-orphan")
    assignment_submissions = relationship(
        "GrandAssignmentSubmission", back_populates="student", cascade="all, delete-orphan"
    )
    lecture_submissions = relationship(
        "LectureAssignmentSubmission", back_populates="student", cascade="all, delete-orphan"
    )

    def session_payload(self):
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


class Course(Base):
    __tablename__ = "courses"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    video_url = Column(String, default="")
    thumbnail_url = Column(String, nullable=True)
    teacher_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    projected_hours = Column(Float, nullable=True)
    total_lectures = Column(Integer, default=0)
    # Pricing
    price = Column(Float, default=0)
    payment_type = Column(String, default="one_time")
    monthly_payment_month = Column(String, nullable=True)
    is_free = Column(Boolean, default=True)
    launch_date = Column(String, nullable=True)
    is_published = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    teacher = relationship("User", back_populates="courses")
    lectures = relationship("Lecture", back_populates="course", cascade="all, delete-orphan")
    grand_quizzes = relationship("GrandQuiz", back_populates="course", cascade="all, delete-orphan")
    grand_assignments = relationship("GrandAssignment", back_populates="course", cascade="all, delete-orphan")
    enrollments = relationship("Enrollment", back_populates="course", cascade="all, delete-orphan")


class Lecture(Base):
    __tablename__ = "lectures"
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    video_url = Column(String, default="")
    order_index = Column(Integer, default=0)  # position in the course sequence
    lecture_date = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    course = relationship("Course", back_populates="lectures")
    resources = relationship(
        "LectureResource", back_populates="lecture", cascade="all, delete-orphan",
        order_by="LectureResource.created_at",
    )
    # One quiz and one assignment per lecture
    quiz = relationship("LectureQuiz", back_populates="lecture", uselist=False, cascade="all, delete-orphan")
    assignment = relationship(
        "LectureAssignment", back_populates="lecture", uselist=False, cascade="all, delete-orphan"
    )
    progress = relationship("StudentProgress", back_populates="lecture", cascade="all, delete-orphan")


class LectureResource(Base):
    __tablename__ = "lecture_resources"
    id = Column(Integer, primary_key=True, index=True)
    lecture_id = Column(Integer, ForeignKey("lectures.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    file_url = Column(String, nullable=True)
    text_content = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    lecture = relationship("Lecture", back_populates="resources")


class LectureQuiz(Base):
    __tablename__ = "lecture_quizzes"
    id = Column(Integer, primary_key=True, index=True)
    lecture_id = Column(Integer, ForeignKey("lectures.id", ondelete="CASCADE"), nullable=False, unique=True)
    title = Column(String, nullable=False)
    content_json = Column(Text, nullable=True)  # JSON list of questions
    is_live = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    lecture = relationship("Lecture", back_populates="quiz")


class LectureAssignment(Base):
    __tablename__ = "lecture_assignments"
    id = Column(Integer, primary_key=True, index=True)
    lecture_id = Column(Integer, ForeignKey("lectures.id", ondelete="CASCADE"), nullable=False, unique=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    file_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    lecture = relationship("Lecture", back_populates="assignment")
    submissions = relationship(
        "LectureAssignmentSubmission", back_populates="assignment", cascade="all, delete-orphan"
    )


class LectureAssignmentSubmission(Base):
    __tablename__ = "lecture_assignment_submissions"
    __table_args__ = (UniqueConstraint("assignment_id", "student_id"),)
    id = Column(Integer, primary_key=True, index=True)
    assignment_id = Column(Integer, ForeignKey("lecture_assignments.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    file_url = Column(String, nullable=False)
    submitted_at = Column(DateTime, default=datetime.utcnow)

    assignment = relationship("LectureAssignment", back_populates="submissions")
    student = relationship("User", back_populates="lecture_submissions")


class GrandQuiz(Base):
    __tablename__ = "grand_quizzes"
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    content_json = Column(Text, nullable=True)  # JSON list of questions
    is_live = Column(Boolean, default=True)
    order_index = Column(Integer, default=0)
    is_required = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    course = relationship("Course", back_populates="grand_quizzes")
    submissions = relationship("GrandQuizSubmission", back_populates="quiz", cascade="all, delete-orphan")


class GrandAssignment(Base):
    __tablename__ = "grand_assignments"
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    file_url = Column(String, nullable=True)
    order_index = Column(Integer, default=0)
    is_required = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    course = relationship("Course", back_populates="grand_assignments")
    submissions = relationship(
        "GrandAssignmentSubmission", back_populates="assignment", cascade="all, delete-orphan"
    )


class GrandQuizSubmission(Base):
    __tablename__ = "grand_quiz_submissions"
    __table_args__ = (UniqueConstraint("quiz_id", "student_id"),)
    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("grand_quizzes.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    answers_json = Column(Text, nullable=True)
    score = Column(Float, default=0)
    submitted_at = Column(DateTime, default=datetime.utcnow)

    quiz = relationship("GrandQuiz", back_populates="submissions")
    student = relationship("User", back_populates="quiz_submissions")


class GrandAssignmentSubmission(Base):
    __tablename__ = "grand_assignment_submissions"
    __table_args__ = (UniqueConstraint("assignment_id", "student_id"),)
    id = Column(Integer, primary_key=True, index=True)
    assignment_id = Column(Integer, ForeignKey("grand_assignments.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    file_url = Column(String, nullable=False)
    submitted_at = Column(DateTime, default=datetime.utcnow)

    assignment = relationship("GrandAssignment", back_populates="submissions")
    student = relationship("User", back_populates="assignment_submissions")


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    student = relationship("User", back_populates="enrollments")
    course = relationship("Course", back_populates="enrollments")


class StudentProgress(Base):
    __tablename__ = "student_progress"
    __table_args__ = (UniqueConstraint("user_id", "lecture_id"),)
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    lecture_id = Column(Integer, ForeignKey("lectures.id", ondelete="CASCADE"), nullable=False)
    completed = Column(Boolean, default=False)
    completion_percentage = Column(Float, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student = relationship("User", back_populates="progress")
    lecture = relationship("Lecture", back_populates="progress")

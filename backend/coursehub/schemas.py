# coursehub/schemas.py
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class _Body(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        # HTML forms send "" for untouched inputs
        if isinstance(value, str) and not value.strip():
            return None
        return value


# --- Accounts ---

class RegisterIn(_Body):
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginIn(_Body):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class StaffCreate(_Body):
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    bio: Optional[str] = None
    specialization: Optional[str] = None


# --- Courses ---

class CourseCreate(_Body):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    video_url: Optional[str] = None
    projected_hours: Optional[float] = None
    price: Optional[float] = None
    payment_type: Optional[str] = None
    monthly_payment_month: Optional[str] = None
    is_free: Optional[bool] = None
    launch_date: Optional[str] = None
    is_published: Optional[bool] = None
    # Admins may create a course on behalf of a teacher
    teacher_id: Optional[int] = None


class CourseUpdate(_Body):
    title: Optional[str] = None
    description: Optional[str] = None
    projected_hours: Optional[float] = None
    total_lectures: Optional[int] = None
    price: Optional[float] = None
    payment_type: Optional[str] = None
    monthly_payment_month: Optional[str] = None
    is_free: Optional[bool] = None
    launch_date: Optional[str] = None
    is_published: Optional[bool] = None


class EnrollIn(BaseModel):
    course_id: int


class ReorderItem(BaseModel):
    type: Literal["lecture", "grand_quiz", "grand_assignment"]
    id: int
    order: int


class ReorderIn(BaseModel):
    items: List[ReorderItem] = Field(min_length=1)


# --- Lectures ---

class LectureUpdate(_Body):
    title: Optional[str] = None
    description: Optional[str] = None
    lecture_date: Optional[str] = None


class LectureQuizIn(_Body):
    title: str = Field(min_length=1)
    # Either raw JSON text or an already decoded question list
    content_json: Union[str, List[Any]]


class LectureAssignmentIn(_Body):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    file_url: Optional[str] = None


class CompleteIn(BaseModel):
    completion_percentage: float = Field(default=100, ge=0, le=100)


# --- Grand content ---

class GrandQuizCreate(_Body):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    questions: List[Any] = Field(min_length=1)
    order_index: Optional[int] = None


class GrandQuizUpdate(_Body):
    title: Optional[str] = None
    description: Optional[str] = None
    questions: Optional[List[Any]] = Field(default=None, min_length=1)
    order_index: Optional[int] = None


class GrandAssignmentCreate(_Body):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    file_url: Optional[str] = None
    order_index: Optional[int] = None


class GrandAssignmentUpdate(_Body):
    title: Optional[str] = None
    description: Optional[str] = None
    file_url: Optional[str] = None
    order_index: Optional[int] = None


class QuizSubmitIn(BaseModel):
    answers: Any = None

# coursehub/routers/courses.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..access import (
    AUTHOR, REORDER, STUDY, Viewer, authorized_course, current_viewer,
    get_course_or_404, require_roles,
)
from ..database import get_db, upsert
from ..errors import BadRequest, NotFound
from ..models import (
    Course, Enrollment, Lecture, LectureAssignment, LectureQuiz, User,
    GrandQuiz, GrandAssignment, StudentProgress,
    ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER,
)
from ..schemas import CourseCreate, CourseUpdate, EnrollIn, ReorderIn
from ..sequencing import sequence_course
from .. import uploads

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Courses"])

STAFF = (ROLE_TEACHER, ROLE_ADMIN)


def owner_id_for(db: Session, viewer: Viewer, requested_teacher_id: Optional[int]) -> int:
    """Teachers always own what they create; admins may assign a teacher."""
    if viewer.is_teacher or not requested_teacher_id:
        return viewer.id
    teacher = db.query(User).filter(User.id == requested_teacher_id, User.role == ROLE_TEACHER).first()
    if not teacher:
        raise BadRequest("teacher_id must reference a teacher")
    return teacher.id


def course_with_teacher(course: Course, teacher_name: Optional[str]) -> dict:
    row = course.to_dict()
    row["teacher_name"] = teacher_name
    return row


# --- Listings ---

@router.get("/public-courses")
def public_courses(db: Session = Depends(get_db)):
    lecture_count = (
        select(func.count(Lecture.id))
        .where(Lecture.course_id == Course.id)
        .scalar_subquery()
    )
    assignment_count = (
        select(func.count(LectureAssignment.id))
        .join(Lecture, Lecture.id == LectureAssignment.lecture_id)
        .where(Lecture.course_id == Course.id)
        .scalar_subquery()
    )
    quiz_count = (
        select(func.count(LectureQuiz.id))
        .join(Lecture, Lecture.id == LectureQuiz.lecture_id)
        .where(Lecture.course_id == Course.id)
        .scalar_subquery()
    )
    rows = (
        db.query(Course, User.name, lecture_count, assignment_count, quiz_count)
        .join(User, User.id == Course.teacher_id)
        .order_by(Course.created_at.desc(), Course.id.desc())
        .all()
    )
    courses = []
    for course, teacher_name, lectures, assignments, quizzes in rows:
        courses.append({
            "id": course.id,
            "title": course.title,
            "description": course.description,
            "thumbnail_url": course.thumbnail_url,
            "projected_hours": course.projected_hours,
            "price": course.price,
            "payment_type": course.payment_type,
            "is_free": course.is_free,
            "teacher_name": teacher_name,
            "lecture_count": lectures,
            "assignment_count": assignments,
            "quiz_count": quizzes,
        })
    return {"courses": courses}


@router.get("/courses")
def list_courses(viewer: Viewer = Depends(require_roles(*STAFF)), db: Session = Depends(get_db)):
    rows = db.query(Course.id, Course.title).order_by(Course.created_at.desc(), Course.id.desc()).all()
    return {"courses": [{"id": course_id, "title": title} for course_id, title in rows]}


@router.get("/my-courses")
def my_courses(viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    query = db.query(Course, User.name).join(User, User.id == Course.teacher_id)
    if viewer.is_student:
        query = (
            query.join(Enrollment, Enrollment.course_id == Course.id)
            .filter(Enrollment.user_id == viewer.id)
            .order_by(Enrollment.created_at.desc(), Enrollment.id.desc())
        )
    elif viewer.is_teacher:
        query = query.filter(Course.teacher_id == viewer.id).order_by(Course.created_at.desc(), Course.id.desc())
    else:
        query = query.order_by(Course.created_at.desc(), Course.id.desc())
    return {"courses": [course_with_teacher(course, name) for course, name in query.all()]}


# --- Authoring ---

def _create_course(db: Session, viewer: Viewer, payload: CourseCreate) -> Course:
    course = Course(
        title=payload.title,
        description=payload.description or "",
        video_url=payload.video_url or "",
        teacher_id=owner_id_for(db, viewer, payload.teacher_id),
        projected_hours=payload.projected_hours,
        price=payload.price if payload.price is not None else 0,
        payment_type=payload.payment_type or "one_time",
        monthly_payment_month=payload.monthly_payment_month,
        is_free=payload.is_free if payload.is_free is not None else True,
        launch_date=payload.launch_date,
        is_published=bool(payload.is_published),
    )
    db.add(course)
    db.commit()
    db.refresh(course)
    logger.info("User %s created course %s", viewer.id, course.id)
    return course


@router.post("/courses")
def create_course(
    payload: CourseCreate,
    viewer: Viewer = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
):
    course = _create_course(db, viewer, payload)
    return {"ok": True, "id": course.id}


@router.post("/courses/basic")
@router.post("/courses/create-initial")
def create_course_basic(
    payload: CourseCreate,
    viewer: Viewer = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
):
    course = _create_course(db, viewer, payload)
    return {"ok": True, "id": course.id}


@router.post("/courses/upload")
def create_course_with_video(
    title: str = Form(""),
    description: str = Form(""),
    projected_hours: Optional[float] = Form(None),
    teacher_id: Optional[int] = Form(None),
    video: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
):
    if not title.strip():
        raise BadRequest("Title required")
    if video is None:
        raise BadRequest("Video file required")

    stored = uploads.save_upload(video, uploads.VIDEO, "video")
    try:
        course = Course(
            title=title,
            description=description,
            video_url=stored.url,
            teacher_id=owner_id_for(db, viewer, teacher_id),
            projected_hours=projected_hours,
        )
        db.add(course)
        db.flush()
        # Every uploaded course starts with its video as the first lecture
        db.add(Lecture(
            course_id=course.id, title=title, description=description,
            video_url=stored.url, order_index=0,
        ))
        db.commit()
    except Exception:
        db.rollback()
        uploads.discard([stored])
        raise
    return {"ok": True, "id": course.id, "video_url": stored.url}


@router.post("/courses/{course_id}/thumbnail")
def upload_thumbnail(
    course_id: int,
    image: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    course = authorized_course(db, viewer, course_id, AUTHOR)
    if image is None:
        raise BadRequest("Image file required")
    stored = uploads.save_upload(image, uploads.IMAGE, "image")
    previous = course.thumbnail_url
    course.thumbnail_url = stored.url
    try:
        db.commit()
    except Exception:
        db.rollback()
        uploads.discard([stored])
        raise
    uploads.delete_media(previous)
    return {"ok": True, "thumbnail_url": stored.url}


@router.get("/courses/{course_id}")
def get_course(course_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    course = get_course_or_404(db, course_id)
    return sequence_course(db, course, viewer)


@router.put("/courses/{course_id}")
def update_course(
    course_id: int,
    payload: CourseUpdate,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    course = authorized_course(db, viewer, course_id, AUTHOR)
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise BadRequest("Nothing to update")
    if updates.get("title") is None:
        updates.pop("title", None)
    if "description" in updates:
        updates["description"] = updates["description"] or ""
    if "price" in updates and updates["price"] is None:
        updates["price"] = 0
    if "payment_type" in updates and updates["payment_type"] is None:
        updates["payment_type"] = "one_time"
    if "is_free" in updates and updates["is_free"] is None:
        updates["is_free"] = True
    for key, value in updates.items():
        setattr(course, key, value)
    db.commit()
    return {"ok": True}


@router.delete("/courses/{course_id}")
def delete_course(course_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    course = authorized_course(db, viewer, course_id, AUTHOR)
    media = [course.video_url, course.thumbnail_url] + [lecture.video_url for lecture in course.lectures]
    db.delete(course)
    db.commit()
    for url in media:
        uploads.delete_media(url)
    logger.info("User %s deleted course %s", viewer.id, course_id)
    return {"ok": True}


REORDERABLE = {
    "lecture": Lecture,
    "grand_quiz": GrandQuiz,
    "grand_assignment": GrandAssignment,
}


@router.put("/courses/{course_id}/reorder-content")
def reorder_content(
    course_id: int,
    payload: ReorderIn,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    course = authorized_course(db, viewer, course_id, REORDER)
    # All or nothing: one missing row rolls back every earlier update
    try:
        for item in payload.items:
            model = REORDERABLE[item.type]
            updated = (
                db.query(model)
                .filter(model.id == item.id, model.course_id == course.id)
                .update({model.order_index: item.order}, synchronize_session=False)
            )
            if not updated:
                raise NotFound(f"{item.type} {item.id} not found in this course")
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"ok": True}


# --- Students ---

@router.post("/enroll")
def enroll(
    payload: EnrollIn,
    viewer: Viewer = Depends(require_roles(ROLE_STUDENT)),
    db: Session = Depends(get_db),
):
    course = get_course_or_404(db, payload.course_id)
    # Enrolling twice is a no-op
    upsert(db, Enrollment, keys={"user_id": viewer.id, "course_id": course.id}, values={})
    return {"ok": True}


@router.get("/courses/{course_id}/progress")
def course_progress(course_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    course = authorized_course(db, viewer, course_id, STUDY)
    lectures = (
        db.query(Lecture)
        .filter(Lecture.course_id == course.id)
        .order_by(Lecture.order_index.asc(), Lecture.created_at.asc())
        .all()
    )
    rows = db.query(StudentProgress).filter(
        StudentProgress.user_id == viewer.id,
        StudentProgress.lecture_id.in_([lecture.id for lecture in lectures]),
    ).all() if lectures else []
    by_lecture = {row.lecture_id: row for row in rows}

    progress = []
    for lecture in lectures:
        row = by_lecture.get(lecture.id)
        progress.append({
            "lecture_id": lecture.id,
            "title": lecture.title,
            "completed": bool(row and row.completed),
            "completion_percentage": row.completion_percentage if row else 0,
        })
    return {"progress": progress}

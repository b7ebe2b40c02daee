# coursehub/routers/lectures.py
import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from ..access import (
    AUTHOR, STUDY, VIEW_CONTENT, Policy, Viewer, current_viewer,
    get_course_or_404, get_lecture_or_404, require_roles,
)
from ..database import get_db, upsert
from ..errors import BadRequest, Forbidden, NotFound
from ..grading import public_questions, quiz_questions
from ..models import (
    Lecture, LectureAssignment, LectureAssignmentSubmission, LectureQuiz, LectureResource,
    StudentProgress, ROLE_ADMIN, ROLE_TEACHER,
)
from ..schemas import CompleteIn, LectureAssignmentIn, LectureQuizIn, LectureUpdate
from ..sequencing import LECTURE, is_item_locked
from .. import uploads

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Lectures"])

LOCKED_MESSAGE = "Previous content must be completed first"


def as_int(value, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def authorized_lecture(db: Session, viewer: Viewer, lecture_id: int, policy: Policy):
    lecture = get_lecture_or_404(db, lecture_id)
    course = lecture.course
    policy.check(db, viewer, course)
    return lecture, course


def ensure_unlocked(db: Session, viewer: Viewer, lecture: Lecture) -> None:
    if is_item_locked(db, lecture.course, viewer, LECTURE, lecture.id):
        raise Forbidden(LOCKED_MESSAGE)


def _course_for_upload(db: Session, viewer: Viewer, course_id: str, title: str):
    course_pk = as_int(course_id)
    if course_pk is None or not title.strip():
        raise BadRequest("course_id and title required")
    course = get_course_or_404(db, course_pk)
    AUTHOR.check(db, viewer, course)
    return course


# --- Creating lectures ---

@router.post("/lectures/upload")
def upload_lecture(
    course_id: str = Form(""),
    title: str = Form(""),
    description: str = Form(""),
    order_index: str = Form(""),
    lecture_date: str = Form(""),
    video: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(require_roles(ROLE_TEACHER, ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    course = _course_for_upload(db, viewer, course_id, title)
    if video is None:
        raise BadRequest("Video file required")

    stored = uploads.save_upload(video, uploads.VIDEO, "video")
    lecture = Lecture(
        course_id=course.id,
        title=title,
        description=description,
        video_url=stored.url,
        order_index=as_int(order_index, 0),
        lecture_date=lecture_date or None,
    )
    db.add(lecture)
    try:
        db.commit()
    except Exception:
        db.rollback()
        uploads.discard([stored])
        raise
    return {"ok": True, "id": lecture.id, "video_url": stored.url}


@router.post("/lectures/upload-with-resource")
def upload_lecture_with_resource(
    course_id: str = Form(""),
    title: str = Form(""),
    description: str = Form(""),
    order_index: str = Form(""),
    lecture_date: str = Form(""),
    resource_name: str = Form(""),
    video: Optional[UploadFile] = File(None),
    resource: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(require_roles(ROLE_TEACHER, ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    course = _course_for_upload(db, viewer, course_id, title)
    if video is None:
        raise BadRequest("Video file required")

    stored = [uploads.save_upload(video, uploads.MIXED, "video")]
    try:
        if resource is not None and resource.filename:
            stored.append(uploads.save_upload(resource, uploads.MIXED, "resource"))

        lecture = Lecture(
            course_id=course.id,
            title=title,
            description=description,
            video_url=stored[0].url,
            order_index=as_int(order_index, 0),
            lecture_date=lecture_date or None,
        )
        db.add(lecture)
        db.flush()
        if len(stored) > 1:
            db.add(LectureResource(
                lecture_id=lecture.id,
                name=resource_name or stored[1].original_name,
                file_url=stored[1].url,
            ))
        db.commit()
    except Exception:
        # Neither the lecture nor its files survive a failure
        db.rollback()
        uploads.discard(stored)
        raise
    return {"ok": True, "id": lecture.id, "video_url": stored[0].url}


# --- Lecture detail ---

@router.get("/lectures/{lecture_id}")
def get_lecture(lecture_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    lecture, course = authorized_lecture(db, viewer, lecture_id, VIEW_CONTENT)
    if viewer.is_student:
        ensure_unlocked(db, viewer, lecture)
    out = lecture.to_dict()
    out["course_title"] = course.title
    out["teacher_id"] = course.teacher_id
    return {"lecture": out}


@router.put("/lectures/{lecture_id}")
def update_lecture(
    lecture_id: int,
    payload: LectureUpdate,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    lecture, _ = authorized_lecture(db, viewer, lecture_id, AUTHOR)
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not updates:
        raise BadRequest("Nothing to update")
    for key, value in updates.items():
        setattr(lecture, key, value)
    db.commit()
    return {"ok": True}


@router.delete("/lectures/{lecture_id}")
def delete_lecture(lecture_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    lecture, _ = authorized_lecture(db, viewer, lecture_id, AUTHOR)
    media = [lecture.video_url] + [resource.file_url for resource in lecture.resources]
    db.delete(lecture)
    db.commit()
    for url in media:
        uploads.delete_media(url)
    return {"ok": True}


# --- Resources ---

@router.get("/lectures/{lecture_id}/resources")
def list_resources(lecture_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    lecture, _ = authorized_lecture(db, viewer, lecture_id, VIEW_CONTENT)
    resources = (
        db.query(LectureResource)
        .filter(LectureResource.lecture_id == lecture.id)
        .order_by(LectureResource.created_at.asc())
        .all()
    )
    return {"resources": [resource.to_dict() for resource in resources]}


@router.post("/lectures/{lecture_id}/resources")
def add_resource(
    lecture_id: int,
    name: str = Form(""),
    text_content: str = Form(""),
    resource: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    lecture, _ = authorized_lecture(db, viewer, lecture_id, AUTHOR)
    if resource is None and not text_content:
        raise BadRequest("Resource file or text required")

    stored = uploads.save_upload(resource, uploads.RESOURCE, "resource") if resource is not None else None
    item = LectureResource(
        lecture_id=lecture.id,
        name=name or (stored.original_name if stored else "Notes"),
        file_url=stored.url if stored else None,
        text_content=text_content or None,
    )
    db.add(item)
    try:
        db.commit()
    except Exception:
        db.rollback()
        if stored:
            uploads.discard([stored])
        raise
    return {"ok": True, "id": item.id, "file_url": item.file_url}


# --- Quiz ---

@router.get("/lectures/{lecture_id}/quiz")
def get_quiz(lecture_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    lecture, _ = authorized_lecture(db, viewer, lecture_id, VIEW_CONTENT)
    quiz = db.query(LectureQuiz).filter(LectureQuiz.lecture_id == lecture.id).first()
    if not quiz:
        return {"quiz": None}
    out = quiz.to_dict()
    questions = quiz_questions(quiz.content_json)
    out["questions"] = public_questions(questions) if viewer.is_student else questions
    if viewer.is_student:
        out.pop("content_json")
    return {"quiz": out}


@router.post("/lectures/{lecture_id}/quiz")
def save_quiz(
    lecture_id: int,
    payload: LectureQuizIn,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    lecture, _ = authorized_lecture(db, viewer, lecture_id, AUTHOR)
    content_json = payload.content_json
    if not isinstance(content_json, str):
        content_json = json.dumps(content_json)

    quiz = db.query(LectureQuiz).filter(LectureQuiz.lecture_id == lecture.id).first()
    if quiz:
        quiz.title = payload.title
        quiz.content_json = content_json
    else:
        quiz = LectureQuiz(lecture_id=lecture.id, title=payload.title, content_json=content_json)
        db.add(quiz)
    db.commit()
    return {"ok": True, "id": quiz.id}


# --- Assignment ---

@router.get("/lectures/{lecture_id}/assignment")
def get_assignment(lecture_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    lecture, _ = authorized_lecture(db, viewer, lecture_id, VIEW_CONTENT)
    assignment = db.query(LectureAssignment).filter(LectureAssignment.lecture_id == lecture.id).first()
    if not assignment:
        return {"assignment": None}
    out = assignment.to_dict()
    if viewer.is_student:
        submission = db.query(LectureAssignmentSubmission).filter(
            LectureAssignmentSubmission.assignment_id == assignment.id,
            LectureAssignmentSubmission.student_id == viewer.id,
        ).first()
        out["submission"] = submission.to_dict() if submission else None
    return {"assignment": out}


@router.post("/lectures/{lecture_id}/assignment")
def save_assignment(
    lecture_id: int,
    payload: LectureAssignmentIn,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    lecture, _ = authorized_lecture(db, viewer, lecture_id, AUTHOR)
    assignment = db.query(LectureAssignment).filter(LectureAssignment.lecture_id == lecture.id).first()
    if assignment:
        assignment.title = payload.title
        assignment.description = payload.description or ""
        assignment.file_url = payload.file_url
    else:
        assignment = LectureAssignment(
            lecture_id=lecture.id,
            title=payload.title,
            description=payload.description or "",
            file_url=payload.file_url,
        )
        db.add(assignment)
    db.commit()
    logger.info("Saved assignment %s for lecture %s", assignment.id, lecture.id)
    return {"ok": True, "id": assignment.id}


@router.post("/assignments/{assignment_id}/submit")
def submit_assignment(
    assignment_id: int,
    file: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    assignment = db.query(LectureAssignment).filter(LectureAssignment.id == assignment_id).first()
    if not assignment:
        raise NotFound("Assignment not found")
    STUDY.check(db, viewer, assignment.lecture.course)
    if file is None:
        raise BadRequest("File required")

    stored = uploads.save_upload(file, uploads.RESOURCE, "file")
    try:
        _, previous = upsert(
            db, LectureAssignmentSubmission,
            keys={"assignment_id": assignment.id, "student_id": viewer.id},
            values={"file_url": stored.url, "submitted_at": datetime.utcnow()},
        )
    except Exception:
        db.rollback()
        uploads.discard([stored])
        raise
    if previous:
        uploads.delete_media(previous["file_url"])
    return {"ok": True, "file_url": stored.url}


# --- Progress ---

@router.post("/lectures/{lecture_id}/complete")
def complete_lecture(
    lecture_id: int,
    payload: Optional[CompleteIn] = None,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    lecture, _ = authorized_lecture(db, viewer, lecture_id, STUDY)
    ensure_unlocked(db, viewer, lecture)
    percentage = payload.completion_percentage if payload else 100

    completed = percentage >= 100
    upsert(
        db, StudentProgress,
        keys={"user_id": viewer.id, "lecture_id": lecture.id},
        values={"completion_percentage": percentage, "completed": completed},
    )
    return {"ok": True, "completed": completed, "completion_percentage": percentage}

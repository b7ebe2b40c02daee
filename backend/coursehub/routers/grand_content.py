# coursehub/routers/grand_content.py
import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from ..access import (
    AUTHOR, STUDY, VIEW_CONTENT, Viewer, authorized_course, current_viewer,
    get_grand_assignment_or_404, get_grand_quiz_or_404,
)
from ..database import get_db, upsert
from ..errors import BadRequest, Forbidden
from ..grading import public_questions, quiz_questions, score_answers
from ..models import GrandAssignment, GrandAssignmentSubmission, GrandQuiz, GrandQuizSubmission
from ..schemas import (
    GrandAssignmentCreate, GrandAssignmentUpdate, GrandQuizCreate, GrandQuizUpdate, QuizSubmitIn,
)
from ..sequencing import GRAND_ASSIGNMENT, GRAND_QUIZ, is_item_locked
from .lectures import LOCKED_MESSAGE
from .. import uploads

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Grand content"])


# --- Creating ---

@router.post("/courses/{course_id}/grand-quiz")
def create_grand_quiz(
    course_id: int,
    payload: GrandQuizCreate,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    course = authorized_course(db, viewer, course_id, AUTHOR)
    quiz = GrandQuiz(
        course_id=course.id,
        title=payload.title,
        description=payload.description or "",
        content_json=json.dumps(payload.questions),
        order_index=payload.order_index or 0,
    )
    db.add(quiz)
    db.commit()
    return {"ok": True, "id": quiz.id}


@router.post("/courses/{course_id}/grand-assignment")
def create_grand_assignment(
    course_id: int,
    payload: GrandAssignmentCreate,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    course = authorized_course(db, viewer, course_id, AUTHOR)
    assignment = GrandAssignment(
        course_id=course.id,
        title=payload.title,
        description=payload.description or "",
        file_url=payload.file_url,
        order_index=payload.order_index or 0,
    )
    db.add(assignment)
    db.commit()
    return {"ok": True, "id": assignment.id}


@router.post("/courses/{course_id}/grand-assignment/upload")
def upload_grand_assignment_file(
    course_id: int,
    file: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    authorized_course(db, viewer, course_id, AUTHOR)
    if file is None:
        raise BadRequest("File required")
    stored = uploads.save_upload(file, uploads.RESOURCE, "file")
    return {"ok": True, "file_url": stored.url}


# --- Grand quizzes ---

def _quiz_submission(db: Session, quiz_id: int, student_id: int):
    return db.query(GrandQuizSubmission).filter(
        GrandQuizSubmission.quiz_id == quiz_id,
        GrandQuizSubmission.student_id == student_id,
    ).first()


@router.get("/grand-quizzes/{quiz_id}")
def get_grand_quiz(quiz_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    quiz = get_grand_quiz_or_404(db, quiz_id)
    VIEW_CONTENT.check(db, viewer, quiz.course)
    questions = quiz_questions(quiz.content_json)
    out = quiz.to_dict()
    if viewer.is_student:
        if is_item_locked(db, quiz.course, viewer, GRAND_QUIZ, quiz.id):
            raise Forbidden(LOCKED_MESSAGE)
        out.pop("content_json")
        out["questions"] = public_questions(questions)
        submission = _quiz_submission(db, quiz.id, viewer.id)
        out["submission"] = submission.to_dict() if submission else None
    else:
        out["questions"] = questions
    return {"quiz": out}


@router.put("/grand-quizzes/{quiz_id}")
def update_grand_quiz(
    quiz_id: int,
    payload: GrandQuizUpdate,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    quiz = get_grand_quiz_or_404(db, quiz_id)
    AUTHOR.check(db, viewer, quiz.course)
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not updates:
        raise BadRequest("Nothing to update")
    if "questions" in updates:
        quiz.content_json = json.dumps(updates.pop("questions"))
    for key, value in updates.items():
        setattr(quiz, key, value)
    db.commit()
    return {"ok": True}


@router.delete("/grand-quizzes/{quiz_id}")
def delete_grand_quiz(quiz_id: int, viewer: Viewer = Depends(current_viewer), db: Session = Depends(get_db)):
    quiz = get_grand_quiz_or_404(db, quiz_id)
    AUTHOR.check(db, viewer, quiz.course)
    db.delete(quiz)
    db.commit()
    return {"ok": True}


@router.post("/grand-quizzes/{quiz_id}/submit")
def submit_grand_quiz(
    quiz_id: int,
    payload: QuizSubmitIn,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    quiz = get_grand_quiz_or_404(db, quiz_id)
    STUDY.check(db, viewer, quiz.course)
    if payload.answers is None:
        raise BadRequest("answers required")

    score = score_answers(quiz_questions(quiz.content_json), payload.answers)
    # One live submission per student: a resubmission replaces the old one
    upsert(
        db, GrandQuizSubmission,
        keys={"quiz_id": quiz.id, "student_id": viewer.id},
        values={"answers_json": json.dumps(payload.answers), "score": score, "submitted_at": datetime.utcnow()},
    )
    return {"ok": True, "score": score}


# --- Grand assignments ---

def _assignment_submission(db: Session, assignment_id: int, student_id: int):
    return db.query(GrandAssignmentSubmission).filter(
        GrandAssignmentSubmission.assignment_id == assignment_id,
        GrandAssignmentSubmission.student_id == student_id,
    ).first()


@router.get("/grand-assignments/{assignment_id}")
def get_grand_assignment(
    assignment_id: int,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    assignment = get_grand_assignment_or_404(db, assignment_id)
    VIEW_CONTENT.check(db, viewer, assignment.course)
    out = assignment.to_dict()
    if viewer.is_student:
        if is_item_locked(db, assignment.course, viewer, GRAND_ASSIGNMENT, assignment.id):
            raise Forbidden(LOCKED_MESSAGE)
        submission = _assignment_submission(db, assignment.id, viewer.id)
        out["submission"] = submission.to_dict() if submission else None
    return {"assignment": out}


@router.put("/grand-assignments/{assignment_id}")
def update_grand_assignment(
    assignment_id: int,
    payload: GrandAssignmentUpdate,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    assignment = get_grand_assignment_or_404(db, assignment_id)
    AUTHOR.check(db, viewer, assignment.course)
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not updates:
        raise BadRequest("Nothing to update")
    for key, value in updates.items():
        setattr(assignment, key, value)
    db.commit()
    return {"ok": True}


@router.delete("/grand-assignments/{assignment_id}")
def delete_grand_assignment(
    assignment_id: int,
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    assignment = get_grand_assignment_or_404(db, assignment_id)
    AUTHOR.check(db, viewer, assignment.course)
    media = [assignment.file_url] + [submission.file_url for submission in assignment.submissions]
    db.delete(assignment)
    db.commit()
    for url in media:
        uploads.delete_media(url)
    return {"ok": True}


@router.post("/grand-assignments/{assignment_id}/submit")
def submit_grand_assignment(
    assignment_id: int,
    file: Optional[UploadFile] = File(None),
    viewer: Viewer = Depends(current_viewer),
    db: Session = Depends(get_db),
):
    assignment = get_grand_assignment_or_404(db, assignment_id)
    STUDY.check(db, viewer, assignment.course)
    if file is None:
        raise BadRequest("File required")

    stored = uploads.save_upload(file, uploads.RESOURCE, "file")
    try:
        _, previous = upsert(
            db, GrandAssignmentSubmission,
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

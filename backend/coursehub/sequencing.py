"""
Course content sequencing

Lectures, grand quizzes and grand assignments live in separate tables but a
student walks through them as one ordered list. For students every item also
carries its completion state and whether it is still locked.

An item is locked unless the item right before it is completed. Only the
immediate predecessor is looked at: finishing item i-1 opens item i even if
something earlier is still open.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from .access import VIEW_COURSE, Viewer
from .errors import NotFound
from .models import (
    Course, Lecture, LectureResource, LectureQuiz, LectureAssignment,
    GrandQuiz, GrandAssignment, GrandQuizSubmission, GrandAssignmentSubmission,
    StudentProgress,
)

LECTURE = "lecture"
GRAND_QUIZ = "grand_quiz"
GRAND_ASSIGNMENT = "grand_assignment"
CONTENT_TYPES = (LECTURE, GRAND_QUIZ, GRAND_ASSIGNMENT)

ItemKey = Tuple[str, int]


@dataclass
class Progress:
    completed: bool = False
    percentage: float = 0

    def to_dict(self):
        return {"completed": self.completed, "percentage": self.percentage}


@dataclass
class ContentItem:
    type: str
    id: int
    title: str
    order_index: int
    created_at: datetime
    data: dict = field(default_factory=dict)

    @property
    def key(self) -> ItemKey:
        return (self.type, self.id)

    def to_dict(self):
        out = dict(self.data)
        out["type"] = self.type
        return out


@dataclass
class CourseContent:
    lectures: List[dict]
    grand_quizzes: List[dict]
    grand_assignments: List[dict]


def _item(content_type: str, row: dict) -> ContentItem:
    return ContentItem(
        type=content_type,
        id=row["id"],
        title=row.get("title"),
        order_index=row.get("order_index") or 0,
        created_at=row.get("created_at") or datetime.min,
        data=row,
    )


def merge_content(
    lectures: Iterable[dict],
    grand_quizzes: Iterable[dict],
    grand_assignments: Iterable[dict],
) -> List[ContentItem]:
    """Tag the three collections and sort them into one sequence.

    Order is ascending order_index, ties broken by creation time. The sort is
    stable, so rows with identical keys keep lecture, quiz, assignment order.
    """
    items = [_item(LECTURE, row) for row in lectures]
    items += [_item(GRAND_QUIZ, row) for row in grand_quizzes]
    items += [_item(GRAND_ASSIGNMENT, row) for row in grand_assignments]
    return sorted(items, key=lambda item: (item.order_index, item.created_at))


def build_completion_map(
    lecture_progress: Iterable[StudentProgress],
    quiz_ids: Iterable[int],
    assignment_ids: Iterable[int],
) -> Dict[ItemKey, Progress]:
    """Completion per item. Any quiz or assignment submission counts as 100%."""
    completion = {}
    for row in lecture_progress:
        completion[(LECTURE, row.lecture_id)] = Progress(
            completed=bool(row.completed),
            percentage=row.completion_percentage or 0,
        )
    for quiz_id in quiz_ids:
        completion[(GRAND_QUIZ, quiz_id)] = Progress(completed=True, percentage=100)
    for assignment_id in assignment_ids:
        completion[(GRAND_ASSIGNMENT, assignment_id)] = Progress(completed=True, percentage=100)
    return completion


def compute_locks(items: Sequence[ContentItem], completion: Dict[ItemKey, Progress]) -> List[bool]:
    locks = []
    for index, item in enumerate(items):
        if index == 0:
            locks.append(False)
            continue
        previous = completion.get(items[index - 1].key)
        locks.append(not (previous and previous.completed))
    return locks


# --- Loading from the store ---

def load_course_content(db: Session, course: Course) -> CourseContent:
    lectures = (
        db.query(Lecture)
        .filter(Lecture.course_id == course.id)
        .order_by(Lecture.order_index.asc(), Lecture.created_at.asc())
        .all()
    )
    lecture_ids = [lecture.id for lecture in lectures]

    resource_counts = {}
    quiz_counts = {}
    assignment_counts = {}
    if lecture_ids:
        for model, counts in (
            (LectureResource, resource_counts),
            (LectureQuiz, quiz_counts),
            (LectureAssignment, assignment_counts),
        ):
            rows = (
                db.query(model.lecture_id, func.count(model.id))
                .filter(model.lecture_id.in_(lecture_ids))
                .group_by(model.lecture_id)
                .all()
            )
            counts.update(dict(rows))

    lecture_rows = []
    for lecture in lectures:
        row = lecture.to_dict()
        row["resource_count"] = resource_counts.get(lecture.id, 0)
        row["quiz_count"] = quiz_counts.get(lecture.id, 0)
        row["assignment_count"] = assignment_counts.get(lecture.id, 0)
        lecture_rows.append(row)

    grand_quizzes = (
        db.query(GrandQuiz)
        .filter(GrandQuiz.course_id == course.id)
        .order_by(GrandQuiz.order_index.asc(), GrandQuiz.created_at.asc())
        .all()
    )
    grand_assignments = (
        db.query(GrandAssignment)
        .filter(GrandAssignment.course_id == course.id)
        .order_by(GrandAssignment.order_index.asc(), GrandAssignment.created_at.asc())
        .all()
    )
    return CourseContent(
        lectures=lecture_rows,
        grand_quizzes=[quiz.to_dict() for quiz in grand_quizzes],
        grand_assignments=[assignment.to_dict() for assignment in grand_assignments],
    )


def student_completion(db: Session, student_id: int, course: Course) -> Dict[ItemKey, Progress]:
    progress = (
        db.query(StudentProgress)
        .join(Lecture, Lecture.id == StudentProgress.lecture_id)
        .filter(StudentProgress.user_id == student_id, Lecture.course_id == course.id)
        .all()
    )
    quiz_ids = [
        row[0] for row in
        db.query(GrandQuizSubmission.quiz_id)
        .join(GrandQuiz, GrandQuiz.id == GrandQuizSubmission.quiz_id)
        .filter(GrandQuizSubmission.student_id == student_id, GrandQuiz.course_id == course.id)
        .all()
    ]
    assignment_ids = [
        row[0] for row in
        db.query(GrandAssignmentSubmission.assignment_id)
        .join(GrandAssignment, GrandAssignment.id == GrandAssignmentSubmission.assignment_id)
        .filter(GrandAssignmentSubmission.student_id == student_id, GrandAssignment.course_id == course.id)
        .all()
    ]
    return build_completion_map(progress, quiz_ids, assignment_ids)


def _attach_resources(db: Session, lecture_rows: List[dict]) -> None:
    lecture_ids = [row["id"] for row in lecture_rows]
    by_lecture = {lecture_id: [] for lecture_id in lecture_ids}
    if lecture_ids:
        resources = (
            db.query(LectureResource)
            .filter(LectureResource.lecture_id.in_(lecture_ids))
            .order_by(LectureResource.created_at.asc())
            .all()
        )
        for resource in resources:
            by_lecture[resource.lecture_id].append(resource.to_dict())
    for row in lecture_rows:
        row["resources"] = by_lecture[row["id"]]


def sequence_course(db: Session, course: Course, viewer: Viewer) -> dict:
    """Everything the course page needs, shaped for the viewer's role."""
    VIEW_COURSE.check(db, viewer, course)

    content = load_course_content(db, course)
    if viewer.is_staff:
        _attach_resources(db, content.lectures)
    else:
        # Answer keys are only served through the quiz endpoint, stripped
        for row in content.grand_quizzes:
            row.pop("content_json", None)

    items = merge_content(content.lectures, content.grand_quizzes, content.grand_assignments)
    all_content = [item.to_dict() for item in items]

    if viewer.is_student:
        completion = student_completion(db, viewer.id, course)
        locks = compute_locks(items, completion)
        lecture_rows = {row["id"]: row for row in content.lectures}
        for item, out, locked in zip(items, all_content, locks):
            progress = completion.get(item.key, Progress()).to_dict()
            out["progress"] = progress
            out["is_locked"] = locked
            if item.type == LECTURE:
                lecture_rows[item.id]["progress"] = progress
                lecture_rows[item.id]["is_locked"] = locked

    course_out = course.to_dict()
    course_out["teacher_name"] = course.teacher.name if course.teacher else None
    course_out["lecture_count"] = len(content.lectures)
    course_out["grand_quiz_count"] = len(content.grand_quizzes)
    course_out["grand_assignment_count"] = len(content.grand_assignments)
    course_out["total_content_count"] = len(items)

    return {
        "course": course_out,
        "lectures": content.lectures,
        "grandQuizzes": content.grand_quizzes,
        "grandAssignments": content.grand_assignments,
        "allContent": all_content,
    }


def is_item_locked(db: Session, course: Course, viewer: Viewer, content_type: str, item_id: int) -> bool:
    """Lock state of one item for the viewer. Staff never see locks."""
    if not viewer.is_student:
        return False
    content = load_course_content(db, course)
    items = merge_content(content.lectures, content.grand_quizzes, content.grand_assignments)
    locks = compute_locks(items, student_completion(db, viewer.id, course))
    for item, locked in zip(items, locks):
        if item.key == (content_type, item_id):
            return locked
    raise NotFound()

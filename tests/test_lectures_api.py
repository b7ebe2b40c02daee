import json

from sqlalchemy.exc import SQLAlchemyError

from coursehub import config
from coursehub.models import (
    Lecture, LectureAssignment, LectureAssignmentSubmission, LectureQuiz, LectureResource, StudentProgress,
    ROLE_TEACHER,
)
from coursehub.routers import lectures

VIDEO = ("lesson.mp4", b"\x00\x00\x00\x18ftypmp4", "video/mp4")


def media_file(url):
    return config.MEDIA_DIR / url.rsplit("/", 1)[-1]


def test_upload_lecture(login, sample_course, teacher, db):
    response = login(teacher).post(
        "/api/lectures/upload",
        data={"course_id": str(sample_course["course"].id), "title": "L3", "order_index": "5"},
        files={"video": VIDEO},
    )
    assert response.status_code == 200
    body = response.json()
    lecture = db.get(Lecture, body["id"])
    assert lecture.order_index == 5
    assert lecture.video_url == body["video_url"]
    assert media_file(body["video_url"]).read_bytes() == VIDEO[1]


def test_upload_lecture_validation(login, sample_course, teacher):
    c = login(teacher)
    course_id = str(sample_course["course"].id)

    missing = c.post("/api/lectures/upload", data={"course_id": course_id}, files={"video": VIDEO})
    assert missing.json() == {"error": "course_id and title required"}

    no_video = c.post("/api/lectures/upload", data={"course_id": course_id, "title": "x"})
    assert no_video.json() == {"error": "Video file required"}

    wrong = c.post("/api/lectures/upload", data={"course_id": course_id, "title": "x"},
                   files={"video": ("notes.pdf", b"%PDF", "application/pdf")})
    assert wrong.status_code == 400
    assert wrong.json() == {"error": "Only video files are allowed"}


def test_upload_lecture_into_foreign_course(login, sample_course, make_user):
    response = login(make_user(ROLE_TEACHER)).post(
        "/api/lectures/upload",
        data={"course_id": str(sample_course["course"].id), "title": "Sneaky"},
        files={"video": VIDEO},
    )
    assert response.status_code == 403


def test_upload_with_resource(login, sample_course, teacher, db):
    response = login(teacher).post(
        "/api/lectures/upload-with-resource",
        data={"course_id": str(sample_course["course"].id), "title": "With notes", "resource_name": "Slides"},
        files={"video": VIDEO, "resource": ("slides.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert response.status_code == 200
    resources = db.query(LectureResource).filter(LectureResource.lecture_id == response.json()["id"]).all()
    assert [resource.name for resource in resources] == ["Slides"]
    assert media_file(resources[0].file_url).exists()


def test_upload_with_resource_checks_video_field(login, sample_course, teacher, db):
    response = login(teacher).post(
        "/api/lectures/upload-with-resource",
        data={"course_id": str(sample_course["course"].id), "title": "Bad"},
        files={"video": ("clip.txt", b"text", "text/plain")},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Only video files are allowed for video field"}
    assert db.query(Lecture).filter(Lecture.title == "Bad").count() == 0


def test_locked_lecture_is_forbidden(login, sample_course, student, enroll):
    enroll(student, sample_course["course"])
    c = login(student)

    response = c.get(f"/api/lectures/{sample_course['l2'].id}")
    assert response.status_code == 403
    assert response.json() == {"error": "Previous content must be completed first"}
    assert c.post(f"/api/lectures/{sample_course['l2'].id}/complete").status_code == 403

    first = c.get(f"/api/lectures/{sample_course['l1'].id}").json()["lecture"]
    assert first["title"] == "L1"
    assert first["course_title"] == "Sequenced"


def test_complete_records_percentage(login, sample_course, student, enroll, db):
    enroll(student, sample_course["course"])
    c = login(student)
    lecture_id = sample_course["l1"].id

    partial = c.post(f"/api/lectures/{lecture_id}/complete", json={"completion_percentage": 40})
    assert partial.json() == {"ok": True, "completed": False, "completion_percentage": 40}
    c.post(f"/api/lectures/{lecture_id}/complete")

    rows = db.query(StudentProgress).filter(StudentProgress.user_id == student.id).all()
    assert len(rows) == 1
    assert rows[0].completed is True
    assert rows[0].completion_percentage == 100


def test_complete_rejects_out_of_range(login, sample_course, student, enroll):
    enroll(student, sample_course["course"])
    response = login(student).post(
        f"/api/lectures/{sample_course['l1'].id}/complete", json={"completion_percentage": 150},
    )
    assert response.status_code == 400


def test_teacher_cannot_complete(login, sample_course, teacher):
    assert login(teacher).post(f"/api/lectures/{sample_course['l1'].id}/complete").status_code == 403


def test_update_and_delete_lecture(login, sample_course, teacher, db):
    c = login(teacher)
    lecture_id = sample_course["l2"].id
    assert c.put(f"/api/lectures/{lecture_id}", json={"title": ""}).status_code == 400
    assert c.put(f"/api/lectures/{lecture_id}", json={"title": "Second"}).status_code == 200
    db.expire_all()
    assert db.get(Lecture, lecture_id).title == "Second"

    assert c.delete(f"/api/lectures/{lecture_id}").status_code == 200
    db.expire_all()
    assert db.get(Lecture, lecture_id) is None
    assert c.get(f"/api/lectures/{lecture_id}").status_code == 404


def test_text_resource(login, sample_course, teacher, student, enroll):
    lecture_id = sample_course["l1"].id
    c = login(teacher)
    assert c.post(f"/api/lectures/{lecture_id}/resources", data={"name": "Empty"}).json() == {
        "error": "Resource file or text required",
    }
    created = c.post(f"/api/lectures/{lecture_id}/resources", data={"name": "Notes", "text_content": "read me"})
    assert created.status_code == 200
    assert created.json()["file_url"] is None

    enroll(student, sample_course["course"])
    resources = login(student).get(f"/api/lectures/{lecture_id}/resources").json()["resources"]
    assert [(r["name"], r["text_content"]) for r in resources] == [("Notes", "read me")]


def test_quiz_hides_answers_from_students(login, sample_course, teacher, student, enroll, db):
    lecture_id = sample_course["l1"].id
    questions = [{"question": "1+1?", "options": ["1", "2"], "correct_answer": 1}]
    c = login(teacher)
    assert c.post(f"/api/lectures/{lecture_id}/quiz", json={"title": "Warmup", "content_json": questions}).status_code == 200
    # Saving again replaces the quiz
    c.post(f"/api/lectures/{lecture_id}/quiz", json={"title": "Warmup 2", "content_json": json.dumps(questions)})
    assert db.query(LectureQuiz).count() == 1

    assert c.get(f"/api/lectures/{lecture_id}/quiz").json()["quiz"]["questions"] == questions

    enroll(student, sample_course["course"])
    quiz = login(student).get(f"/api/lectures/{lecture_id}/quiz").json()["quiz"]
    assert quiz["title"] == "Warmup 2"
    assert quiz["questions"] == [{"question": "1+1?", "options": ["1", "2"]}]
    assert "content_json" not in quiz


def test_missing_quiz_is_null(login, sample_course, teacher):
    assert login(teacher).get(f"/api/lectures/{sample_course['l1'].id}/quiz").json() == {"quiz": None}


def test_assignment_submission_replaces_previous(login, sample_course, teacher, student, enroll, db):
    lecture_id = sample_course["l1"].id
    saved = login(teacher).post(f"/api/lectures/{lecture_id}/assignment", json={"title": "Essay"})
    assignment_id = saved.json()["id"]
    assert db.query(LectureAssignment).count() == 1

    enroll(student, sample_course["course"])
    c = login(student)
    first = c.post(f"/api/assignments/{assignment_id}/submit", files={"file": ("v1.txt", b"one", "text/plain")})
    second = c.post(f"/api/assignments/{assignment_id}/submit", files={"file": ("v2.txt", b"two", "text/plain")})
    assert first.status_code == second.status_code == 200

    rows = db.query(LectureAssignmentSubmission).all()
    assert len(rows) == 1
    assert rows[0].file_url == second.json()["file_url"]
    assert not media_file(first.json()["file_url"]).exists()

    shown = c.get(f"/api/lectures/{lecture_id}/assignment").json()["assignment"]
    assert shown["submission"]["file_url"] == second.json()["file_url"]


def test_assignment_submit_requires_file(login, sample_course, teacher, student, enroll):
    assignment_id = login(teacher).post(
        f"/api/lectures/{sample_course['l1'].id}/assignment", json={"title": "Essay"},
    ).json()["id"]
    enroll(student, sample_course["course"])
    response = login(student).post(f"/api/assignments/{assignment_id}/submit")
    assert response.json() == {"error": "File required"}
    assert login(student).post("/api/assignments/9999/submit").status_code == 404


def test_racing_submissions_keep_one_row(login, sample_course, teacher, student, enroll, db, concurrent_insert):
    assignment_id = login(teacher).post(
        f"/api/lectures/{sample_course['l1'].id}/assignment", json={"title": "Essay"},
    ).json()["id"]
    enroll(student, sample_course["course"])
    c = login(student)
    url = f"/api/assignments/{assignment_id}/submit"
    c.post(url, files={"file": ("v1.txt", b"one", "text/plain")})

    concurrent_insert()
    second = c.post(url, files={"file": ("v2.txt", b"two", "text/plain")})

    assert second.status_code == 200
    rows = db.query(LectureAssignmentSubmission).all()
    assert [row.file_url for row in rows] == [second.json()["file_url"]]


def test_racing_completion_updates_progress(login, sample_course, student, enroll, db, concurrent_insert):
    enroll(student, sample_course["course"])
    c = login(student)
    url = f"/api/lectures/{sample_course['l1'].id}/complete"
    c.post(url, json={"completion_percentage": 30})

    concurrent_insert()
    response = c.post(url)

    assert response.status_code == 200
    rows = db.query(StudentProgress).all()
    assert [(row.completed, row.completion_percentage) for row in rows] == [(True, 100)]


def test_upload_with_resource_rolls_back_lecture_and_files(login, sample_course, teacher, db, monkeypatch):
    def failing_resource(**fields):
        raise SQLAlchemyError("resource insert failed")

    # Fails after both files are written and the lecture row is flushed
    monkeypatch.setattr(lectures, "LectureResource", failing_resource)
    media_before = set(config.MEDIA_DIR.iterdir())

    response = login(teacher).post(
        "/api/lectures/upload-with-resource",
        data={"course_id": str(sample_course["course"].id), "title": "Half done", "resource_name": "Slides"},
        files={"video": VIDEO, "resource": ("slides.pdf", b"%PDF-1.4", "application/pdf")},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Server error"}
    assert db.query(Lecture).filter(Lecture.title == "Half done").count() == 0
    assert db.query(Lecture).count() == 2
    assert db.query(LectureResource).count() == 0
    assert set(config.MEDIA_DIR.iterdir()) == media_before

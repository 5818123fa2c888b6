import pytest
from sqlalchemy import select

from proctor.errors import StudentNotFound
from proctor.models.user_model import User, UserRole
from proctor.services import admin_service, session_service, violation_service, response_service


class Entry:
    def __init__(self, email, full_name=None):
        self.email = email
        self.full_name = full_name


async def test_dashboard_stats(db, make_user, make_exam, make_question):
    ada = await make_user(full_name="Ada Lovelace")
    alan = await make_user(full_name="Alan Turing")
    await make_user(is_authorized=False)
    await make_user(role=UserRole.ADMIN)
    exam = await make_exam(title="Engines")
    q = await make_question(exam, 1, correct_option_index=0)

    finished = await session_service.create_session(db, ada.id, exam.id)
    await response_service.save_response(db, finished.id, q.id, response_option_index=0)
    await violation_service.log_violation(db, finished.id, "Tab switched")
    await violation_service.log_violation(db, finished.id, "Developer tools opened")
    await session_service.complete_session(db, finished.id)

    running = await session_service.create_session(db, alan.id, exam.id)
    await violation_service.log_violation(db, running.id, "Tab switched")

    stats = await admin_service.get_dashboard_stats(db)

    assert stats["total_sessions"] == 2
    assert stats["active_sessions"] == 1
    assert stats["completed_sessions"] == 1
    assert stats["completed_today"] == 1
    assert stats["total_students"] == 2
    assert stats["total_exams"] == 1
    assert stats["average_completion_rate"] == 50.0
    assert stats["average_violations"] == 1.5
    assert stats["average_score"] == 100.0
    assert stats["flagged_sessions"] == 1
    assert {(s["student_name"], s["exam_title"]) for s in stats["recent_sessions"]} == {
        ("Ada Lovelace", "Engines"), ("Alan Turing", "Engines"),
    }
    assert stats["violation_trends"] == [
        {"violation_type": "Tab switched", "count": 2},
        {"violation_type": "Developer tools opened", "count": 1},
    ]


async def test_dashboard_stats_on_empty_database(db):
    stats = await admin_service.get_dashboard_stats(db)
    assert stats["total_sessions"] == 0
    assert stats["average_score"] == 0.0
    assert stats["recent_sessions"] == []


async def test_authorize_existing_and_new_students(db, make_user):
    existing = await make_user(email="grace@example.com", full_name="Grace Hopper", is_authorized=False)

    updated = await admin_service.authorize_student(db, "GRACE@example.com", "  ")
    assert updated["id"] == existing.id
    assert updated["is_authorized"] is True
    # a blank name keeps the stored one
    assert updated["full_name"] == "Grace Hopper"

    created = await admin_service.authorize_student(db, "Linus@Example.com", "Linus Torvalds")
    assert created["email"] == "linus@example.com"
    assert created["is_authorized"] is True

    students = await admin_service.list_students(db)
    assert [(s["email"], s["total_sessions"]) for s in students] == [
        ("grace@example.com", 0), ("linus@example.com", 0),
    ]


async def test_unknown_email_becomes_student_without_known_password(db):
    created = await admin_service.authorize_student(db, "new@example.com")
    students = await admin_service.list_students(db)
    assert [s["id"] for s in students] == [created["id"]]
    assert created["full_name"] is None

    user = (await db.execute(select(User).where(User.id == created["id"]))).scalar_one()
    assert user.role == UserRole.STUDENT
    assert user.hashed_password
    verified, _ = admin_service.password_helper.verify_and_update("", user.hashed_password)
    assert verified is False


async def test_list_students_counts_sessions(db, make_user, make_exam):
    student = await make_user(full_name="Ada Lovelace")
    await make_user(role=UserRole.ADMIN, full_name="Admin")
    first = await make_exam(title="One")
    second = await make_exam(title="Two")
    await session_service.create_session(db, student.id, first.id)
    await session_service.create_session(db, student.id, second.id)

    students = await admin_service.list_students(db)
    assert [(s["full_name"], s["total_sessions"]) for s in students] == [("Ada Lovelace", 2)]


async def test_bulk_authorize(db, make_user):
    await make_user(email="old@example.com", full_name="Old Name", is_authorized=False)

    rows = await admin_service.bulk_authorize_students(db, [
        Entry("old@example.com", "New Name"),
        Entry("fresh@example.com", "Fresh"),
    ])

    assert [(r["email"], r["full_name"], r["is_authorized"]) for r in rows] == [
        ("old@example.com", "New Name", True),
        ("fresh@example.com", "Fresh", True),
    ]
    assert len(await admin_service.list_students(db)) == 2


async def test_deauthorize_student(db, make_user, make_exam):
    student = await make_user(email="gone@example.com")
    exam = await make_exam()
    student_id = student.id
    await session_service.create_session(db, student_id, exam.id)

    row = await admin_service.deauthorize_student(db, "Gone@example.com")
    assert row["is_authorized"] is False

    # account and history stay
    students = await admin_service.list_students(db)
    assert [(s["id"], s["total_sessions"]) for s in students] == [(student_id, 1)]

    with pytest.raises(StudentNotFound):
        await admin_service.deauthorize_student(db, "nobody@example.com")

import uuid

import pytest

from proctor.errors import AccessDeniedToExam, ExamNotFound
from proctor.services import access_service, group_service


async def test_ungated_exam_uses_authorization_flag(db, make_user, make_exam):
    allowed = await make_user(is_authorized=True)
    blocked = await make_user(is_authorized=False)
    exam = await make_exam()

    assert await access_service.can_access(db, allowed.id, exam.id)
    assert not await access_service.can_access(db, blocked.id, exam.id)


async def test_group_gated_exam_follows_membership(db, make_user, make_exam):
    # global authorization does not matter for gated exams
    student = await make_user(is_authorized=True)
    exam = await make_exam(use_group_access=True)
    student_id, exam_id = student.id, exam.id
    group = await group_service.create_group(db, "Section A")
    await group_service.assign_group_to_exam(db, exam_id, group["id"])

    assert not await access_service.can_access(db, student_id, exam_id)

    await group_service.add_member(db, group["id"], student_id)
    assert await access_service.can_access(db, student_id, exam_id)

    await group_service.remove_member(db, group["id"], student_id)
    assert not await access_service.can_access(db, student_id, exam_id)


async def test_membership_in_unassigned_group_does_not_grant(db, make_user, make_exam):
    student = await make_user()
    exam = await make_exam(use_group_access=True)
    student_id, exam_id = student.id, exam.id
    group = await group_service.create_group(db, "Section B")
    await group_service.add_member(db, group["id"], student_id)

    assert not await access_service.can_access(db, student_id, exam_id)


async def test_ensure_access(db, make_user, make_exam):
    student = await make_user(is_authorized=False)
    exam = await make_exam()

    with pytest.raises(AccessDeniedToExam):
        await access_service.ensure_access(db, student.id, exam.id)

    with pytest.raises(ExamNotFound):
        await access_service.ensure_access(db, student.id, uuid.uuid4())

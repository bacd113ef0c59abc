import pytest

from credilink.courses.enrollment import (
    ensure_enrolled, list_enrolled_courses, module_statuses, next_module_id,
    open_module, course_progress, progress_percentage
)
from credilink.courses.database import get_course
from credilink.courses.models import ModuleStatus
from credilink.errors import InvalidArgument, NotFound

from conftest import seed_course

async def test_first_enrollment_creates_records(db, course_id):
    progress = await ensure_enrolled(db, "u1", course_id)

    assert progress.progress_id == f"u1_{course_id}"
    assert progress.completed_modules == []
    assert progress.final_test_passed is False
    assert progress.certificate_id is None

    user = await db.users.find_one({"user_id": "u1"})
    assert user["wallet_address"] == "u1"
    assert user["enrolled_courses"] == [course_id]

    course = await get_course(db, course_id)
    assert course.enrolled_count == 1

async def test_enrollment_is_idempotent(db, course_id):
    first = await ensure_enrolled(db, "u1", course_id)
    second = await ensure_enrolled(db, "u1", course_id)

    assert second.enrolled_at == first.enrolled_at
    assert second.last_accessed_at >= first.last_accessed_at
    assert await db.user_progress.count_documents({"user_id": "u1"}) == 1

    course = await get_course(db, course_id)
    assert course.enrolled_count == 1

    user = await db.users.find_one({"user_id": "u1"})
    assert user["enrolled_courses"].count(course_id) == 1

async def test_enrollment_counts_each_user_once(db, course_id):
    for user_id in ("u1", "u2", "u1", "u3", "u2"):
        await ensure_enrolled(db, user_id, course_id)

    course = await get_course(db, course_id)
    assert course.enrolled_count == 3

async def test_existing_user_record_is_not_overwritten(db, course_id):
    await db.users.insert_one({"user_id": "u1", "name": "Ada", "enrolled_courses": [], "credentials": []})
    await ensure_enrolled(db, "u1", course_id)

    user = await db.users.find_one({"user_id": "u1"})
    assert user["name"] == "Ada"
    assert user["enrolled_courses"] == [course_id]

async def test_unknown_course(db):
    with pytest.raises(NotFound):
        await ensure_enrolled(db, "u1", "COURSE_MISSING")
    assert await db.user_progress.count_documents({}) == 0

@pytest.mark.parametrize("user_id,course", [("", "c1"), ("u1", "")])
async def test_missing_identifiers(db, user_id, course):
    with pytest.raises(InvalidArgument):
        await ensure_enrolled(db, user_id, course)

async def test_list_enrolled_courses(db, course_id):
    other = await seed_course(db, module_ids=("a",), title="Solidity Basics")
    await ensure_enrolled(db, "u1", course_id)
    await ensure_enrolled(db, "u1", other)
    await ensure_enrolled(db, "u1", course_id)

    courses = await list_enrolled_courses(db, "u1")
    ids = [c["course"]["course_id"] for c in courses]
    assert sorted(ids) == sorted([course_id, other])
    assert all(c["progress_percentage"] == 0 for c in courses)

# ==================== MODULE STATUS ====================

async def test_module_statuses(db):
    cid = await seed_course(db, module_ids=("m1", "m2", "m3", "m4"))
    course = await get_course(db, cid)

    assert module_statuses(course, []) == {
        "m1": ModuleStatus.IN_PROGRESS,
        "m2": ModuleStatus.LOCKED,
        "m3": ModuleStatus.LOCKED,
        "m4": ModuleStatus.LOCKED,
    }
    assert module_statuses(course, ["m1"]) == {
        "m1": ModuleStatus.COMPLETED,
        "m2": ModuleStatus.IN_PROGRESS,
        "m3": ModuleStatus.LOCKED,
        "m4": ModuleStatus.LOCKED,
    }
    # out of order completion does not unlock anything past the learner
    assert module_statuses(course, ["m2"]) == {
        "m1": ModuleStatus.IN_PROGRESS,
        "m2": ModuleStatus.COMPLETED,
        "m3": ModuleStatus.LOCKED,
        "m4": ModuleStatus.LOCKED,
    }

async def test_next_module_id(db, course_id):
    course = await get_course(db, course_id)
    assert next_module_id(course, "m1") == "m2"
    assert next_module_id(course, "m2") is None
    with pytest.raises(InvalidArgument):
        next_module_id(course, "nope")

def test_progress_percentage_rounds_half_up():
    assert progress_percentage(0, 0) == 0
    assert progress_percentage(1, 2) == 50
    assert progress_percentage(1, 3) == 33
    assert progress_percentage(2, 3) == 67
    assert progress_percentage(1, 8) == 13

# ==================== VIEWS ====================

async def test_open_module_enrolls_and_hides_answers(db, course_id):
    view = await open_module(db, "u9", course_id, "m1")

    assert view.status == ModuleStatus.IN_PROGRESS
    assert view.next_module_id == "m2"
    assert view.attempts == 0
    assert all(q.correct_option_index == -1 for q in view.module.quiz.questions)
    assert await db.user_progress.count_documents({"user_id": "u9"}) == 1

    # the stored course keeps its answer key
    course = await get_course(db, course_id)
    assert course.get_module("m1").quiz.questions[0].correct_option_index == 0

async def test_open_unknown_module_writes_nothing(db, course_id):
    with pytest.raises(InvalidArgument):
        await open_module(db, "u1", course_id, "m99")

    assert await db.user_progress.count_documents({}) == 0
    assert await db.users.count_documents({"user_id": "u1"}) == 0
    course = await get_course(db, course_id)
    assert course.enrolled_count == 0

async def test_course_progress_requires_enrollment(db, course_id):
    with pytest.raises(NotFound):
        await course_progress(db, "u1", course_id)

    await ensure_enrolled(db, "u1", course_id)
    view = await course_progress(db, "u1", course_id)
    assert view.progress_percentage == 0
    assert view.final_test_unlocked is False

async def test_all_modules_completed_statuses(db, course_id):
    course = await get_course(db, course_id)
    assert module_statuses(course, ["m2", "m1"]) == {
        "m1": ModuleStatus.COMPLETED,
        "m2": ModuleStatus.COMPLETED,
    }

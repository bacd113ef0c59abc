"""
Enrollment Manager
Creates user and progress records on first course access, idempotently
"""

from datetime import datetime
from typing import Dict, List, Optional
import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from credilink.courses.database import (
    progress_key, require_course, require_progress, serialize_many
)
from credilink.courses.models import (
    Course, Progress, ModuleStatus, ModuleView, CourseProgressView
)
from credilink.errors import InvalidArgument
from credilink.users.user_service import ensure_user_record

logger = logging.getLogger(__name__)

# ==================== ENROLLMENT ====================

async def ensure_enrolled(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> Progress:
    """
    Make sure (user_id, course_id) has a progress record

    Repeated calls only refresh last_accessed_at. The enrollment
    counter moves only when this call created the progress record.
    """
    if not user_id:
        raise InvalidArgument("user_id is required")
    if not course_id:
        raise InvalidArgument("course_id is required")

    await require_course(db, course_id)
    await ensure_user_record(db, user_id)

    now = datetime.utcnow()
    try:
        result = await db.user_progress.update_one(
            {"progress_id": progress_key(user_id, course_id)},
            {
                "$setOnInsert": {
                    "user_id": user_id,
                    "course_id": course_id,
                    "enrolled_at": now,
                    "completed_modules": [],
                    "module_scores": {},
                    "quiz_attempts": {},
                    "attempt_counts": {},
                    "final_test_score": None,
                    "final_test_passed": False,
                    "final_test_attempts": [],
                    "final_test_attempt_count": 0,
                    "certificate_id": None,
                    "completed_at": None,
                },
                "$set": {"last_accessed_at": now},
            },
            upsert=True
        )
        created = result.upserted_id is not None
    except DuplicateKeyError:
        # lost an upsert race; the other request created it
        created = False
        await db.user_progress.update_one(
            {"progress_id": progress_key(user_id, course_id)},
            {"$set": {"last_accessed_at": now}}
        )

    if created:
        await db.courses.update_one(
            {"course_id": course_id},
            {"$inc": {"enrolled_count": 1}}
        )
        logger.info("Enrolled %s in %s", user_id, course_id)

    # always applied so a half-finished enrollment is repaired on retry
    await db.users.update_one(
        {"user_id": user_id},
        {"$addToSet": {"enrolled_courses": course_id}}
    )

    return await require_progress(db, user_id, course_id)

async def list_enrolled_courses(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    """Progress summaries for every course the user is enrolled in"""
    cursor = db.user_progress.find({"user_id": user_id}).sort("last_accessed_at", -1)
    progress_docs = await cursor.to_list(length=None)

    results = []
    for doc in progress_docs:
        course = await db.courses.find_one(
            {"course_id": doc["course_id"]},
            {"course_id": 1, "title": 1, "description": 1, "cover_image": 1, "modules": 1}
        )
        if not course:
            continue
        total = len(course.get("modules", []))
        completed = len(doc.get("completed_modules", []))
        results.append({
            "course": {
                "course_id": course["course_id"],
                "title": course.get("title"),
                "description": course.get("description"),
                "cover_image": course.get("cover_image"),
            },
            "progress_percentage": progress_percentage(completed, total),
            "final_test_passed": doc.get("final_test_passed", False),
            "certificate_id": doc.get("certificate_id"),
            "enrolled_at": doc.get("enrolled_at"),
            "last_accessed_at": doc.get("last_accessed_at"),
        })
    return serialize_many(results)

# ==================== MODULE STATUS ====================

def progress_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)

def module_statuses(course: Course, completed: List[str]) -> Dict[str, ModuleStatus]:
    """
    completed: passed or marked done
    in_progress: first uncompleted module in course order
    locked: every other uncompleted module, even when a later module is done
    """
    done = set(completed)
    ordered = course.ordered_modules()
    first_open = next((m.module_id for m in ordered if m.module_id not in done), None)

    statuses = {}
    for module in ordered:
        if module.module_id in done:
            statuses[module.module_id] = ModuleStatus.COMPLETED
        elif module.module_id == first_open:
            statuses[module.module_id] = ModuleStatus.IN_PROGRESS
        else:
            statuses[module.module_id] = ModuleStatus.LOCKED
    return statuses

def next_module_id(course: Course, module_id: str) -> Optional[str]:
    ids = course.module_ids
    if module_id not in ids:
        raise InvalidArgument(f"Module {module_id} is not part of course {course.course_id}")
    index = ids.index(module_id)
    return ids[index + 1] if index + 1 < len(ids) else None

def all_modules_completed(course: Course, progress: Progress) -> bool:
    return set(course.module_ids).issubset(progress.completed_modules)

# ==================== VIEWS ====================

async def open_module(db: AsyncIOMotorDatabase, user_id: str, course_id: str, module_id: str) -> ModuleView:
    """
    Viewing a module implies enrollment. The module is resolved against
    the course first so an unknown id writes nothing.
    """
    if not user_id:
        raise InvalidArgument("user_id is required")
    course = await require_course(db, course_id)

    module = course.get_module(module_id)
    if not module:
        raise InvalidArgument(f"Module {module_id} is not part of course {course_id}")

    progress = await ensure_enrolled(db, user_id, course_id)

    # never expose the answer key to the learner
    visible = module.copy(deep=True)
    for q in visible.quiz.questions:
        q.correct_option_index = -1
        q.explanation = None

    return ModuleView(
        course_id=course_id,
        module=visible,
        status=module_statuses(course, progress.completed_modules)[module_id],
        next_module_id=next_module_id(course, module_id),
        score=progress.module_scores.get(module_id),
        attempts=progress.attempt_counts.get(module_id, 0),
    )

async def course_progress(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> CourseProgressView:
    course = await require_course(db, course_id)
    progress = await require_progress(db, user_id, course_id)

    completed = [m for m in course.module_ids if m in progress.completed_modules]
    return CourseProgressView(
        course_id=course_id,
        title=course.title,
        progress_percentage=progress_percentage(len(completed), len(course.module_ids)),
        completed_modules=completed,
        module_statuses=module_statuses(course, progress.completed_modules),
        module_scores=progress.module_scores,
        final_test_unlocked=all_modules_completed(course, progress),
        final_test_score=progress.final_test_score,
        final_test_passed=progress.final_test_passed,
        certificate_id=progress.certificate_id,
    )

from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
from typing import List, Optional
import logging
import uuid

from credilink.courses.leaderboard import recompute_leaderboard_entry
from credilink.courses.models import Course, CourseCreate, Progress, QuizQuestion
from credilink.errors import NotFound

logger = logging.getLogger(__name__)

# ==================== HELPERS ====================

def serialize_mongo(doc: dict) -> dict:
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc

def serialize_many(docs: list) -> list:
    return [serialize_mongo(doc) for doc in docs]

def progress_key(user_id: str, course_id: str) -> str:
    return f"{user_id}_{course_id}"

def credential_key(user_id: str, course_id: str) -> str:
    return f"{user_id}:{course_id}"

def _number_questions(questions: List[QuizQuestion], prefix: str) -> List[dict]:
    return [
        {**q.dict(), "id": q.id or f"{prefix}{i + 1}"}
        for i, q in enumerate(questions)
    ]

# ==================== INDEXES ====================

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create MongoDB indexes; the unique ones carry the idempotency rules"""
    await db.users.create_index("user_id", unique=True)

    await db.courses.create_index("course_id", unique=True)

    await db.user_progress.create_index("progress_id", unique=True)
    await db.user_progress.create_index([("user_id", 1), ("course_id", 1)], unique=True)
    await db.user_progress.create_index([("user_id", 1), ("final_test_passed", 1)])
    await db.user_progress.create_index("course_id")

    await db.credentials.create_index("credential_id", unique=True)
    await db.credentials.create_index("credential_key", unique=True)
    await db.credentials.create_index("user_id")

    await db.leaderboard.create_index("user_id", unique=True)
    await db.leaderboard.create_index([("completed_courses", -1), ("total_score", -1)])

    logger.info("Learning core indexes created")

# ==================== COURSE CRUD ====================

async def create_course(db: AsyncIOMotorDatabase, course_data: CourseCreate) -> str:
    """Create a course; module ids are generated when the author leaves them out"""
    course_id = f"COURSE_{uuid.uuid4().hex[:12].upper()}"

    modules = []
    for i, m in enumerate(course_data.modules):
        modules.append({
            **m.dict(),
            "module_id": m.module_id or f"MOD_{uuid.uuid4().hex[:10].upper()}",
            "order": m.order if m.order is not None else i + 1,
            "quiz": {
                "questions": _number_questions(m.quiz.questions, "q"),
                "passing_score": m.quiz.passing_score,
            },
        })

    course = {
        **course_data.dict(exclude={"modules", "final_test"}),
        "course_id": course_id,
        "modules": modules,
        "final_test": {
            "questions": _number_questions(course_data.final_test.questions, "ft"),
            "passing_score": course_data.final_test.passing_score,
        },
        "enrolled_count": 0,
        "created_at": datetime.utcnow(),
        "updated_at": datetime.utcnow(),
    }

    await db.courses.insert_one(course)
    logger.info("Created course %s with %d modules", course_id, len(modules))
    return course_id

async def get_course(db: AsyncIOMotorDatabase, course_id: str) -> Optional[Course]:
    """Get course by ID"""
    doc = await db.courses.find_one({"course_id": course_id})
    return Course(**doc) if doc else None

async def require_course(db: AsyncIOMotorDatabase, course_id: str) -> Course:
    course = await get_course(db, course_id)
    if not course:
        raise NotFound(f"Course {course_id} not found")
    return course

async def list_courses(db: AsyncIOMotorDatabase, skip: int = 0, limit: int = 20) -> List[dict]:
    """Course catalogue; quizzes and the final test are stripped so answers never leak"""
    cursor = db.courses.find({}, {"final_test": 0}).sort("created_at", -1).skip(skip).limit(limit)
    courses = await cursor.to_list(length=limit)
    for course in courses:
        for module in course.get("modules", []):
            module.pop("quiz", None)
    return serialize_many(courses)

async def set_module_quiz(db: AsyncIOMotorDatabase, course_id: str, module_id: str, questions: List[QuizQuestion]):
    result = await db.courses.update_one(
        {"course_id": course_id, "modules.module_id": module_id},
        {"$set": {
            "modules.$.quiz.questions": _number_questions(questions, "q"),
            "updated_at": datetime.utcnow()
        }}
    )
    if result.matched_count == 0:
        raise NotFound(f"Module {module_id} not found in course {course_id}")

async def set_final_test(db: AsyncIOMotorDatabase, course_id: str, questions: List[QuizQuestion], passing_score: int):
    result = await db.courses.update_one(
        {"course_id": course_id},
        {"$set": {
            "final_test": {
                "questions": _number_questions(questions, "ft"),
                "passing_score": passing_score,
            },
            "updated_at": datetime.utcnow()
        }}
    )
    if result.matched_count == 0:
        raise NotFound(f"Course {course_id} not found")

async def delete_course_cascade(db: AsyncIOMotorDatabase, course_id: str) -> int:
    """
    Delete a course and every progress record for it
    Credentials are immutable and stay; returns the number of progress records removed
    """
    result = await db.courses.delete_one({"course_id": course_id})
    if result.deleted_count == 0:
        raise NotFound(f"Course {course_id} not found")

    # leaderboard rows of these users count the course being removed
    passed_users = await db.user_progress.distinct(
        "user_id", {"course_id": course_id, "final_test_passed": True}
    )

    removed = await db.user_progress.delete_many({"course_id": course_id})
    await db.users.update_many(
        {"$or": [{"enrolled_courses": course_id}, {"completed_courses": course_id}]},
        {"$pull": {"enrolled_courses": course_id, "completed_courses": course_id}}
    )

    for user_id in passed_users:
        entry = await recompute_leaderboard_entry(db, user_id)
        if entry.completed_courses == 0:
            await db.leaderboard.delete_one({"user_id": user_id})

    logger.info(
        "Deleted course %s: %d progress records, %d leaderboard entries refreshed",
        course_id, removed.deleted_count, len(passed_users)
    )
    return removed.deleted_count

# ==================== PROGRESS READS ====================

async def get_progress(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> Optional[Progress]:
    doc = await db.user_progress.find_one({"progress_id": progress_key(user_id, course_id)})
    return Progress(**doc) if doc else None

async def require_progress(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> Progress:
    progress = await get_progress(db, user_id, course_id)
    if not progress:
        raise NotFound(f"No progress for user {user_id} in course {course_id}; enroll first")
    return progress

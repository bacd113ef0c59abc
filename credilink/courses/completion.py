"""
Module/Quiz Completion Engine
Grades quiz attempts and maintains the completed-module set
"""

from datetime import datetime
from typing import Dict, List, Optional
import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from credilink.config import DEFAULT_PASSING_SCORE
from credilink.courses.database import progress_key, require_course, require_progress
from credilink.courses.models import Course, CourseModule, Progress, QuizAttempt, QuizQuestion, QuizResult
from credilink.errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

# ==================== SCORING ====================

def score_answers(questions: List[QuizQuestion], answers: Dict[int, int]) -> int:
    """
    Percentage of correct answers, 0-100, rounded half up

    Every question index must be answered with an option index
    that exists for that question.
    """
    if not questions:
        raise InvalidArgument("Quiz has no questions")

    unknown = [i for i in answers if not 0 <= i < len(questions)]
    if unknown:
        raise InvalidArgument(f"Answers given for unknown question indices: {sorted(unknown)}")

    missing = [i for i in range(len(questions)) if i not in answers]
    if missing:
        raise InvalidArgument(f"Missing answers for question indices: {missing}")

    correct = 0
    for i, question in enumerate(questions):
        selected = answers[i]
        if not 0 <= selected < len(question.options):
            raise InvalidArgument(f"Answer {selected} out of range for question {i}")
        if selected == question.correct_option_index:
            correct += 1

    total = len(questions)
    return (200 * correct + total) // (2 * total)

def resolve_passing_score(module: CourseModule, passing_score: Optional[int]) -> int:
    if passing_score is not None:
        return passing_score
    if module.quiz.passing_score is not None:
        return module.quiz.passing_score
    return DEFAULT_PASSING_SCORE

def _require_module(course: Course, module_id: str) -> CourseModule:
    module = course.get_module(module_id)
    if not module:
        raise InvalidArgument(f"Module {module_id} is not part of course {course.course_id}")
    return module

# ==================== QUIZ ATTEMPTS ====================

async def record_quiz_attempt(
    db: AsyncIOMotorDatabase,
    user_id: str,
    course_id: str,
    module_id: str,
    answers: Dict[int, int],
    passing_score: Optional[int] = None
) -> QuizResult:
    """
    Grade and store one quiz attempt

    The module's current score is overwritten by this attempt; the
    attempt itself is appended to the module's history. A passing
    attempt adds the module to completed_modules (set semantics).
    """
    course = await require_course(db, course_id)
    module = _require_module(course, module_id)
    await require_progress(db, user_id, course_id)

    score = score_answers(module.quiz.questions, answers)
    passed = score >= resolve_passing_score(module, passing_score)
    now = datetime.utcnow()

    update = {
        "$inc": {f"attempt_counts.{module_id}": 1},
        "$set": {
            f"module_scores.{module_id}": score,
            "last_accessed_at": now,
        },
    }
    if passed:
        update["$addToSet"] = {"completed_modules": module_id}

    doc = await db.user_progress.find_one_and_update(
        {"progress_id": progress_key(user_id, course_id)},
        update,
        return_document=ReturnDocument.AFTER
    )
    if not doc:
        raise NotFound(f"No progress for user {user_id} in course {course_id}; enroll first")

    attempt_number = doc["attempt_counts"][module_id]
    attempt = QuizAttempt(
        attempted_at=now,
        score=score,
        answers={str(k): v for k, v in answers.items()},
        passed=passed,
        attempt_number=attempt_number,
    )
    await db.user_progress.update_one(
        {"progress_id": progress_key(user_id, course_id)},
        {"$push": {f"quiz_attempts.{module_id}": attempt.dict()}}
    )

    logger.info(
        "Quiz attempt %d for %s/%s by %s: score=%d passed=%s",
        attempt_number, course_id, module_id, user_id, score, passed
    )
    return QuizResult(score=score, passed=passed, attempt_number=attempt_number)

async def mark_module_complete(db: AsyncIOMotorDatabase, user_id: str, course_id: str, module_id: str) -> Progress:
    """Completion without a quiz (e.g. video watched); no-op if already completed"""
    course = await require_course(db, course_id)
    _require_module(course, module_id)

    doc = await db.user_progress.find_one_and_update(
        {"progress_id": progress_key(user_id, course_id)},
        {
            "$addToSet": {"completed_modules": module_id},
            "$set": {"last_accessed_at": datetime.utcnow()},
        },
        return_document=ReturnDocument.AFTER
    )
    if not doc:
        raise NotFound(f"No progress for user {user_id} in course {course_id}; enroll first")
    return Progress(**doc)

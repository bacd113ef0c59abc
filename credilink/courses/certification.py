"""
Final Test & Certification Engine

Issuance is at-most-once per (user, course). The credential is keyed on
credential_key with a unique index, and the progress record only accepts
a certificate_id while it has none. Every step is idempotent, so a
re-submission after a partial failure finishes the remaining writes
instead of issuing a second credential.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional
import logging
import uuid
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from credilink.config import (
    CREDENTIAL_ISSUER, CREDENTIAL_ISSUER_ID, CREDENTIAL_VALIDITY_DAYS, DEFAULT_SKILLS
)
from credilink.courses.completion import score_answers
from credilink.courses.database import (
    credential_key, progress_key, require_course, require_progress
)
from credilink.courses.enrollment import all_modules_completed
from credilink.courses.leaderboard import recompute_leaderboard_entry
from credilink.courses.models import Course, Credential, FinalTestAttempt, FinalTestResult
from credilink.errors import Conflict, NotFound, PreconditionFailed

logger = logging.getLogger(__name__)

# ==================== CREDENTIALS ====================

def skills_for_course(course: Course) -> List[str]:
    titles = [m.title for m in course.ordered_modules() if m.title]
    return titles or list(DEFAULT_SKILLS)

async def issue_credential(db: AsyncIOMotorDatabase, user_id: str, course: Course) -> Credential:
    """Return the (user, course) credential, creating it on first call"""
    key = credential_key(user_id, course.course_id)
    now = datetime.utcnow()
    new_id = f"CRED_{uuid.uuid4().hex[:16].upper()}"

    fresh = Credential(
        credential_id=new_id,
        credential_key=key,
        user_id=user_id,
        course_id=course.course_id,
        course_name=course.title,
        issue_date=now,
        expiry_date=now + timedelta(days=CREDENTIAL_VALIDITY_DAYS) if CREDENTIAL_VALIDITY_DAYS > 0 else None,
        skills=skills_for_course(course),
        issuer=CREDENTIAL_ISSUER,
        issuer_id=CREDENTIAL_ISSUER_ID,
    ).dict(exclude={"credential_key"})

    try:
        doc = await db.credentials.find_one_and_update(
            {"credential_key": key},
            {"$setOnInsert": fresh},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        # a concurrent submission inserted it first
        doc = await db.credentials.find_one({"credential_key": key})

    credential = Credential(**doc)
    if credential.credential_id == new_id:
        logger.info("Issued credential %s to %s for %s", new_id, user_id, course.course_id)
    return credential

async def _apply_certification_side_effects(db: AsyncIOMotorDatabase, user_id: str, course_id: str, credential_id: str):
    await db.users.update_one(
        {"user_id": user_id},
        {
            "$addToSet": {
                "credentials": credential_id,
                "completed_courses": course_id,
            },
            "$set": {"updated_at": datetime.utcnow()},
        }
    )
    await recompute_leaderboard_entry(db, user_id)

# ==================== FINAL TEST ====================

async def submit_final_test(
    db: AsyncIOMotorDatabase,
    user_id: str,
    course_id: str,
    answers: Dict[int, int]
) -> FinalTestResult:
    course = await require_course(db, course_id)
    progress = await require_progress(db, user_id, course_id)

    if progress.certificate_id:
        # already certified: repeat the idempotent follow-up writes, record nothing new
        await _apply_certification_side_effects(db, user_id, course_id, progress.certificate_id)
        return FinalTestResult(
            score=progress.final_test_score or 0,
            passed=True,
            certificate_id=progress.certificate_id,
        )

    if not all_modules_completed(course, progress):
        raise PreconditionFailed("modules incomplete")

    score = score_answers(course.final_test.questions, answers)
    passed = score >= course.final_test.passing_score
    now = datetime.utcnow()
    pid = progress_key(user_id, course_id)

    if not passed:
        doc = await db.user_progress.find_one_and_update(
            {"progress_id": pid, "certificate_id": None},
            {
                "$inc": {"final_test_attempt_count": 1},
                "$set": {"final_test_score": score, "last_accessed_at": now},
            },
            return_document=ReturnDocument.AFTER
        )
        if not doc:
            # certified by a concurrent submission while this one was graded
            return await _stored_result(db, user_id, course_id)

        await _log_final_attempt(db, pid, score, False, doc["final_test_attempt_count"], now)
        logger.info("Final test failed for %s in %s: score=%d", user_id, course_id, score)
        return FinalTestResult(score=score, passed=False, certificate_id=None)

    credential = await issue_credential(db, user_id, course)

    doc = await db.user_progress.find_one_and_update(
        {"progress_id": pid, "certificate_id": None},
        {
            "$inc": {"final_test_attempt_count": 1},
            "$set": {
                "final_test_score": score,
                "final_test_passed": True,
                "certificate_id": credential.credential_id,
                "completed_at": now,
                "last_accessed_at": now,
            },
        },
        return_document=ReturnDocument.AFTER
    )
    if doc:
        await _log_final_attempt(db, pid, score, True, doc["final_test_attempt_count"], now)
    else:
        stored = await require_progress(db, user_id, course_id)
        if stored.certificate_id != credential.credential_id:
            raise Conflict(
                f"Progress {pid} holds certificate {stored.certificate_id}, "
                f"credential record is {credential.credential_id}"
            )
        score = stored.final_test_score or score

    await _apply_certification_side_effects(db, user_id, course_id, credential.credential_id)
    logger.info("Final test passed for %s in %s: score=%d", user_id, course_id, score)
    return FinalTestResult(score=score, passed=True, certificate_id=credential.credential_id)

async def _log_final_attempt(db: AsyncIOMotorDatabase, pid: str, score: int, passed: bool, attempt_number: int, at: datetime):
    attempt = FinalTestAttempt(attempted_at=at, score=score, passed=passed, attempt_number=attempt_number)
    await db.user_progress.update_one(
        {"progress_id": pid},
        {"$push": {"final_test_attempts": attempt.dict()}}
    )

async def _stored_result(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> FinalTestResult:
    stored = await require_progress(db, user_id, course_id)
    return FinalTestResult(
        score=stored.final_test_score or 0,
        passed=stored.final_test_passed,
        certificate_id=stored.certificate_id,
    )

# ==================== READS ====================

async def get_credential(db: AsyncIOMotorDatabase, credential_id: str) -> Credential:
    doc = await db.credentials.find_one({"credential_id": credential_id})
    if not doc:
        raise NotFound(f"Credential {credential_id} not found")
    return Credential(**doc)

async def list_user_credentials(db: AsyncIOMotorDatabase, user_id: str) -> List[Credential]:
    cursor = db.credentials.find({"user_id": user_id}).sort("issue_date", -1)
    return [Credential(**doc) for doc in await cursor.to_list(length=None)]

async def verify_credential(db: AsyncIOMotorDatabase, credential_id: str) -> dict:
    """Public verification view; never raises for an unknown id"""
    doc = await db.credentials.find_one({"credential_id": credential_id})
    if not doc:
        return {"valid": False, "credential_id": credential_id, "message": "Credential not found"}

    credential = Credential(**doc)
    expired = credential.expiry_date is not None and credential.expiry_date < datetime.utcnow()
    return {
        "valid": not expired,
        "credential_id": credential.credential_id,
        "issued_to": credential.user_id,
        "course_id": credential.course_id,
        "course_name": credential.course_name,
        "issue_date": credential.issue_date.isoformat(),
        "expiry_date": credential.expiry_date.isoformat() if credential.expiry_date else None,
        "issuer": credential.issuer,
        "blockchain_verified": credential.blockchain_verified,
        "message": "Credential has expired" if expired else "Credential is valid",
    }

"""
Leaderboard Aggregator
Entries are derived from passed progress records and can always be rebuilt
"""

from datetime import datetime
from typing import List, Optional
import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from credilink.courses.models import LeaderboardEntry, RankedEntry

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous User"

# ==================== PER-USER RECOMPUTE ====================

async def recompute_leaderboard_entry(db: AsyncIOMotorDatabase, user_id: str) -> LeaderboardEntry:
    """Rebuild one user's entry from their passed progress records"""
    cursor = db.user_progress.find(
        {"user_id": user_id, "final_test_passed": True},
        {"final_test_score": 1}
    )
    passed = await cursor.to_list(length=None)

    completed_courses = len(passed)
    total_score = sum(p.get("final_test_score") or 0 for p in passed)

    user = await db.users.find_one({"user_id": user_id})
    if not user:
        logger.warning("Leaderboard recompute for %s: user record missing", user_id)
        user = {}

    doc = await db.leaderboard.find_one_and_update(
        {"user_id": user_id},
        {"$set": {
            "user_name": user.get("name") or ANONYMOUS_NAME,
            "user_image": user.get("image") or "",
            "completed_courses": completed_courses,
            "total_score": total_score,
            "earned_certificates": len(user.get("credentials", [])),
            "updated_at": datetime.utcnow()
        }},
        upsert=True,
        return_document=ReturnDocument.AFTER
    )
    logger.info(
        "Leaderboard entry for %s: completed=%d total_score=%d",
        user_id, completed_courses, total_score
    )
    return LeaderboardEntry(**doc)

async def rebuild_leaderboard(db: AsyncIOMotorDatabase) -> int:
    """Batch repair: recompute every user that has passed at least one course"""
    user_ids = await db.user_progress.distinct("user_id", {"final_test_passed": True})
    for user_id in user_ids:
        await recompute_leaderboard_entry(db, user_id)

    # drop entries for users that no longer have any passed course
    await db.leaderboard.delete_many({"user_id": {"$nin": user_ids}})
    return len(user_ids)

# ==================== RANKED READS ====================

def _passed_totals_stages() -> List[dict]:
    return [
        {"$match": {"final_test_passed": True}},
        {"$group": {
            "_id": "$user_id",
            "completed_courses": {"$sum": 1},
            "total_score": {"$sum": "$final_test_score"}
        }},
    ]

async def get_ranked_leaderboard(db: AsyncIOMotorDatabase, limit: Optional[int] = None) -> List[RankedEntry]:
    """
    Rank users by completed courses, then total final-test score
    Aggregated from progress records at read time; rank is never stored
    """
    pipeline = _passed_totals_stages() + [
        # join user profile for display fields
        {"$lookup": {
            "from": "users",
            "localField": "_id",
            "foreignField": "user_id",
            "as": "user"
        }},
        {"$unwind": {"path": "$user", "preserveNullAndEmptyArrays": True}},
        {"$project": {
            "_id": 0,
            "user_id": "$_id",
            "user_name": {"$ifNull": ["$user.name", ANONYMOUS_NAME]},
            "user_image": {"$ifNull": ["$user.image", ""]},
            "completed_courses": 1,
            "total_score": 1
        }},
        {"$sort": {"completed_courses": -1, "total_score": -1, "user_id": 1}},
    ]
    if limit is not None:
        pipeline.append({"$limit": limit})

    results = await db.user_progress.aggregate(pipeline).to_list(length=limit)

    # rank injection after sorting
    return [RankedEntry(rank=idx + 1, **row) for idx, row in enumerate(results)]

async def get_user_rank(db: AsyncIOMotorDatabase, user_id: str) -> Optional[RankedEntry]:
    """The user's row in the ranked leaderboard, or None if they have no passed course"""
    cursor = db.user_progress.find(
        {"user_id": user_id, "final_test_passed": True},
        {"final_test_score": 1}
    )
    passed = await cursor.to_list(length=None)
    if not passed:
        return None

    completed = len(passed)
    total = sum(p.get("final_test_score") or 0 for p in passed)

    pipeline = _passed_totals_stages() + [
        {"$match": {"$or": [
            {"completed_courses": {"$gt": completed}},
            {"completed_courses": completed, "total_score": {"$gt": total}},
            {"completed_courses": completed, "total_score": total, "_id": {"$lt": user_id}},
        ]}},
        {"$group": {"_id": None, "ahead": {"$sum": 1}}},
    ]
    counted = await db.user_progress.aggregate(pipeline).to_list(length=1)
    ahead = counted[0]["ahead"] if counted else 0

    user = await db.users.find_one({"user_id": user_id}, {"name": 1, "image": 1}) or {}
    return RankedEntry(
        rank=ahead + 1,
        user_id=user_id,
        user_name=user.get("name") or ANONYMOUS_NAME,
        user_image=user.get("image") or "",
        completed_courses=completed,
        total_score=total,
    )

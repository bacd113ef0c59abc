from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional

from credilink.courses.leaderboard import get_ranked_leaderboard, get_user_rank, rebuild_leaderboard
from credilink.courses.dependencies import get_db, get_current_user_id, require_admin

router = APIRouter(tags=["Leaderboards"])

# ==================== LEADERBOARD QUERIES ====================

@router.get("/leaderboard")
async def get_leaderboard(
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    entries = await get_ranked_leaderboard(db, limit)
    return {"leaderboard": entries, "total": len(entries)}

@router.get("/leaderboard/me")
async def get_my_rank(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    entry = await get_user_rank(db, user_id)
    if not entry:
        return {"user_id": user_id, "ranked": False, "rank": None, "completed_courses": 0, "total_score": 0}
    return {"ranked": True, **entry.dict()}

@router.post("/leaderboard/rebuild", dependencies=[Depends(require_admin)])
async def rebuild(db: AsyncIOMotorDatabase = Depends(get_db)):
    users = await rebuild_leaderboard(db)
    return {"message": "Leaderboard rebuilt", "users": users}

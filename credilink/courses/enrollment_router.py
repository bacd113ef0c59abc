"""
ENROLLMENT ROUTER
Enrollment is implicit and idempotent: enrolling twice is not an error
"""

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from credilink.courses.enrollment import ensure_enrolled, list_enrolled_courses, course_progress
from credilink.courses.dependencies import get_db, get_current_user_id

router = APIRouter(tags=["Enrollments"])

@router.post("/{course_id}/enroll")
async def enroll_in_course(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    progress = await ensure_enrolled(db, user_id, course_id)
    return {
        "message": "Enrolled successfully",
        "course_id": course_id,
        "progress_id": progress.progress_id,
        "enrolled_at": progress.enrolled_at,
    }

@router.get("/my-courses")
async def get_my_courses(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    courses = await list_enrolled_courses(db, user_id)
    return {"courses": courses, "count": len(courses)}

@router.get("/{course_id}/progress")
async def get_course_progress(
    course_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return await course_progress(db, user_id, course_id)

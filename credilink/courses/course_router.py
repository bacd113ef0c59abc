from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
import re

from credilink.ai.quiz_generation import generate_and_store_module_quiz, generate_and_store_final_test
from credilink.courses.models import CourseCreate, QuizGenerationRequest, FinalTestGenerationRequest
from credilink.courses.database import create_course, list_courses, delete_course_cascade
from credilink.courses.dependencies import get_db, get_current_user_id, require_admin

router = APIRouter(tags=["Course Management"])

def normalize_youtube_url(url: str) -> str:
    """
    Convert any youtube link to embed format
    """
    if not url or "embed/" in url:
        return url

    # watch?v=
    match = re.search(r"v=([^&]+)", url)
    if match:
        return f"https://www.youtube.com/embed/{match.group(1)}"

    # youtu.be/
    match = re.search(r"youtu\.be/([^?]+)", url)
    if match:
        return f"https://www.youtube.com/embed/{match.group(1)}"

    return url

# ==================== COURSE CRUD ====================

@router.post("/create", dependencies=[Depends(require_admin)])
async def create_new_course(course: CourseCreate, db: AsyncIOMotorDatabase = Depends(get_db)):
    for module in course.modules:
        module.video_url = normalize_youtube_url(module.video_url)

    course_id = await create_course(db, course)
    return {"message": "Course created", "course_id": course_id}

@router.get("/list")
async def list_all_courses(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    courses = await list_courses(db, skip, limit)
    return {"courses": courses, "count": len(courses)}

@router.delete("/{course_id}", dependencies=[Depends(require_admin)])
async def delete_course(course_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    removed = await delete_course_cascade(db, course_id)
    return {"message": "Course deleted", "course_id": course_id, "progress_removed": removed}

# ==================== AI AUTHORING ====================

@router.post("/{course_id}/modules/{module_id}/generate-quiz", dependencies=[Depends(require_admin)])
async def generate_quiz(
    course_id: str,
    module_id: str,
    request: QuizGenerationRequest,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    questions = await generate_and_store_module_quiz(
        db, course_id, module_id,
        transcript=request.transcript,
        video_url=request.video_url,
        num_questions=request.num_questions,
    )
    return {"message": "Quiz generated", "module_id": module_id, "questions": questions}

@router.post("/{course_id}/final-test/generate", dependencies=[Depends(require_admin)])
async def generate_course_final_test(
    course_id: str,
    request: FinalTestGenerationRequest,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    questions = await generate_and_store_final_test(
        db, course_id, request.num_questions, request.passing_score
    )
    return {"message": "Final test generated", "course_id": course_id, "questions": questions}

"""
PROGRESS ROUTER
Module viewing, quiz submission, manual completion and the final test
"""

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from credilink.ai.quiz_generation import explain_answers
from credilink.courses.certification import submit_final_test
from credilink.courses.completion import record_quiz_attempt, mark_module_complete
from credilink.courses.database import require_course
from credilink.courses.enrollment import open_module
from credilink.courses.models import AnswerSubmission
from credilink.courses.dependencies import get_db, get_current_user_id

router = APIRouter(tags=["Learning Progress"])

# ==================== MODULES ====================

@router.get("/{course_id}/modules/{module_id}")
async def view_module(
    course_id: str,
    module_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Opening a module enrolls the user if needed"""
    return await open_module(db, user_id, course_id, module_id)

@router.post("/{course_id}/modules/{module_id}/quiz")
async def submit_module_quiz(
    course_id: str,
    module_id: str,
    submission: AnswerSubmission,
    explain: bool = Query(False, description="Attach per-question feedback"),
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    result = await record_quiz_attempt(db, user_id, course_id, module_id, submission.answers)
    response = result.dict()

    if explain:
        course = await require_course(db, course_id)
        module = course.get_module(module_id)
        response["feedback"] = await explain_answers(module.quiz.questions, submission.answers)

    return response

@router.post("/{course_id}/modules/{module_id}/complete")
async def complete_module(
    course_id: str,
    module_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    progress = await mark_module_complete(db, user_id, course_id, module_id)
    return {
        "message": "Module marked complete",
        "module_id": module_id,
        "completed_modules": progress.completed_modules,
    }

# ==================== FINAL TEST ====================

@router.post("/{course_id}/final-test")
async def take_final_test(
    course_id: str,
    submission: AnswerSubmission,
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    return await submit_final_test(db, user_id, course_id, submission.answers)

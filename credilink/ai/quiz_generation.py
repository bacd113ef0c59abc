"""
AI quiz authoring
Model output is untrusted: it is validated before it can become quiz state
"""

import asyncio
import json
import logging
from typing import Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, StrictInt, ValidationError, validator

from credilink.ai.gemini_core import run_gemini
from credilink.ai.prompts import PROMPTS
from credilink.config import QUIZ_QUESTION_COUNT, FINAL_TEST_QUESTION_COUNT
from credilink.courses.database import require_course, set_module_quiz, set_final_test
from credilink.courses.models import QuizQuestion
from credilink.errors import GenerationFailed, InvalidArgument, PreconditionFailed

logger = logging.getLogger(__name__)

OPTIONS_PER_QUESTION = 4

# ==================== VALIDATION ====================

class GeneratedQuestion(BaseModel):
    text: str
    options: List[str]
    correct_option_index: StrictInt

    @validator("text")
    def validate_text(cls, v):
        if not v.strip():
            raise ValueError("question text is empty")
        return v.strip()

    @validator("options")
    def validate_options(cls, v):
        if len(v) != OPTIONS_PER_QUESTION:
            raise ValueError(f"expected {OPTIONS_PER_QUESTION} options, got {len(v)}")
        if any(not o.strip() for o in v):
            raise ValueError("empty option")
        return v

    @validator("correct_option_index")
    def validate_correct_index(cls, v, values):
        options = values.get("options") or []
        if not 0 <= v < len(options):
            raise ValueError(f"correct_option_index {v} out of range")
        return v

class GeneratedQuiz(BaseModel):
    questions: List[GeneratedQuestion]

    @validator("questions")
    def validate_not_empty(cls, v):
        if not v:
            raise ValueError("no questions generated")
        return v

def _extract_json(raw: str, open_char: str, close_char: str) -> Optional[str]:
    start = raw.find(open_char)
    end = raw.rfind(close_char) + 1
    if start == -1 or end <= start:
        return None
    return raw[start:end]

def parse_generated_questions(raw: str, id_prefix: str = "q") -> List[QuizQuestion]:
    """
    Turn raw model text into validated quiz questions

    Raises:
        GenerationFailed: no JSON, bad JSON, or any question failing validation
    """
    json_text = _extract_json(raw or "", "{", "}")
    if json_text is None:
        raise GenerationFailed("No JSON object in model output")

    try:
        data = json.loads(json_text)
    except ValueError as e:
        raise GenerationFailed(f"Model output is not valid JSON: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        raise GenerationFailed("Model output has no questions list")

    items = []
    for item in data["questions"]:
        if isinstance(item, dict):
            item = dict(item)
            if "correct_option_index" not in item and "correctOptionIndex" in item:
                item["correct_option_index"] = item.pop("correctOptionIndex")
            if "text" not in item and "question" in item:
                item["text"] = item.pop("question")
        items.append(item)

    try:
        quiz = GeneratedQuiz(questions=items)
    except ValidationError as e:
        raise GenerationFailed(f"Model output failed validation: {e}")

    return [
        QuizQuestion(
            id=f"{id_prefix}{i + 1}",
            text=q.text,
            options=q.options,
            correct_option_index=q.correct_option_index,
        )
        for i, q in enumerate(quiz.questions)
    ]

# ==================== GENERATION ====================

async def generate_module_quiz(
    module_title: str,
    transcript: Optional[str] = None,
    video_url: Optional[str] = None,
    num_questions: int = QUIZ_QUESTION_COUNT
) -> List[QuizQuestion]:
    if transcript is not None:
        if len(transcript.strip()) < 10:
            raise InvalidArgument("Transcript is too short to generate a quiz from")
        contents = PROMPTS["module_quiz"]["transcript"].format(
            title=module_title, count=num_questions, content=transcript
        )
    elif video_url:
        prompt = PROMPTS["module_quiz"]["video"].format(title=module_title, count=num_questions)
        contents = [prompt, video_url]
    else:
        raise InvalidArgument("Either transcript or video_url is required")

    logger.info("Generating %d quiz questions for module '%s'", num_questions, module_title)
    raw = await asyncio.to_thread(run_gemini, contents)

    try:
        questions = parse_generated_questions(raw, "q")
    except GenerationFailed as e:
        logger.warning("Quiz generation for '%s' rejected: %s", module_title, e.detail)
        raise
    logger.info("Generated %d questions for module '%s'", len(questions), module_title)
    return questions

async def generate_final_test(
    module_quizzes: Dict[str, List[QuizQuestion]],
    course_title: str,
    num_questions: int = FINAL_TEST_QUESTION_COUNT
) -> List[QuizQuestion]:
    """module_quizzes maps module title to that module's questions, in course order"""
    module_quizzes = {title: qs for title, qs in module_quizzes.items() if qs}
    if not module_quizzes:
        raise PreconditionFailed("No module quizzes found to generate a final test from")

    content = "\n\n".join(
        f"Module: {title}\n" + "\n".join(f"Q{i + 1}: {q.text}" for i, q in enumerate(questions))
        for title, questions in module_quizzes.items()
    )
    prompt = PROMPTS["final_test"]["from_modules"].format(
        title=course_title, count=num_questions, content=content
    )

    raw = await asyncio.to_thread(run_gemini, prompt)
    try:
        return parse_generated_questions(raw, "ft")
    except GenerationFailed as e:
        logger.warning("Final test generation for '%s' rejected: %s", course_title, e.detail)
        raise

def _fallback_feedback(question: QuizQuestion, selected: Optional[int]) -> str:
    if selected == question.correct_option_index:
        return "Correct! Well done."
    return f"Incorrect. The correct answer is: {question.options[question.correct_option_index]}"

async def explain_answers(questions: List[QuizQuestion], answers: Dict[int, int]) -> List[dict]:
    """
    Per-question feedback for a graded attempt
    Falls back to plain correct/incorrect feedback when the model output is unusable
    """
    results = [
        {
            "question": q.text,
            "options": q.options,
            "correct_answer_index": q.correct_option_index,
            "selected_answer_index": answers.get(i),
            "feedback": _fallback_feedback(q, answers.get(i)),
        }
        for i, q in enumerate(questions)
    ]

    content = "\n".join(
        f"Question {i + 1}: {q.text}\nOptions: {', '.join(q.options)}\n"
        f"Correct Answer Index: {q.correct_option_index}\nSelected Answer Index: {answers.get(i)}"
        for i, q in enumerate(questions)
    )
    try:
        raw = await asyncio.to_thread(run_gemini, PROMPTS["explain"]["standard"].format(content=content))
        json_text = _extract_json(raw or "", "[", "]")
        feedback = json.loads(json_text) if json_text else None
    except Exception as e:
        logger.warning("Answer explanations unavailable, using fallback: %s", e)
        return results

    if isinstance(feedback, list) and len(feedback) == len(results):
        for result, item in zip(results, feedback):
            if isinstance(item, dict) and isinstance(item.get("feedback"), str) and item["feedback"].strip():
                result["feedback"] = item["feedback"].strip()
    return results

# ==================== STORE ====================

async def store_module_quiz(db: AsyncIOMotorDatabase, course_id: str, module_id: str, questions: List[QuizQuestion]):
    if not questions:
        raise InvalidArgument("Refusing to store an empty quiz")
    await set_module_quiz(db, course_id, module_id, questions)
    logger.info("Stored %d quiz questions for %s/%s", len(questions), course_id, module_id)

async def store_final_test(db: AsyncIOMotorDatabase, course_id: str, questions: List[QuizQuestion], passing_score: int):
    if not questions:
        raise InvalidArgument("Refusing to store an empty final test")
    await set_final_test(db, course_id, questions, passing_score)
    logger.info("Stored %d final test questions for %s", len(questions), course_id)

async def generate_and_store_module_quiz(
    db: AsyncIOMotorDatabase,
    course_id: str,
    module_id: str,
    transcript: Optional[str] = None,
    video_url: Optional[str] = None,
    num_questions: int = QUIZ_QUESTION_COUNT
) -> List[QuizQuestion]:
    course = await require_course(db, course_id)
    module = course.get_module(module_id)
    if not module:
        raise InvalidArgument(f"Module {module_id} is not part of course {course_id}")

    questions = await generate_module_quiz(
        module.title,
        transcript=transcript,
        video_url=video_url or module.video_url or None,
        num_questions=num_questions,
    )
    await store_module_quiz(db, course_id, module_id, questions)
    return questions

async def generate_and_store_final_test(
    db: AsyncIOMotorDatabase,
    course_id: str,
    num_questions: int = FINAL_TEST_QUESTION_COUNT,
    passing_score: Optional[int] = None
) -> List[QuizQuestion]:
    course = await require_course(db, course_id)
    module_quizzes = {m.title: m.quiz.questions for m in course.ordered_modules()}

    questions = await generate_final_test(module_quizzes, course.title, num_questions)
    await store_final_test(
        db, course_id, questions,
        passing_score if passing_score is not None else course.final_test.passing_score
    )
    return questions

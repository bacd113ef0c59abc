import json

import pytest

from credilink.ai import gemini_core, quiz_generation
from credilink.ai.gemini_core import GeminiKeyPool
from credilink.ai.quiz_generation import (
    parse_generated_questions, generate_module_quiz, explain_answers,
    generate_and_store_module_quiz, generate_and_store_final_test
)
from credilink.courses.database import get_course
from credilink.courses.models import QuizQuestion
from credilink.errors import GenerationFailed, InvalidArgument, PreconditionFailed, Unavailable

from conftest import seed_course

def model_output(questions):
    return "```json\n" + json.dumps({"questions": questions}) + "\n```"

GOOD_QUESTION = {"text": "What secures a blockchain?", "options": ["Hashing", "Luck", "Paper", "Email"], "correctOptionIndex": 0}

@pytest.fixture
def gemini(monkeypatch):
    """Replace the Gemini call with a canned response"""
    calls = []
    responses = {"text": model_output([GOOD_QUESTION])}

    def fake_run_gemini(contents):
        calls.append(contents)
        if isinstance(responses["text"], Exception):
            raise responses["text"]
        return responses["text"]

    monkeypatch.setattr(quiz_generation, "run_gemini", fake_run_gemini)
    return calls, responses

# ==================== PARSING ====================

def test_parse_valid_output():
    questions = parse_generated_questions(model_output([GOOD_QUESTION, {**GOOD_QUESTION, "correct_option_index": 3}]))

    assert [q.id for q in questions] == ["q1", "q2"]
    assert questions[0].correct_option_index == 0
    assert questions[0].options == ["Hashing", "Luck", "Paper", "Email"]

@pytest.mark.parametrize("bad", [
    {**GOOD_QUESTION, "correctOptionIndex": 5},
    {**GOOD_QUESTION, "correctOptionIndex": -1},
    {**GOOD_QUESTION, "correctOptionIndex": "2"},
    {**GOOD_QUESTION, "options": ["A", "B", "C"]},
    {**GOOD_QUESTION, "text": "  "},
])
def test_invalid_question_rejects_whole_output(bad):
    with pytest.raises(GenerationFailed):
        parse_generated_questions(model_output([GOOD_QUESTION, bad]))

@pytest.mark.parametrize("raw", ["", "Sorry, I can't help", "{not json}", '{"questions": []}', '{"items": []}'])
def test_unusable_output(raw):
    with pytest.raises(GenerationFailed):
        parse_generated_questions(raw)

# ==================== GENERATION ====================

async def test_generate_from_transcript(gemini):
    calls, _ = gemini
    questions = await generate_module_quiz("Consensus", transcript="Proof of work makes blocks expensive to forge.", num_questions=1)

    assert len(questions) == 1
    assert "Consensus" in calls[0]
    assert "Proof of work" in calls[0]

async def test_generate_from_video(gemini):
    calls, _ = gemini
    await generate_module_quiz("Consensus", video_url="https://www.youtube.com/embed/abc")
    assert calls[0][1] == "https://www.youtube.com/embed/abc"

async def test_generate_needs_a_source(gemini):
    with pytest.raises(InvalidArgument):
        await generate_module_quiz("Consensus")
    with pytest.raises(InvalidArgument):
        await generate_module_quiz("Consensus", transcript="short")

async def test_collaborator_failure_propagates(gemini):
    _, responses = gemini
    responses["text"] = Unavailable("All Gemini API keys are rate-limited")
    with pytest.raises(Unavailable):
        await generate_module_quiz("Consensus", transcript="Proof of work makes blocks expensive.")

async def test_bad_generation_leaves_stored_quiz_untouched(db, gemini):
    _, responses = gemini
    cid = await seed_course(db)
    responses["text"] = model_output([{**GOOD_QUESTION, "correctOptionIndex": 5}])

    with pytest.raises(GenerationFailed):
        await generate_and_store_module_quiz(db, cid, "m1", transcript="Long enough transcript text here.")

    course = await get_course(db, cid)
    assert len(course.get_module("m1").quiz.questions) == 4

async def test_generate_and_store_module_quiz(db, gemini):
    cid = await seed_course(db)
    await generate_and_store_module_quiz(db, cid, "m2", transcript="Long enough transcript text here.")

    course = await get_course(db, cid)
    stored = course.get_module("m2").quiz.questions
    assert len(stored) == 1
    assert stored[0].text == "What secures a blockchain?"
    assert len(course.get_module("m1").quiz.questions) == 4

async def test_generate_and_store_final_test(db, gemini):
    calls, _ = gemini
    cid = await seed_course(db)
    await generate_and_store_final_test(db, cid, num_questions=1, passing_score=60)

    course = await get_course(db, cid)
    assert course.final_test.passing_score == 60
    assert [q.id for q in course.final_test.questions] == ["ft1"]
    assert "Module m1" in calls[0]

async def test_final_test_needs_module_quizzes(db, gemini):
    cid = await seed_course(db, questions_per_module=0)
    with pytest.raises(PreconditionFailed):
        await generate_and_store_final_test(db, cid)

# ==================== EXPLANATIONS ====================

async def test_explanations_fall_back_when_model_fails(gemini):
    _, responses = gemini
    responses["text"] = Unavailable("down")
    questions = [QuizQuestion(text="Q?", options=["A", "B", "C", "D"], correct_option_index=2)]

    right = await explain_answers(questions, {0: 2})
    wrong = await explain_answers(questions, {0: 1})

    assert right[0]["feedback"] == "Correct! Well done."
    assert wrong[0]["feedback"] == "Incorrect. The correct answer is: C"

async def test_explanations_use_model_feedback(gemini):
    _, responses = gemini
    responses["text"] = json.dumps([{"question": "Q?", "feedback": "C is right because of hashing."}])
    questions = [QuizQuestion(text="Q?", options=["A", "B", "C", "D"], correct_option_index=2)]

    result = await explain_answers(questions, {0: 1})
    assert result[0]["feedback"] == "C is right because of hashing."

# ==================== KEY POOL ====================

def test_pool_requires_keys():
    with pytest.raises(Unavailable):
        GeminiKeyPool([])

def test_pool_rotates_past_rate_limited_key(monkeypatch):
    used = []

    class FakeModel:
        def __init__(self, name):
            pass

        def generate_content(self, contents):
            if used[-1] == "k1":
                raise RuntimeError("429 Resource has been exhausted (e.g. check quota).")
            return type("Response", (), {"text": "ok"})()

    monkeypatch.setattr(gemini_core.genai, "configure", lambda api_key: used.append(api_key))
    monkeypatch.setattr(gemini_core.genai, "GenerativeModel", FakeModel)

    pool = GeminiKeyPool(["k1", "k2"])
    assert pool.run("prompt") == "ok"
    assert used == ["k1", "k2"]
    assert pool.stats[0].consecutive_429s == 1

def test_pool_surfaces_other_errors(monkeypatch):
    class BrokenModel:
        def __init__(self, name):
            pass

        def generate_content(self, contents):
            raise RuntimeError("invalid api key")

    monkeypatch.setattr(gemini_core.genai, "configure", lambda api_key: None)
    monkeypatch.setattr(gemini_core.genai, "GenerativeModel", BrokenModel)

    with pytest.raises(Unavailable):
        GeminiKeyPool(["k1"]).run("prompt")

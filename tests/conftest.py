import pytest
from fastapi import Header
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

from credilink.courses.database import create_indexes, create_course
from credilink.courses.models import CourseCreate

ADMIN_EMAIL = "admin@example.com"

def make_questions(count: int, correct: int = 0) -> list:
    return [
        {
            "text": f"Question {i + 1}?",
            "options": ["A", "B", "C", "D"],
            "correct_option_index": correct,
        }
        for i in range(count)
    ]

def answers_with_correct(total: int, correct: int, right: int = 0, wrong: int = 1) -> dict:
    """First `correct` answers right, the rest wrong"""
    return {i: (right if i < correct else wrong) for i in range(total)}

async def seed_course(db, module_ids=("m1", "m2"), questions_per_module=4, final_questions=25, **fields) -> str:
    course = CourseCreate(
        title=fields.pop("title", "Intro to Web3"),
        modules=[
            {
                "module_id": module_id,
                "title": f"Module {module_id}",
                "order": i + 1,
                "quiz": {"questions": make_questions(questions_per_module)},
            }
            for i, module_id in enumerate(module_ids)
        ],
        final_test={"questions": make_questions(final_questions)},
        **fields
    )
    return await create_course(db, course)

@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["credilink_test"]
    await create_indexes(database)
    return database

@pytest.fixture
async def course_id(db):
    return await seed_course(db)

@pytest.fixture
async def client(db, monkeypatch):
    from credilink.main import app
    from credilink.courses.dependencies import get_db, get_identity
    from credilink.users.user_models import AuthenticatedIdentity

    monkeypatch.setattr("credilink.users.user_service.ADMIN_EMAILS", [ADMIN_EMAIL])

    async def override_db():
        return db

    async def override_identity(x_user: str = Header(...), x_email: str = Header(None), x_name: str = Header(None)):
        return AuthenticatedIdentity(user_id=x_user, email=x_email, name=x_name)

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_identity] = override_identity

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

def as_user(user_id: str, email: str = None, name: str = None) -> dict:
    headers = {"X-User": user_id}
    if email:
        headers["X-Email"] = email
    if name:
        headers["X-Name"] = name
    return headers

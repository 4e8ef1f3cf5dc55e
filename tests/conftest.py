import os

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./test_careerpath.db")

# Settings are read once at import time; configure before importing the app
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LLM_ENABLED", "false")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")
os.environ.setdefault("NOTIFICATION_WEBHOOK_URL", "")
os.environ.setdefault("N8N_WEBHOOK_URL", "")
os.environ.setdefault("NOTIFICATION_WEBHOOK_SECRET", "test-webhook-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from careerpath.core.database import Base, get_db
from careerpath.core.security import create_access_token, hash_password
from careerpath.main import app
from careerpath.services.llm import LLMResult, LLMScore

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def _setup_db():
    """Create tables, yield, then drop."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture()
async def db_session(_setup_db):
    async with TestSession() as session:
        yield session


@pytest_asyncio.fixture()
async def client(_setup_db):
    async def override_get_db():
        async with TestSession() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _create_user(db_session, email, role="admin"):
    from careerpath.models.user import User

    user = User(
        email=email,
        password_hash=hash_password("testpass123"),
        full_name=f"{role.capitalize()} User",
        role=role,
    )
    db_session.add(user)
    await db_session.commit()

    token = create_access_token({"sub": str(user.id), "role": role})
    return {"Authorization": f"Bearer {token}"}, user


@pytest_asyncio.fixture()
async def admin_headers(db_session):
    headers, _ = await _create_user(db_session, "admin@test.com", "admin")
    return headers


@pytest_asyncio.fixture()
async def counselor_headers(db_session):
    headers, _ = await _create_user(db_session, "counselor@test.com", "counselor")
    return headers


@pytest_asyncio.fixture()
async def student_data(db_session):
    return await _create_user(db_session, "student@test.com", "student")


@pytest_asyncio.fixture()
async def other_student_headers(db_session):
    headers, _ = await _create_user(db_session, "other@test.com", "student")
    return headers


def make_profile(**overrides) -> dict:
    """A valid intake payload for a grade 12 student interested in technology."""
    profile = {
        "personal_info": {
            "name": "Aarav Sharma",
            "grade": "12",
            "board": "CBSE",
            "language_preference": "english",
            "age": 17,
        },
        "academic_data": {
            "interests": ["Technology", "Mathematics"],
            "subjects": ["Mathematics", "Physics", "Computer Science"],
            "performance": "Excellent",
            "favorite_subjects": ["Mathematics", "Computer Science"],
            "extracurricular_activities": ["Coding club"],
        },
        "socioeconomic_data": {
            "location": "Pune, Maharashtra",
            "family_background": "Service",
            "economic_factors": ["Stable income"],
            "rural_urban": "urban",
            "internet_access": True,
            "device_access": ["Laptop", "Smartphone"],
        },
        "family_income": "5-10 Lakhs",
    }
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(profile.get(section), dict):
            profile[section] = {**profile[section], **values}
        else:
            profile[section] = values
    return profile


# Every optional intake detail filled in, on top of make_profile()
DETAILED_OVERRIDES = {
    "personal_info": {"gender": "female", "category": "General"},
    "academic_data": {"achievements": ["District science fair winner"]},
    "socioeconomic_data": {"parent_occupation": {"father": "Engineer"}, "household_size": 4},
    "aspirations": {"preferred_careers": ["Software Engineer"]},
    "constraints": {"time_constraints": "Evenings only"},
}


@pytest.fixture()
def profile_payload():
    return make_profile()


class StubLLM:
    """Stands in for LLMClient: fixed scores, or an error to raise."""

    def __init__(self, scores: dict[str, int] | None = None, error: Exception | None = None):
        self.scores = scores or {}
        self.error = error
        self.calls = 0

    @property
    def enabled(self) -> bool:
        return True

    @property
    def model(self) -> str:
        return "stub-model"

    def score_careers(self, profile, careers, template="nep2020"):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return LLMResult(
            model=self.model,
            scores={
                career_id: LLMScore(career_id=career_id, match_score=score, reasoning="stub reasoning")
                for career_id, score in self.scores.items()
            },
        )

    def stats(self) -> dict:
        return {"calls": self.calls, "enabled": True, "model": self.model}

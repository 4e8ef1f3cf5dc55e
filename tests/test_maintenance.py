"""Retention purge run against an in-memory SQLite database."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from careerpath.core import database
from careerpath.core.database import Base
from careerpath.models.analytics_entry import AnalyticsEntry
from careerpath.models.recommendation import Recommendation
from careerpath.models.student_profile import StudentProfile
from careerpath.workers.celery_app import celery_app
from careerpath.workers.maintenance import purge_expired, purge_expired_records

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def session():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    with Session(engine) as s:
        yield s
    engine.dispose()


def _profile(profile_id: str, expires_at: datetime) -> StudentProfile:
    return StudentProfile(
        id=profile_id,
        data={},
        grade="12",
        board="CBSE",
        language_preference="english",
        rural_urban="urban",
        family_income="5-10 Lakhs",
        created_at=expires_at - timedelta(hours=24),
        expires_at=expires_at,
    )


def _recommendation(profile_id: str) -> Recommendation:
    return Recommendation(profile_id=profile_id, recommendations=[], context={}, ai_model="rules-v1")


def _analytics(created_at: datetime) -> AnalyticsEntry:
    return AnalyticsEntry(
        profile_hash="0123456789abcdef",
        grade="12",
        board="CBSE",
        region="Kerala",
        rural_urban="rural",
        language="malayalam",
        income_range="1-3 Lakhs",
        family_background="agriculture",
        performance="Good",
        ai_model="rules-v1",
        created_at=created_at,
    )


def _seed(session: Session) -> None:
    session.add_all(
        [
            _profile("profile_old", NOW - timedelta(hours=1)),
            _profile("profile_live", NOW + timedelta(hours=5)),
            _analytics(NOW - timedelta(days=400)),
            _analytics(NOW - timedelta(days=3)),
        ]
    )
    session.flush()
    session.add_all([_recommendation("profile_old"), _recommendation("profile_live")])
    session.commit()


def _count(session: Session, model) -> int:
    return session.scalar(select(func.count()).select_from(model))


def test_purge_removes_expired_rows(session):
    _seed(session)

    counts = purge_expired_records(session, now=NOW)

    assert counts == {"profiles": 1, "recommendations": 1, "analytics_entries": 1}
    assert session.get(StudentProfile, "profile_live") is not None
    assert session.get(StudentProfile, "profile_old") is None
    assert _count(session, Recommendation) == 1
    assert _count(session, AnalyticsEntry) == 1


def test_purge_with_nothing_expired(session):
    session.add(_profile("profile_live", NOW + timedelta(hours=5)))
    session.commit()

    assert purge_expired_records(session, now=NOW) == {
        "profiles": 0,
        "recommendations": 0,
        "analytics_entries": 0,
    }


def test_task_uses_sync_session(session, monkeypatch):
    session.add(_profile("profile_gone", datetime.now(timezone.utc) - timedelta(minutes=5)))
    session.commit()
    monkeypatch.setattr(database, "get_sync_session", lambda: session)

    counts = purge_expired()

    assert counts["profiles"] == 1


def test_purge_is_scheduled_hourly():
    entry = celery_app.conf.beat_schedule["purge-expired-records"]
    assert entry["task"] == "maintenance.purge_expired"
    assert entry["schedule"] == 3600.0

from datetime import datetime, timedelta, timezone

import structlog
from celery import shared_task
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from careerpath.core.config import get_settings
from careerpath.models.analytics_entry import AnalyticsEntry
from careerpath.models.recommendation import Recommendation
from careerpath.models.student_profile import StudentProfile

logger = structlog.get_logger()


def purge_expired_records(session: Session, now: datetime | None = None) -> dict:
    """Delete expired profiles with their recommendations, and stale analytics.

    Recommendations are deleted explicitly: SQLite does not enforce the
    ON DELETE CASCADE unless foreign keys are switched on.
    """
    settings = get_settings()
    now = now or datetime.now(timezone.utc)

    expired_ids = select(StudentProfile.id).where(StudentProfile.expires_at < now)
    recs = session.execute(delete(Recommendation).where(Recommendation.profile_id.in_(expired_ids)))
    profiles = session.execute(delete(StudentProfile).where(StudentProfile.expires_at < now))

    cutoff = now - timedelta(days=settings.ANALYTICS_RETENTION_DAYS)
    analytics = session.execute(delete(AnalyticsEntry).where(AnalyticsEntry.created_at < cutoff))
    session.commit()

    counts = {
        "profiles": profiles.rowcount or 0,
        "recommendations": recs.rowcount or 0,
        "analytics_entries": analytics.rowcount or 0,
    }
    logger.info("purge_expired_done", **counts)
    return counts


@shared_task(name="maintenance.purge_expired")
def purge_expired() -> dict:
    from careerpath.core.database import get_sync_session

    session = get_sync_session()
    try:
        return purge_expired_records(session)
    except Exception:
        session.rollback()
        logger.exception("purge_expired_failed")
        raise
    finally:
        session.close()

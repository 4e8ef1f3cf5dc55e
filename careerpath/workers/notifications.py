import httpx
import structlog
from celery import shared_task
from sqlalchemy import select
from sqlalchemy.orm import Session

from careerpath.models.recommendation import Recommendation
from careerpath.models.student_profile import StudentProfile
from careerpath.schemas.profile import StudentProfileIn
from careerpath.schemas.recommendation import RecommendationResult

logger = structlog.get_logger()


def deliver_for_profile(session: Session, profile_id: str, notifier) -> int:
    """Send the stored recommendations of a profile to the outbound channels.

    Returns the number of channels that accepted the payload.
    """
    from careerpath.services.notifications import build_payload

    profile = session.get(StudentProfile, profile_id)
    if profile is None:
        logger.warning("deliver_no_profile", profile_id=profile_id)
        return 0

    stored = session.execute(
        select(Recommendation)
        .where(Recommendation.profile_id == profile_id)
        .order_by(Recommendation.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if stored is None:
        logger.warning("deliver_no_recommendation", profile_id=profile_id)
        return 0

    payload = build_payload(
        profile_id,
        StudentProfileIn.model_validate(profile.data),
        RecommendationResult.model_validate(stored.result_data()),
    )
    deliveries = notifier.deliver(payload, profile_id)
    session.add_all(deliveries)
    session.commit()
    return sum(1 for d in deliveries if d.success)


@shared_task(name="notifications.deliver_recommendations")
def deliver_recommendations(profile_id: str) -> dict:
    from careerpath.core.database import get_sync_session
    from careerpath.services import notifications

    session = get_sync_session()
    try:
        delivered = deliver_for_profile(session, profile_id, notifications.get_notifier())
        logger.info("deliver_recommendations_done", profile_id=profile_id, delivered=delivered)
        return {"status": "done", "delivered": delivered}
    except Exception as e:
        session.rollback()
        logger.exception("deliver_recommendations_failed", profile_id=profile_id)
        return {"status": "error", "error": str(e)}
    finally:
        session.close()


@shared_task(name="notifications.send_email")
def send_email(to: str, subject: str, html_body: str) -> dict:
    logger.info("send_email", to=to, subject=subject)

    from careerpath.core.config import get_settings

    settings = get_settings()

    if not settings.RESEND_API_KEY:
        logger.warning("email_skip_no_api_key", to=to)
        return {"status": "skipped", "reason": "no_api_key"}

    try:
        response = httpx.post(
            settings.RESEND_API_URL,
            headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            json={
                "from": settings.EMAIL_FROM,
                "to": [to],
                "subject": subject,
                "html": html_body,
            },
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        logger.info("email_sent", to=to)
        return {"status": "sent"}
    except httpx.HTTPError as e:
        logger.error("email_error", to=to, error=str(e))
        return {"status": "error", "error": str(e)}

"""Outbound notifications when recommendations are generated.

Every event is logged in the request. The signed webhook and the n8n trigger
are sent only when their URLs are configured, from the
``notifications.deliver_recommendations`` Celery task for new profiles.
Each channel attempt is stored as a NotificationDelivery row. Delivery
problems are logged and recorded, never raised to the caller.
"""

import asyncio
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from functools import lru_cache

import httpx
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from careerpath.core.config import get_settings
from careerpath.models.notification_delivery import NotificationDelivery
from careerpath.schemas.profile import StudentProfileIn
from careerpath.schemas.recommendation import RecommendationResult
from careerpath.services.analytics import region_of

logger = structlog.get_logger()

RECOMMENDATIONS_EVENT = "career_recommendations_generated"
TEST_EVENT = "notification_test"
SIGNATURE_PREFIX = "sha256="


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, header: str | None, secret: str) -> bool:
    if not header or not secret:
        return False
    received = header.removeprefix(SIGNATURE_PREFIX)
    return hmac.compare_digest(received, sign_payload(body, secret))


def build_payload(
    profile_id: str,
    profile: StudentProfileIn,
    result: RecommendationResult,
) -> dict:
    personal = profile.personal_info
    return {
        "event": RECOMMENDATIONS_EVENT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "student": {
            "profile_id": profile_id,
            "grade": personal.grade,
            "board": personal.board,
            "region": region_of(profile.socioeconomic_data.location),
            "language": personal.language_preference,
        },
        "recommendations": [
            {
                "id": r.id,
                "title": r.title,
                "match_score": r.match_score,
                "nep_category": r.nep_category,
                "colleges": len(r.recommended_colleges),
                "scholarships": len(r.scholarships),
            }
            for r in result.recommendations
        ],
        "metadata": {
            "ai_model": result.metadata.ai_model,
            "confidence": result.metadata.confidence,
            "processing_time_ms": result.metadata.processing_time_ms,
        },
        "n8n_workflow": {
            "trigger": RECOMMENDATIONS_EVENT,
            "language": personal.language_preference,
            "top_career": result.recommendations[0].title if result.recommendations else None,
            "needs_counselor_follow_up": not result.recommendations,
        },
    }


class NotificationService:
    def __init__(self, transport: httpx.BaseTransport | None = None, sleep=time.sleep):
        self.settings = get_settings()
        self._transport = transport
        self._sleep = sleep

    def channels(self) -> dict[str, str]:
        configured = {}
        if self.settings.NOTIFICATION_WEBHOOK_URL:
            configured["webhook"] = self.settings.NOTIFICATION_WEBHOOK_URL
        if self.settings.N8N_WEBHOOK_URL:
            configured["n8n"] = self.settings.N8N_WEBHOOK_URL
        return configured

    def _headers(self, event: str, body: bytes, signed: bool) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Event-Type": event,
            "X-Timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if signed and self.settings.NOTIFICATION_WEBHOOK_SECRET:
            signature = sign_payload(body, self.settings.NOTIFICATION_WEBHOOK_SECRET)
            headers["X-Webhook-Signature"] = f"{SIGNATURE_PREFIX}{signature}"
        return headers

    def _post(
        self,
        client: httpx.Client,
        url: str,
        body: bytes,
        headers: dict[str, str],
    ) -> tuple[bool, int | None, int, str | None]:
        """POST with retries. Returns (success, status_code, attempts, error)."""
        attempts = max(1, self.settings.NOTIFICATION_RETRY_ATTEMPTS)
        status_code = None
        error = None
        for attempt in range(1, attempts + 1):
            try:
                resp = client.post(url, content=body, headers=headers)
                status_code = resp.status_code
                if resp.status_code < 300:
                    return True, status_code, attempt, None
                error = f"HTTP {resp.status_code}"
            except httpx.HTTPError as e:
                error = f"{type(e).__name__}: {e}"

            logger.warning("notification_attempt_failed", url=url, attempt=attempt, error=error)
            if attempt < attempts:
                self._sleep(self.settings.NOTIFICATION_RETRY_DELAY_SECONDS * attempt)
        return False, status_code, attempts, error

    def log_event(self, payload: dict, profile_id: str | None = None) -> NotificationDelivery:
        """The log channel; always succeeds."""
        event = payload.get("event", RECOMMENDATIONS_EVENT)
        logger.info(
            "notification_event",
            notification_event=event,
            profile_id=profile_id,
            recommendations=len(payload.get("recommendations", [])),
        )
        return NotificationDelivery(
            profile_id=profile_id,
            event=event,
            channel="log",
            success=True,
            attempts=1,
        )

    def deliver(self, payload: dict, profile_id: str | None = None) -> list[NotificationDelivery]:
        """Send the payload to every configured outbound channel.

        Blocking, with retries between attempts. Returns one unsaved
        NotificationDelivery per channel; the caller adds them to its session.
        """
        channels = self.channels()
        if not channels:
            return []

        event = payload.get("event", RECOMMENDATIONS_EVENT)
        body = json.dumps(payload, default=str).encode()
        deliveries = []
        with httpx.Client(
            timeout=self.settings.NOTIFICATION_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            for channel, url in channels.items():
                headers = self._headers(event, body, signed=channel == "webhook")
                success, status_code, attempts, error = self._post(client, url, body, headers)
                deliveries.append(
                    NotificationDelivery(
                        profile_id=profile_id,
                        event=event,
                        channel=channel,
                        target=url,
                        success=success,
                        status_code=status_code,
                        attempts=attempts,
                        error=error,
                    )
                )
                if success:
                    logger.info("notification_delivered", channel=channel, profile_id=profile_id)
                else:
                    logger.error(
                        "notification_delivery_failed",
                        channel=channel,
                        notification_event=event,
                        profile_id=profile_id,
                        error=error,
                    )
        return deliveries

    async def dispatch(
        self,
        db: AsyncSession,
        payload: dict,
        profile_id: str | None = None,
    ) -> list[NotificationDelivery]:
        """Log and deliver now, recording every channel. For explicit sends."""
        deliveries = [self.log_event(payload, profile_id)]
        deliveries.extend(await asyncio.to_thread(self.deliver, payload, profile_id))
        db.add_all(deliveries)
        await db.flush()
        return deliveries

    async def send_test(self, db: AsyncSession) -> list[NotificationDelivery]:
        payload = {
            "event": TEST_EVENT,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": "Test notification",
        }
        return await self.dispatch(db, payload)

    def health(self) -> dict:
        channels = self.channels()
        return {
            "status": "healthy",
            "channels": ["log", *channels],
            "webhook_signed": bool(self.settings.NOTIFICATION_WEBHOOK_SECRET),
        }


async def delivery_stats(db: AsyncSession) -> dict:
    result = await db.execute(
        select(NotificationDelivery.success, func.count()).group_by(NotificationDelivery.success)
    )
    counts = {bool(success): count for success, count in result.all()}
    total = sum(counts.values())
    succeeded = counts.get(True, 0)
    return {
        "total": total,
        "success": succeeded,
        "failure": counts.get(False, 0),
        "success_rate": round(succeeded / total * 100, 1) if total else 0.0,
    }


@lru_cache
def get_notifier() -> NotificationService:
    return NotificationService()

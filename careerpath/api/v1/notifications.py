import json

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from careerpath.api.v1.profiles import latest_result
from careerpath.core.config import get_settings
from careerpath.core.database import get_db
from careerpath.core.dependencies import STAFF_ROLES, require_role
from careerpath.core.errors import AppError
from careerpath.models.notification_delivery import NotificationDelivery
from careerpath.models.student_profile import StudentProfile
from careerpath.models.user import User
from careerpath.schemas.profile import StudentProfileIn
from careerpath.services.notifications import (
    NotificationService,
    build_payload,
    delivery_stats,
    get_notifier,
    verify_signature,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/notify", tags=["notifications"])


class NotifyRequest(BaseModel):
    profile_id: str


def _delivery_response(deliveries: list[NotificationDelivery]) -> JSONResponse:
    """200 when every channel succeeded, 207 on partial success, 502 when all failed."""
    outbound = [d for d in deliveries if d.channel != "log"] or deliveries
    succeeded = sum(1 for d in outbound if d.success)
    if succeeded == len(outbound):
        status_code = 200
    elif succeeded:
        status_code = 207
    else:
        status_code = 502
    return JSONResponse(
        status_code=status_code,
        content={
            "success": status_code == 200,
            "deliveries": [
                {
                    "channel": d.channel,
                    "success": d.success,
                    "status_code": d.status_code,
                    "attempts": d.attempts,
                    "error": d.error,
                }
                for d in deliveries
            ],
        },
    )


@router.post("")
async def notify(
    data: NotifyRequest,
    current_user: User = Depends(require_role(*STAFF_ROLES)),
    notifier: NotificationService = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    profile = await db.get(StudentProfile, data.profile_id)
    result = await latest_result(db, data.profile_id) if profile else None
    if profile is None or result is None:
        raise AppError("Profile not found", status_code=404, code="PROFILE_NOT_FOUND")

    parsed = StudentProfileIn.model_validate(profile.data)
    payload = build_payload(data.profile_id, parsed, result)
    deliveries = await notifier.dispatch(db, payload, profile_id=data.profile_id)
    return _delivery_response(deliveries)


@router.get("/stats")
async def stats(
    current_user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await delivery_stats(db)


@router.post("/test")
async def send_test(
    current_user: User = Depends(require_role("admin")),
    notifier: NotificationService = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    deliveries = await notifier.send_test(db)
    return _delivery_response(deliveries)


@router.get("/health")
async def health(notifier: NotificationService = Depends(get_notifier)):
    return notifier.health()


@router.post("/receive")
async def receive(request: Request):
    """Accept a signed callback, e.g. from the n8n workflow."""
    body = await request.body()
    secret = get_settings().NOTIFICATION_WEBHOOK_SECRET
    if not verify_signature(body, request.headers.get("X-Webhook-Signature"), secret):
        raise AppError("Invalid webhook signature", status_code=401, code="INVALID_SIGNATURE")

    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError:
        raise AppError("Body is not valid JSON", status_code=400, code="VALIDATION_ERROR")

    logger.info(
        "notification_received",
        notification_event=payload.get("event") if isinstance(payload, dict) else None,
        event_type=request.headers.get("X-Event-Type"),
    )
    return {"status": "ok"}

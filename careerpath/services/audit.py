"""Audit trail for account, profile and admin actions.

Audit rows outlive the 24h student profiles, so details never carry
personal fields; those keys are dropped before the row is written.
"""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from careerpath.models.audit_log import AuditLog

logger = structlog.get_logger()

PERSONAL_KEYS = frozenset({"name", "full_name", "email", "password", "phone", "location"})


def scrub_details(details: dict | None) -> dict | None:
    if details is None:
        return None
    return {k: v for k, v in details.items() if k.lower() not in PERSONAL_KEYS}


async def log_action(
    db: AsyncSession,
    *,
    user_id: UUID | None = None,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    details: dict | None = None,
):
    """Add an audit row to the session. Never raises."""
    try:
        db.add(
            AuditLog(
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=scrub_details(details),
            )
        )
    except Exception:
        logger.warning("audit_log_failed", action=action, entity_type=entity_type)
        return
    logger.info("audit", action=action, entity_type=entity_type, entity_id=entity_id)

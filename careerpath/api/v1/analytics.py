from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from careerpath.core.config import get_settings
from careerpath.core.database import get_db
from careerpath.core.dependencies import STAFF_ROLES, require_role
from careerpath.models.user import User
from careerpath.services import analytics
from careerpath.services.audit import log_action

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _filters(
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    grade: str | None = Query(None),
    board: str | None = Query(None),
    location: str | None = Query(None),
    rural_urban: str | None = Query(None),
    language: str | None = Query(None),
    income_range: str | None = Query(None),
) -> dict:
    return {
        "date_from": date_from,
        "date_to": date_to,
        "grade": grade,
        "board": board,
        "location": location,
        "rural_urban": rural_urban,
        "language": language,
        "income_range": income_range,
    }


@router.get("")
async def list_entries(
    limit: int = Query(100, ge=1),
    offset: int = Query(0, ge=0),
    filters: dict = Depends(_filters),
    current_user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    entries = await analytics.list_entries(db, limit=limit, offset=offset, **filters)
    return {
        "items": [analytics.entry_to_dict(e) for e in entries],
        "count": len(entries),
        "limit": min(limit, analytics.MAX_LIST_LIMIT),
        "offset": offset,
    }


@router.get("/dashboard")
async def dashboard(
    filters: dict = Depends(_filters),
    current_user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await analytics.dashboard(db, **filters)


@router.get("/stats")
async def stats(
    current_user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await analytics.stats(db)


@router.get("/export")
async def export(
    format: Literal["json", "csv"] = Query("json"),
    limit: int = Query(analytics.MAX_LIST_LIMIT, ge=1),
    filters: dict = Depends(_filters),
    current_user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Export anonymized entries as JSON or CSV."""
    entries = await analytics.list_entries(db, limit=limit, **filters)
    if format == "json":
        return {"items": [analytics.entry_to_dict(e) for e in entries], "count": len(entries)}

    filename = f"careerpath_analytics_{datetime.now().strftime('%Y%m%d')}.csv"
    return StreamingResponse(
        iter([analytics.to_csv(entries)]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.delete("/cleanup")
async def cleanup(
    retention_days: int | None = Query(None, ge=1),
    current_user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    days = retention_days or get_settings().ANALYTICS_RETENTION_DAYS
    deleted = await analytics.cleanup(db, retention_days=days)
    await log_action(
        db,
        user_id=current_user.id,
        action="analytics_cleanup",
        entity_type="analytics",
        details={"retention_days": days, "deleted": deleted},
    )
    return {"deleted": deleted, "retention_days": days}


@router.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    return await analytics.health(db)

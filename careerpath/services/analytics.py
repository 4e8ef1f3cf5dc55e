"""Anonymized recommendation analytics: recording, filtering, aggregation, export."""

import csv
import hashlib
import io
from collections import Counter
from datetime import date, datetime, timedelta, timezone

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from careerpath.models.analytics_entry import AnalyticsEntry
from careerpath.schemas.profile import StudentProfileIn
from careerpath.schemas.recommendation import RecommendationResult
from careerpath.services.recommendation_engine import FALLBACK_MODEL, RULES_MODEL

logger = structlog.get_logger()

MAX_LIST_LIMIT = 1000
TOP_N = 10
TREND_DAYS = 30
STREAM_BATCH_SIZE = 500
UNSPECIFIED = "Unspecified"

BREAKDOWNS = {
    "by_grade": AnalyticsEntry.grade,
    "by_board": AnalyticsEntry.board,
    "by_rural_urban": AnalyticsEntry.rural_urban,
    "by_language": AnalyticsEntry.language,
    "by_income_range": AnalyticsEntry.income_range,
    "by_category": AnalyticsEntry.category,
    "by_gender": AnalyticsEntry.gender,
    "by_performance": AnalyticsEntry.performance,
    "by_region": AnalyticsEntry.region,
    "by_family_background": AnalyticsEntry.family_background,
}

LIST_COLUMNS = {
    "top_interests": AnalyticsEntry.interests,
    "top_subjects": AnalyticsEntry.subjects,
    "top_careers": AnalyticsEntry.career_titles,
}

FAMILY_BACKGROUND_BUCKETS = {
    "business": ("business", "trade", "shop", "merchant", "self-employed"),
    "service": ("service", "job", "employee", "salaried", "government"),
    "agriculture": ("agricultur", "farm", "farmer", "kisan"),
    "professional": ("professional", "doctor", "engineer", "lawyer", "teacher", "accountant"),
}

CSV_COLUMNS = [
    "profile_hash",
    "created_at",
    "grade",
    "board",
    "region",
    "rural_urban",
    "language",
    "income_range",
    "gender",
    "category",
    "family_background",
    "performance",
    "interests",
    "subjects",
    "career_ids",
    "career_titles",
    "avg_match_score",
    "ai_model",
    "processing_time_ms",
]


def hash_profile_id(profile_id: str) -> str:
    return hashlib.sha256(profile_id.encode()).hexdigest()[:16]


def region_of(location: str) -> str:
    parts = [p.strip() for p in location.split(",") if p.strip()]
    return parts[-1] if parts else "Unknown"


def bucket_family_background(background: str) -> str:
    lowered = background.lower()
    for bucket, keywords in FAMILY_BACKGROUND_BUCKETS.items():
        if any(k in lowered for k in keywords):
            return bucket
    return "other"


def build_entry(
    profile_id: str,
    profile: StudentProfileIn,
    result: RecommendationResult,
) -> AnalyticsEntry:
    personal = profile.personal_info
    socio = profile.socioeconomic_data
    scores = [r.match_score for r in result.recommendations]
    return AnalyticsEntry(
        profile_hash=hash_profile_id(profile_id),
        grade=personal.grade,
        board=personal.board,
        region=region_of(socio.location),
        rural_urban=socio.rural_urban,
        language=personal.language_preference,
        income_range=profile.family_income,
        gender=personal.gender,
        category=personal.category,
        family_background=bucket_family_background(socio.family_background),
        performance=profile.academic_data.performance,
        interests=[i.lower() for i in profile.academic_data.interests],
        subjects=[s.lower() for s in profile.academic_data.subjects],
        career_ids=[r.id for r in result.recommendations],
        career_titles=[r.title for r in result.recommendations],
        avg_match_score=round(sum(scores) / len(scores), 1) if scores else None,
        ai_model=result.metadata.ai_model,
        processing_time_ms=result.metadata.processing_time_ms,
    )


async def record(
    db: AsyncSession,
    profile_id: str,
    profile: StudentProfileIn,
    result: RecommendationResult,
) -> AnalyticsEntry:
    entry = build_entry(profile_id, profile, result)
    db.add(entry)
    await db.flush()
    logger.info("analytics_recorded", profile_hash=entry.profile_hash)
    return entry


def _apply_filters(
    query,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    grade: str | None = None,
    board: str | None = None,
    location: str | None = None,
    rural_urban: str | None = None,
    language: str | None = None,
    income_range: str | None = None,
):
    if date_from:
        query = query.where(AnalyticsEntry.created_at >= date_from)
    if date_to:
        query = query.where(AnalyticsEntry.created_at <= date_to)
    if grade:
        query = query.where(AnalyticsEntry.grade == grade)
    if board:
        query = query.where(AnalyticsEntry.board == board)
    if location:
        query = query.where(func.lower(AnalyticsEntry.region).contains(location.lower()))
    if rural_urban:
        query = query.where(AnalyticsEntry.rural_urban == rural_urban)
    if language:
        query = query.where(AnalyticsEntry.language == language)
    if income_range:
        query = query.where(AnalyticsEntry.income_range == income_range)
    return query


async def list_entries(
    db: AsyncSession,
    *,
    limit: int = 100,
    offset: int = 0,
    **filters,
) -> list[AnalyticsEntry]:
    limit = max(1, min(limit, MAX_LIST_LIMIT))
    query = (
        _apply_filters(select(AnalyticsEntry), **filters)
        .order_by(AnalyticsEntry.created_at.desc())
        .offset(max(0, offset))
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


def _top(counter: Counter, n: int = TOP_N) -> list[dict]:
    return [{"name": name, "count": count} for name, count in counter.most_common(n)]


async def count_by(db: AsyncSession, column, **filters) -> dict:
    query = _apply_filters(select(column, func.count()).group_by(column), **filters)
    result = await db.execute(query)
    return {(value if value is not None else UNSPECIFIED): count for value, count in result.all()}


async def top_list_items(db: AsyncSession, **filters) -> dict[str, list[dict]]:
    """Most frequent items of the JSON list columns.

    JSON arrays do not aggregate portably between PostgreSQL and SQLite, so
    only these columns are streamed and counted here.
    """
    counters = {name: Counter() for name in LIST_COLUMNS}
    query = _apply_filters(select(*LIST_COLUMNS.values()), **filters).execution_options(
        yield_per=STREAM_BATCH_SIZE
    )
    result = await db.stream(query)
    async for row in result:
        for name, values in zip(LIST_COLUMNS, row):
            counters[name].update(values or [])
    return {name: _top(counter) for name, counter in counters.items()}


async def summarize(db: AsyncSession, **filters) -> dict:
    totals = _apply_filters(
        select(
            func.count(),
            func.avg(AnalyticsEntry.avg_match_score),
            func.avg(AnalyticsEntry.processing_time_ms),
        ).select_from(AnalyticsEntry),
        **filters,
    )
    total, avg_score, avg_time = (await db.execute(totals)).one()

    summary = {"total": total}
    for name, column in BREAKDOWNS.items():
        summary[name] = await count_by(db, column, **filters)
    summary.update(await top_list_items(db, **filters))

    models = await count_by(db, AnalyticsEntry.ai_model, **filters)
    fallback_runs = models.get(FALLBACK_MODEL, 0)
    ai_runs = total - models.get(RULES_MODEL, 0) - fallback_runs
    summary.update(
        {
            "avg_match_score": round(float(avg_score), 1) if avg_score is not None else None,
            "avg_processing_time_ms": round(float(avg_time)) if avg_time is not None else None,
            "ai_share": round(ai_runs / total * 100, 1) if total else 0.0,
            "fallback_share": round(fallback_runs / total * 100, 1) if total else 0.0,
        }
    )
    return summary


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def daily_trends(entries, days: int = TREND_DAYS, today: date | None = None) -> list[dict]:
    """Per-day counts over the last ``days`` days.

    ``entries`` need ``created_at`` and ``avg_match_score``; model instances
    and result rows both work.
    """
    today = today or datetime.now(timezone.utc).date()
    start = today - timedelta(days=days - 1)
    buckets: dict[date, list] = {start + timedelta(days=i): [] for i in range(days)}
    for entry in entries:
        day = _as_utc(entry.created_at).date()
        if day in buckets:
            buckets[day].append(entry)

    trends = []
    for day, bucket in buckets.items():
        scores = [e.avg_match_score for e in bucket if e.avg_match_score is not None]
        trends.append(
            {
                "date": day.isoformat(),
                "count": len(bucket),
                "avg_match_score": round(sum(scores) / len(scores), 1) if scores else None,
            }
        )
    return trends


async def trend_rows(db: AsyncSession, days: int = TREND_DAYS, **filters) -> list:
    """Rows for daily_trends, limited to the trend window whatever the filters say."""
    today = datetime.now(timezone.utc).date()
    since = datetime.combine(today - timedelta(days=days - 1), datetime.min.time(), tzinfo=timezone.utc)
    date_from = filters.get("date_from")
    filters["date_from"] = max(_as_utc(date_from), since) if date_from else since
    query = _apply_filters(select(AnalyticsEntry.created_at, AnalyticsEntry.avg_match_score), **filters)
    result = await db.execute(query)
    return list(result.all())


def insights(summary: dict) -> list[str]:
    if not summary["total"]:
        return ["No recommendation runs recorded yet"]

    lines = [f"{summary['total']} recommendation runs recorded"]
    if summary["top_careers"]:
        top = summary["top_careers"][0]
        lines.append(f"Most recommended career: {top['name']} ({top['count']} times)")
    if summary["top_interests"]:
        top = summary["top_interests"][0]
        lines.append(f"Most common interest: {top['name']}")
    rural = summary["by_rural_urban"].get("rural", 0)
    if rural:
        lines.append(f"{round(rural / summary['total'] * 100)}% of students are from rural areas")
    if summary["avg_match_score"] is not None:
        lines.append(f"Average match score is {summary['avg_match_score']}")
    if summary["fallback_share"] > 10:
        lines.append(
            f"AI scoring fell back to rules in {summary['fallback_share']}% of runs; check the AI service"
        )
    return lines


async def dashboard(db: AsyncSession, **filters) -> dict:
    summary = await summarize(db, **filters)
    return {
        "summary": summary,
        "trends": daily_trends(await trend_rows(db, **filters)),
        "insights": insights(summary),
    }


async def stats(db: AsyncSession) -> dict:
    total = await db.scalar(select(func.count()).select_from(AnalyticsEntry))
    oldest = await db.scalar(select(func.min(AnalyticsEntry.created_at)))
    newest = await db.scalar(select(func.max(AnalyticsEntry.created_at)))
    since = datetime.now(timezone.utc) - timedelta(days=1)
    last_24h = await db.scalar(
        select(func.count()).select_from(AnalyticsEntry).where(AnalyticsEntry.created_at >= since)
    )
    return {
        "total_entries": total or 0,
        "entries_last_24h": last_24h or 0,
        "oldest_entry": oldest.isoformat() if oldest else None,
        "newest_entry": newest.isoformat() if newest else None,
    }


async def cleanup(db: AsyncSession, retention_days: int = 365) -> int:
    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    result = await db.execute(delete(AnalyticsEntry).where(AnalyticsEntry.created_at < cutoff))
    deleted = result.rowcount or 0
    logger.info("analytics_cleanup", retention_days=retention_days, deleted=deleted)
    return deleted


def entry_to_dict(entry: AnalyticsEntry) -> dict:
    return {
        "profile_hash": entry.profile_hash,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
        "grade": entry.grade,
        "board": entry.board,
        "region": entry.region,
        "rural_urban": entry.rural_urban,
        "language": entry.language,
        "income_range": entry.income_range,
        "gender": entry.gender,
        "category": entry.category,
        "family_background": entry.family_background,
        "performance": entry.performance,
        "interests": entry.interests or [],
        "subjects": entry.subjects or [],
        "career_ids": entry.career_ids or [],
        "career_titles": entry.career_titles or [],
        "avg_match_score": entry.avg_match_score,
        "ai_model": entry.ai_model,
        "processing_time_ms": entry.processing_time_ms,
    }


def to_csv(entries: list[AnalyticsEntry]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_COLUMNS)
    for entry in entries:
        row = entry_to_dict(entry)
        writer.writerow(
            ";".join(row[col]) if isinstance(row[col], list) else ("" if row[col] is None else row[col])
            for col in CSV_COLUMNS
        )
    return output.getvalue()


async def health(db: AsyncSession) -> dict:
    total = await db.scalar(select(func.count()).select_from(AnalyticsEntry))
    return {"status": "healthy", "entries": total or 0}

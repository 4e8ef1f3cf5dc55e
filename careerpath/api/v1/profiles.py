from datetime import datetime, timedelta, timezone

import structlog
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from careerpath.core.config import get_settings
from careerpath.core.database import get_db
from careerpath.core.dependencies import (
    STAFF_ROLES,
    get_optional_user,
    has_permission,
    require_role,
)
from careerpath.core.errors import AppError
from careerpath.core.rate_limit import limiter
from careerpath.models.recommendation import Recommendation
from careerpath.models.student_profile import StudentProfile
from careerpath.models.user import User
from careerpath.schemas.profile import ProfileOut, StudentProfileIn, ValidationResultOut
from careerpath.schemas.recommendation import (
    FollowUpQuestionsResponse,
    ProfileRecommendationResponse,
    RecommendationResult,
)
from careerpath.services import analytics
from careerpath.services.audit import log_action
from careerpath.services.notifications import NotificationService, build_payload, get_notifier
from careerpath.services.profile_validation import (
    generate_profile_id,
    profile_completeness,
    profile_summary,
    validate_profile,
)
from careerpath.services.prompts import follow_up_questions
from careerpath.services.recommendation_engine import RecommendationEngine, get_engine
from careerpath.workers.notifications import deliver_recommendations

logger = structlog.get_logger()

router = APIRouter(prefix="/profiles", tags=["profiles"])


def _interest_terms(engine: RecommendationEngine) -> list[str]:
    return [tag for career in engine.catalog.careers for tag in career.interest_tags]


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def _get_visible_profile(
    db: AsyncSession,
    profile_id: str,
    user: User | None,
) -> StudentProfile:
    """Load a live profile the caller may see, or raise 404.

    Owned profiles are visible to their owner and to staff. Anonymous profiles
    are reachable by anyone holding the id.
    """
    profile = await db.get(StudentProfile, profile_id)
    if profile is None or _as_utc(profile.expires_at) <= datetime.now(timezone.utc):
        raise AppError("Profile not found", status_code=404, code="PROFILE_NOT_FOUND")

    if profile.owner_id is not None:
        allowed = user is not None and (
            user.id == profile.owner_id or has_permission(user, "profile:read:any")
        )
        if not allowed:
            # Same answer as a missing profile; do not leak existence
            raise AppError("Profile not found", status_code=404, code="PROFILE_NOT_FOUND")
    return profile


async def latest_result(db: AsyncSession, profile_id: str) -> RecommendationResult | None:
    result = await db.execute(
        select(Recommendation)
        .where(Recommendation.profile_id == profile_id)
        .order_by(Recommendation.created_at.desc())
        .limit(1)
    )
    stored = result.scalar_one_or_none()
    if stored is None:
        return None
    return RecommendationResult.model_validate(stored.result_data())


@router.post("", response_model=ProfileRecommendationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_profile(
    request: Request,
    data: StudentProfileIn,
    current_user: User | None = Depends(get_optional_user),
    engine: RecommendationEngine = Depends(get_engine),
    notifier: NotificationService = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    settings = get_settings()
    validation = validate_profile(data, _interest_terms(engine))
    if not validation.is_valid:
        raise AppError(
            "Profile failed validation",
            status_code=400,
            code=validation.code or "VALIDATION_ERROR",
            details=validation.errors,
        )

    profile_id = generate_profile_id()
    completeness = profile_completeness(data)
    now = datetime.now(timezone.utc)
    profile = StudentProfile(
        id=profile_id,
        owner_id=current_user.id if current_user else None,
        data=data.model_dump(mode="json"),
        grade=data.personal_info.grade,
        board=data.personal_info.board,
        language_preference=data.personal_info.language_preference,
        rural_urban=data.socioeconomic_data.rural_urban,
        family_income=data.family_income,
        completeness=completeness,
        created_at=now,
        expires_at=now + timedelta(hours=settings.PROFILE_RETENTION_HOURS),
    )
    db.add(profile)
    await db.flush()

    result = await engine.generate(data, profile_id)

    scores = [r.match_score for r in result.recommendations]
    db.add(
        Recommendation(
            profile_id=profile_id,
            recommendations=[r.model_dump(mode="json") for r in result.recommendations],
            context=result.context.model_dump(mode="json"),
            ai_model=result.metadata.ai_model,
            processing_time_ms=result.metadata.processing_time_ms,
            confidence=result.metadata.confidence,
            avg_match_score=round(sum(scores) / len(scores), 1) if scores else None,
        )
    )

    await analytics.record(db, profile_id, data, result)

    db.add(notifier.log_event(build_payload(profile_id, data, result), profile_id))

    await log_action(
        db,
        user_id=current_user.id if current_user else None,
        action="create_profile",
        entity_type="student_profile",
        entity_id=profile_id,
        details={"recommendations": len(result.recommendations)},
    )

    if notifier.channels():
        # The worker reads the stored rows
        await db.commit()
        try:
            deliver_recommendations.delay(profile_id)
        except Exception:
            logger.exception("notification_enqueue_failed", profile_id=profile_id)

    logger.info(
        "profile_created",
        profile_id=profile_id,
        completeness=completeness,
        recommendations=len(result.recommendations),
    )
    return ProfileRecommendationResponse(
        **result.model_dump(),
        profile_id=profile_id,
        completeness=completeness,
        warnings=validation.warnings,
    )


@router.post("/validate", response_model=ValidationResultOut)
async def validate(
    data: StudentProfileIn,
    engine: RecommendationEngine = Depends(get_engine),
):
    validation = validate_profile(data, _interest_terms(engine))
    return ValidationResultOut(
        is_valid=validation.is_valid,
        errors=validation.errors,
        warnings=validation.warnings,
        completeness=profile_completeness(data),
    )


@router.get("/stats")
async def profile_stats(
    current_user: User = Depends(require_role(*STAFF_ROLES)),
    engine: RecommendationEngine = Depends(get_engine),
    db: AsyncSession = Depends(get_db),
):
    now = datetime.now(timezone.utc)
    active = await db.scalar(
        select(func.count()).select_from(StudentProfile).where(StudentProfile.expires_at > now)
    )
    total_recs = await db.scalar(select(func.count()).select_from(Recommendation))
    avg_completeness = await db.scalar(
        select(func.avg(StudentProfile.completeness)).where(StudentProfile.expires_at > now)
    )
    by_grade = await db.execute(
        select(StudentProfile.grade, func.count())
        .where(StudentProfile.expires_at > now)
        .group_by(StudentProfile.grade)
    )
    return {
        "active_profiles": active or 0,
        "recommendations_generated": total_recs or 0,
        "avg_completeness": round(float(avg_completeness), 1) if avg_completeness is not None else None,
        "profiles_by_grade": {grade: count for grade, count in by_grade.all()},
        "engine": engine.stats(),
    }


@router.get("/test")
async def engine_self_test(
    current_user: User = Depends(require_role("admin")),
    engine: RecommendationEngine = Depends(get_engine),
):
    return await engine.self_test()


@router.get("/health")
async def profiles_health(engine: RecommendationEngine = Depends(get_engine)):
    catalog_stats = engine.catalog.statistics()
    return {
        "status": "healthy" if catalog_stats.total_careers else "degraded",
        "careers": catalog_stats.total_careers,
        "llm_enabled": engine.llm.enabled,
    }


@router.get("/{profile_id}", response_model=ProfileOut)
async def get_profile(
    profile_id: str,
    current_user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await _get_visible_profile(db, profile_id, current_user)
    parsed = StudentProfileIn.model_validate(profile.data)
    return ProfileOut(
        id=profile.id,
        profile=parsed,
        completeness=profile.completeness,
        summary=profile_summary(parsed),
        created_at=profile.created_at,
        expires_at=profile.expires_at,
    )


@router.get("/{profile_id}/recommendations", response_model=RecommendationResult)
async def get_recommendations(
    profile_id: str,
    current_user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    await _get_visible_profile(db, profile_id, current_user)
    result = await latest_result(db, profile_id)
    if result is None:
        raise AppError("No recommendations for this profile", status_code=404, code="PROFILE_NOT_FOUND")
    return result


@router.get("/{profile_id}/follow-up-questions", response_model=FollowUpQuestionsResponse)
async def get_follow_up_questions(
    profile_id: str,
    current_user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await _get_visible_profile(db, profile_id, current_user)
    parsed = StudentProfileIn.model_validate(profile.data)
    return FollowUpQuestionsResponse(profile_id=profile_id, questions=follow_up_questions(parsed))

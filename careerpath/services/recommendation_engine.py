"""Recommendation pipeline: rule scoring, optional LLM blend, enrichment, ranking."""

import asyncio
import time
from datetime import datetime, timezone
from functools import lru_cache

import structlog

from careerpath.core.config import Settings, get_settings
from careerpath.core.errors import AppError
from careerpath.schemas.catalog import Career, Scholarship
from careerpath.schemas.profile import StudentProfileIn
from careerpath.schemas.recommendation import (
    AlternativeOption,
    CareerProspects,
    CareerRecommendation,
    CareerRequirements,
    ChartData,
    ChartDataset,
    PathData,
    PathStep,
    ReasoningFactors,
    RecommendationContext,
    RecommendationMetadata,
    RecommendationResult,
    RequirementData,
    SalaryRange,
    StudentContext,
    VisualizationData,
)
from careerpath.services.catalog import ReferenceCatalog, get_catalog, years_to_first_job
from careerpath.services.llm import LLMClient, LLMResult
from careerpath.services.profile_validation import profile_completeness
from careerpath.services.prompts import select_template
from careerpath.services.scoring import (
    FACTOR_WEIGHTS,
    blend_scores,
    parse_family_income,
    rule_score,
)

logger = structlog.get_logger()

RULES_MODEL = "rules-v1"
FALLBACK_MODEL = "fallback-rules"

SALARY_BACKGROUND = ["#3B82F6", "#10B981", "#F59E0B"]
SALARY_BORDER = ["#1D4ED8", "#059669", "#D97706"]

MAX_ALTERNATIVES = 3


class _Scored:
    __slots__ = ("career", "rule", "llm", "final", "factors", "reasoning", "nep_alignment")

    def __init__(self, career: Career, rule: int, factors: dict[str, int]):
        self.career = career
        self.rule = rule
        self.llm: int | None = None
        self.final = rule
        self.factors = factors
        self.reasoning = ""
        self.nep_alignment = career.nep_alignment


class RecommendationEngine:
    def __init__(
        self,
        catalog: ReferenceCatalog | None = None,
        llm: LLMClient | None = None,
        settings: Settings | None = None,
    ):
        self.catalog = catalog or get_catalog()
        self.llm = llm or LLMClient()
        self.settings = settings or get_settings()

    # --- pipeline ---

    async def generate(
        self,
        profile: StudentProfileIn,
        profile_id: str,
        *,
        use_llm: bool = True,
    ) -> RecommendationResult:
        started = time.monotonic()
        template = select_template(profile)

        scored = [_Scored(career, *rule_score(profile, career)) for career in self.catalog.careers]

        ai_model = RULES_MODEL
        if use_llm and self.llm.enabled:
            try:
                llm_result = await asyncio.to_thread(
                    self.llm.score_careers, profile, self.catalog.careers, template
                )
                self._blend(scored, llm_result)
                ai_model = llm_result.model
            except AppError as e:
                logger.warning(
                    "llm_fallback_to_rules",
                    profile_id=profile_id,
                    code=e.code,
                    error=e.message,
                )
                ai_model = FALLBACK_MODEL

        ranked = sorted(scored, key=lambda s: (-s.final, s.career.title))
        kept = [s for s in ranked if s.final >= self.settings.MIN_MATCH_SCORE and self._is_valid(s)]
        top = kept[: self.settings.MAX_RECOMMENDATIONS]
        top_ids = {s.career.id for s in top}
        alternatives = [s for s in ranked if s.career.id not in top_ids][:MAX_ALTERNATIVES]

        recommendations = [self._enrich(s, profile) for s in top]
        completeness = profile_completeness(profile)
        context = self._build_context(profile, top, alternatives, template)
        processing_ms = int((time.monotonic() - started) * 1000)

        result = RecommendationResult(
            recommendations=recommendations,
            context=context,
            metadata=RecommendationMetadata(
                generated_at=datetime.now(timezone.utc),
                profile_id=profile_id,
                ai_model=ai_model,
                processing_time_ms=processing_ms,
                confidence=self._confidence(profile, completeness, recommendations, ai_model),
            ),
        )
        logger.info(
            "recommendations_generated",
            profile_id=profile_id,
            count=len(recommendations),
            ai_model=ai_model,
            template=template,
            processing_time_ms=processing_ms,
        )
        return result

    def _blend(self, scored: list[_Scored], llm_result: LLMResult) -> None:
        for item in scored:
            llm_score = llm_result.scores.get(item.career.id)
            if llm_score is None:
                continue
            item.llm = llm_score.match_score
            item.final = blend_scores(item.rule, item.llm, self.settings.LLM_SCORE_WEIGHT)
            item.reasoning = llm_score.reasoning
            if llm_score.nep_alignment:
                item.nep_alignment = llm_score.nep_alignment

    @staticmethod
    def _is_valid(item: _Scored) -> bool:
        career = item.career
        return bool(career.id and career.title and career.description) and 0 <= item.final <= 100

    # --- enrichment ---

    def _scholarships_for(self, career: Career, profile: StudentProfileIn) -> list[Scholarship]:
        personal = profile.personal_info
        candidates = self.catalog.applicable_scholarships(
            category=personal.category,
            family_income=parse_family_income(profile.family_income),
            gender=personal.gender,
            grade=personal.grade,
            disabled=personal.physically_disabled,
        )
        required = [e.lower() for e in career.required_education]

        def course_ok(scholarship: Scholarship) -> bool:
            courses = scholarship.eligibility.courses
            if not courses:
                return True
            return any(c.lower() in r or r in c.lower() for c in courses for r in required)

        return [s for s in candidates if course_ok(s)][: self.settings.MAX_SCHOLARSHIPS_PER_CAREER]

    @staticmethod
    def _visual_data(career: Career) -> VisualizationData:
        salary = career.average_salary
        years = years_to_first_job(career)
        return VisualizationData(
            salary_trends=ChartData(
                labels=["Entry Level", "Mid Level", "Senior Level"],
                datasets=[
                    ChartDataset(
                        label="Average Salary (INR)",
                        data=[salary.entry, salary.mid, salary.senior],
                        background_color=SALARY_BACKGROUND,
                        border_color=SALARY_BORDER,
                        border_width=1,
                    )
                ],
            ),
            education_path=PathData(
                steps=[
                    PathStep(
                        title=step.title,
                        description=step.description,
                        duration=step.duration,
                        requirements=step.requirements,
                    )
                    for step in career.education_path
                ],
                total_duration=f"About {years:g} years" if years else "Varies",
            ),
            requirements=RequirementData(
                education=career.required_education,
                relevant_subjects=career.relevant_subjects,
                technical_skills=career.skills,
                entrance_exams=career.related_exams,
            ),
        )

    def _enrich(self, item: _Scored, profile: StudentProfileIn) -> CareerRecommendation:
        career = item.career
        colleges = self.catalog.colleges_for_career(career.id)[: self.settings.MAX_COLLEGES_PER_CAREER]
        return CareerRecommendation(
            id=career.id,
            title=career.title,
            description=career.description,
            nep_category=career.nep_category,
            nep_alignment=item.nep_alignment,
            match_score=item.final,
            rule_score=item.rule,
            llm_score=item.llm,
            reasoning=item.reasoning or _rule_reasoning(item.factors),
            factors=ReasoningFactors(**item.factors),
            requirements=CareerRequirements(
                education=career.required_education,
                skills=career.skills,
                entrance_exams=career.related_exams,
            ),
            prospects=CareerProspects(
                average_salary=SalaryRange(
                    entry=career.average_salary.entry,
                    mid=career.average_salary.mid,
                    senior=career.average_salary.senior,
                ),
                growth_rate=career.growth_projection,
                demand_level=career.demand_level,
                work_life_balance=career.work_life_balance,
            ),
            recommended_colleges=colleges,
            scholarships=self._scholarships_for(career, profile),
            visual_data=self._visual_data(career),
            pros=career.pros,
            cons=career.cons,
            day_in_life=career.day_in_life,
            career_path=career.career_path,
            related_careers=career.related_careers,
        )

    # --- context & metadata ---

    def _build_context(
        self,
        profile: StudentProfileIn,
        top: list[_Scored],
        alternatives: list[_Scored],
        template: str,
    ) -> RecommendationContext:
        if top:
            averaged = {
                name: round(sum(s.factors[name] for s in top) / len(top))
                for name in FACTOR_WEIGHTS
            }
        else:
            averaged = {name: 0 for name in FACTOR_WEIGHTS}

        return RecommendationContext(
            student_profile=StudentContext(
                interests=profile.academic_data.interests,
                strengths=identify_strengths(profile),
                preferences=identify_preferences(profile),
                constraints=identify_constraints(profile),
            ),
            reasoning_factors=ReasoningFactors(**averaged),
            prompt_template=template,
            alternative_options=[
                AlternativeOption(
                    id=s.career.id,
                    title=s.career.title,
                    match_score=s.final,
                    reason=_rule_reasoning(s.factors),
                )
                for s in alternatives
            ],
        )

    @staticmethod
    def _confidence(
        profile: StudentProfileIn,
        completeness: int,
        recommendations: list[CareerRecommendation],
        ai_model: str,
    ) -> int:
        confidence = 70
        if len(profile.academic_data.interests) >= 3:
            confidence += 5
        if profile.academic_data.performance in ("Excellent", "Good"):
            confidence += 5
        if completeness >= 80:
            confidence += 5
        if ai_model not in (RULES_MODEL, FALLBACK_MODEL):
            confidence += 10
        if not recommendations:
            confidence -= 10
        return max(0, min(95, confidence))

    # --- diagnostics ---

    def stats(self) -> dict:
        return {
            "config": {
                "min_match_score": self.settings.MIN_MATCH_SCORE,
                "max_recommendations": self.settings.MAX_RECOMMENDATIONS,
                "llm_score_weight": self.settings.LLM_SCORE_WEIGHT,
                "llm_enabled": self.llm.enabled,
            },
            "llm": self.llm.stats(),
            "catalog": self.catalog.statistics().model_dump(),
        }

    async def self_test(self) -> dict:
        """Run a fixed sample profile through the rule pipeline."""
        profile = StudentProfileIn.model_validate(SAMPLE_PROFILE)
        try:
            result = await self.generate(profile, "profile_selftest", use_llm=False)
        except Exception as e:
            logger.exception("engine_self_test_failed")
            return {"success": False, "error": str(e)}
        return {
            "success": bool(result.recommendations),
            "recommendations": [
                {"id": r.id, "title": r.title, "match_score": r.match_score}
                for r in result.recommendations
            ],
            "processing_time_ms": result.metadata.processing_time_ms,
        }


def _rule_reasoning(factors: dict[str, int]) -> str:
    best = max(factors, key=factors.get)
    weakest = min(factors, key=factors.get)
    return (
        f"Strongest factor: {best.replace('_', ' ')} ({factors[best]}); "
        f"weakest: {weakest.replace('_', ' ')} ({factors[weakest]})"
    )


def identify_strengths(profile: StudentProfileIn) -> list[str]:
    academic = profile.academic_data
    strengths = [*academic.favorite_subjects, *academic.extracurricular_activities]
    if "excellent" in academic.performance.lower():
        strengths.append("Academic Excellence")
    return strengths


def identify_preferences(profile: StudentProfileIn) -> list[str]:
    aspirations = profile.aspirations
    if aspirations is None:
        return []
    preferences = [*aspirations.preferred_careers, *aspirations.preferred_locations]
    if aspirations.work_life_balance:
        preferences.append(f"{aspirations.work_life_balance} work-life balance")
    return preferences


def identify_constraints(profile: StudentProfileIn) -> list[str]:
    constraints = []
    if profile.constraints is not None:
        if profile.constraints.financial_constraints:
            constraints.append("Financial constraints")
        constraints.extend(profile.constraints.location_constraints)
        constraints.extend(profile.constraints.family_expectations)
    if not profile.socioeconomic_data.internet_access:
        constraints.append("Limited internet access")
    return constraints


SAMPLE_PROFILE = {
    "personal_info": {
        "name": "Test Student",
        "grade": "12",
        "board": "CBSE",
        "language_preference": "english",
    },
    "academic_data": {
        "interests": ["Technology", "Mathematics", "Science"],
        "subjects": ["Mathematics", "Physics", "Computer Science"],
        "performance": "Good",
        "favorite_subjects": ["Mathematics"],
    },
    "socioeconomic_data": {
        "location": "Pune, Maharashtra",
        "family_background": "Service",
        "economic_factors": ["Stable income"],
        "rural_urban": "urban",
        "internet_access": True,
        "device_access": ["Smartphone", "Laptop"],
    },
    "family_income": "5-10 Lakhs",
}


@lru_cache
def get_engine() -> RecommendationEngine:
    return RecommendationEngine()

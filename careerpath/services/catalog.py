"""Reference data catalog: careers, colleges and scholarships loaded from JSON."""

import json
from collections import Counter
from functools import lru_cache
from importlib import resources
from pathlib import Path

import structlog
from pydantic import BaseModel, ValidationError

from careerpath.core.config import get_settings
from careerpath.core.errors import AppError
from careerpath.schemas.catalog import (
    Career,
    CareerComparison,
    CatalogStatistics,
    College,
    Scholarship,
)
from careerpath.services.scoring import is_education_match, is_exam_match

logger = structlog.get_logger()

UNRANKED = 999


def _contains(haystack: str, needle: str) -> bool:
    return needle.lower() in haystack.lower()


class ReferenceCatalog:
    def __init__(self, data_dir: str | Path | None = None):
        self.data_dir = Path(data_dir) if data_dir else None
        self.careers: list[Career] = []
        self.colleges: list[College] = []
        self.scholarships: list[Scholarship] = []
        self.reload()

    # --- loading ---

    def _read(self, filename: str) -> list:
        try:
            if self.data_dir is not None:
                raw = (self.data_dir / filename).read_text(encoding="utf-8")
            else:
                raw = resources.files("careerpath.data").joinpath(filename).read_text(encoding="utf-8")
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("reference_data_load_failed", file=filename, error=str(e))
            raise AppError(
                f"Could not load reference data file {filename}",
                status_code=500,
                code="DATA_LOAD_ERROR",
            ) from e

        if not isinstance(data, list):
            raise AppError(
                f"Reference data file {filename} must contain a list",
                status_code=500,
                code="DATA_LOAD_ERROR",
            )
        return data

    def _load(self, filename: str, model: type[BaseModel]) -> list:
        records = []
        for index, item in enumerate(self._read(filename)):
            try:
                records.append(model.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "reference_record_invalid",
                    file=filename,
                    index=index,
                    record_id=item.get("id") if isinstance(item, dict) else None,
                    errors=e.error_count(),
                )
        return records

    def reload(self) -> CatalogStatistics:
        self.careers = self._load("careers.json", Career)
        self.colleges = self._load("colleges.json", College)
        self.scholarships = self._load("scholarships.json", Scholarship)
        self._careers_by_id = {c.id: c for c in self.careers}
        self._colleges_by_id = {c.id: c for c in self.colleges}
        self._scholarships_by_id = {s.id: s for s in self.scholarships}
        stats = self.statistics()
        logger.info(
            "reference_data_loaded",
            careers=stats.total_careers,
            colleges=stats.total_colleges,
            scholarships=stats.total_scholarships,
        )
        return stats

    # --- lookups ---

    def get_career(self, career_id: str) -> Career | None:
        return self._careers_by_id.get(career_id)

    def get_college(self, college_id: str) -> College | None:
        return self._colleges_by_id.get(college_id)

    def get_scholarship(self, scholarship_id: str) -> Scholarship | None:
        return self._scholarships_by_id.get(scholarship_id)

    # --- search ---

    def search_colleges(
        self,
        *,
        type: str | None = None,
        location: str | None = None,
        course: str | None = None,
        entrance_exam: str | None = None,
        max_fees: int | None = None,
    ) -> list[College]:
        results = []
        for college in self.colleges:
            if type and college.type != type:
                continue
            if location and not (
                _contains(college.location, location) or _contains(college.state, location)
            ):
                continue
            if course and not any(_contains(c, course) for c in college.courses):
                continue
            if entrance_exam and not any(_contains(e, entrance_exam) for e in college.entrance_exams):
                continue
            if max_fees is not None and college.fees.annual > max_fees:
                continue
            results.append(college)
        return results

    def search_careers(
        self,
        *,
        nep_category: str | None = None,
        min_salary: int | None = None,
        max_salary: int | None = None,
        education: str | None = None,
        skill: str | None = None,
    ) -> list[Career]:
        results = []
        for career in self.careers:
            if nep_category and not _contains(career.nep_category, nep_category):
                continue
            if min_salary is not None and career.average_salary.entry < min_salary:
                continue
            if max_salary is not None and career.average_salary.entry > max_salary:
                continue
            if education and not any(_contains(e, education) for e in career.required_education):
                continue
            if skill and not any(_contains(s, skill) for s in career.skills):
                continue
            results.append(career)
        return results

    def search_scholarships(
        self,
        *,
        category: str | None = None,
        income_limit: int | None = None,
        type: str | None = None,
        course: str | None = None,
        provider: str | None = None,
    ) -> list[Scholarship]:
        results = []
        for scholarship in self.scholarships:
            eligibility = scholarship.eligibility
            if category and eligibility.categories and category not in eligibility.categories:
                continue
            # Keep scholarships whose ceiling is at least the requested income
            if income_limit and eligibility.income_limit and eligibility.income_limit < income_limit:
                continue
            if type and scholarship.type != type:
                continue
            if course and eligibility.courses and not any(_contains(c, course) for c in eligibility.courses):
                continue
            if provider and not _contains(scholarship.provider, provider):
                continue
            results.append(scholarship)
        return results

    # --- joins used by the recommendation engine ---

    def colleges_for_career(self, career_id: str) -> list[College]:
        """Colleges offering a matching course or accepting a matching exam, best NIRF first."""
        career = self.get_career(career_id)
        if career is None:
            return []

        matches = [
            college
            for college in self.colleges
            if any(
                is_education_match(req, course)
                for req in career.required_education
                for course in college.courses
            )
            or any(
                is_exam_match(exam, college_exam)
                for exam in career.related_exams
                for college_exam in college.entrance_exams
            )
        ]
        return sorted(matches, key=lambda c: (c.rankings.nirf or UNRANKED, c.name))

    def applicable_scholarships(
        self,
        *,
        category: str | None = None,
        family_income: int | None = None,
        course: str | None = None,
        gender: str | None = None,
        grade: str | None = None,
        disabled: bool = False,
    ) -> list[Scholarship]:
        results = []
        for scholarship in self.scholarships:
            eligibility = scholarship.eligibility
            if category and eligibility.categories and category not in eligibility.categories:
                continue
            if eligibility.categories and not category:
                continue
            if family_income and eligibility.income_limit and family_income > eligibility.income_limit:
                continue
            if course and eligibility.courses and not any(
                _contains(c, course) or _contains(course, c) for c in eligibility.courses
            ):
                continue
            if eligibility.gender and eligibility.gender != gender:
                continue
            if grade and eligibility.classes and grade not in eligibility.classes:
                continue
            if eligibility.disability and not disabled:
                continue
            results.append(scholarship)
        return results

    def compare_careers(self, career_ids: list[str]) -> CareerComparison:
        careers = []
        for career_id in career_ids:
            career = self.get_career(career_id)
            if career is None:
                raise AppError(
                    f"Career '{career_id}' not found",
                    status_code=404,
                    code="CAREER_NOT_FOUND",
                )
            careers.append(career)

        rows = [
            {
                "id": c.id,
                "title": c.title,
                "nep_category": c.nep_category,
                "entry_salary": c.average_salary.entry,
                "senior_salary": c.average_salary.senior,
                "growth_projection": c.growth_projection,
                "demand_level": c.demand_level,
                "work_life_balance": c.work_life_balance,
                "education_cost": c.education_cost,
                "related_exams": c.related_exams,
                "years_to_first_job": years_to_first_job(c),
            }
            for c in careers
        ]
        return CareerComparison(
            careers=rows,
            highest_entry_salary=max(careers, key=lambda c: c.average_salary.entry).id if careers else None,
            highest_demand=[c.id for c in careers if c.demand_level == "high"],
            lowest_education_cost=min(careers, key=lambda c: c.education_cost).id if careers else None,
        )

    def statistics(self) -> CatalogStatistics:
        return CatalogStatistics(
            total_colleges=len(self.colleges),
            total_careers=len(self.careers),
            total_scholarships=len(self.scholarships),
            colleges_by_type=dict(Counter(c.type for c in self.colleges)),
            careers_by_category=dict(Counter(c.nep_category for c in self.careers)),
            scholarships_by_type=dict(Counter(s.type for s in self.scholarships)),
        )


def years_to_first_job(career: Career) -> float | None:
    """Sum of the leading number in each education step duration, skipping open-ended steps."""
    total = 0.0
    found = False
    for step in career.education_path:
        duration = step.duration.split()[0] if step.duration else ""
        first = duration.split("-")[0]
        try:
            value = float(first)
        except ValueError:
            continue
        if "month" in step.duration:
            value /= 12
        total += value
        found = True
    return round(total, 1) if found else None



@lru_cache
def get_catalog() -> ReferenceCatalog:
    settings = get_settings()
    return ReferenceCatalog(settings.REFERENCE_DATA_DIR or None)

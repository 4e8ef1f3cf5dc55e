from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from careerpath.core.database import get_db
from careerpath.core.dependencies import require_role
from careerpath.core.errors import AppError
from careerpath.models.user import User
from careerpath.schemas.catalog import (
    Career,
    CareerComparison,
    CatalogStatistics,
    College,
    Scholarship,
)
from careerpath.services.audit import log_action
from careerpath.services.catalog import ReferenceCatalog, get_catalog

router = APIRouter(tags=["catalog"])


@router.get("/colleges", response_model=list[College])
async def list_colleges(catalog: ReferenceCatalog = Depends(get_catalog)):
    return catalog.colleges


@router.get("/colleges/search", response_model=list[College])
async def search_colleges(
    type: Literal["government", "private", "deemed"] | None = Query(None),
    location: str | None = Query(None),
    course: str | None = Query(None),
    entrance_exam: str | None = Query(None),
    max_fees: int | None = Query(None, ge=0),
    catalog: ReferenceCatalog = Depends(get_catalog),
):
    return catalog.search_colleges(
        type=type,
        location=location,
        course=course,
        entrance_exam=entrance_exam,
        max_fees=max_fees,
    )


@router.get("/colleges/{college_id}", response_model=College)
async def get_college(college_id: str, catalog: ReferenceCatalog = Depends(get_catalog)):
    college = catalog.get_college(college_id)
    if college is None:
        raise HTTPException(status_code=404, detail="College not found")
    return college


@router.get("/careers", response_model=list[Career])
async def list_careers(catalog: ReferenceCatalog = Depends(get_catalog)):
    return catalog.careers


@router.get("/careers/search", response_model=list[Career])
async def search_careers(
    nep_category: str | None = Query(None),
    min_salary: int | None = Query(None, ge=0),
    max_salary: int | None = Query(None, ge=0),
    education: str | None = Query(None),
    skill: str | None = Query(None),
    catalog: ReferenceCatalog = Depends(get_catalog),
):
    return catalog.search_careers(
        nep_category=nep_category,
        min_salary=min_salary,
        max_salary=max_salary,
        education=education,
        skill=skill,
    )


@router.get("/careers/compare", response_model=CareerComparison)
async def compare_careers(
    ids: str = Query(..., description="Comma-separated career ids"),
    catalog: ReferenceCatalog = Depends(get_catalog),
):
    career_ids = [i.strip() for i in ids.split(",") if i.strip()]
    if not 2 <= len(career_ids) <= 5:
        raise AppError("Compare between 2 and 5 careers", status_code=400, code="VALIDATION_ERROR")
    return catalog.compare_careers(career_ids)


@router.get("/careers/{career_id}", response_model=Career)
async def get_career(career_id: str, catalog: ReferenceCatalog = Depends(get_catalog)):
    career = catalog.get_career(career_id)
    if career is None:
        raise AppError(f"Career '{career_id}' not found", status_code=404, code="CAREER_NOT_FOUND")
    return career


@router.get("/careers/{career_id}/colleges", response_model=list[College])
async def get_career_colleges(career_id: str, catalog: ReferenceCatalog = Depends(get_catalog)):
    if catalog.get_career(career_id) is None:
        raise AppError(f"Career '{career_id}' not found", status_code=404, code="CAREER_NOT_FOUND")
    return catalog.colleges_for_career(career_id)


@router.get("/scholarships", response_model=list[Scholarship])
async def list_scholarships(catalog: ReferenceCatalog = Depends(get_catalog)):
    return catalog.scholarships


@router.get("/scholarships/search", response_model=list[Scholarship])
async def search_scholarships(
    category: str | None = Query(None),
    income_limit: int | None = Query(None, ge=0),
    type: Literal["Merit-based", "Need-based", "Merit-cum-Means"] | None = Query(None),
    course: str | None = Query(None),
    provider: str | None = Query(None),
    catalog: ReferenceCatalog = Depends(get_catalog),
):
    return catalog.search_scholarships(
        category=category,
        income_limit=income_limit,
        type=type,
        course=course,
        provider=provider,
    )


@router.get("/scholarships/applicable", response_model=list[Scholarship])
async def applicable_scholarships(
    category: str | None = Query(None),
    family_income: int | None = Query(None, ge=0),
    course: str | None = Query(None),
    gender: str | None = Query(None),
    grade: str | None = Query(None),
    disabled: bool = Query(False),
    catalog: ReferenceCatalog = Depends(get_catalog),
):
    return catalog.applicable_scholarships(
        category=category,
        family_income=family_income,
        course=course,
        gender=gender,
        grade=grade,
        disabled=disabled,
    )


@router.get("/scholarships/{scholarship_id}", response_model=Scholarship)
async def get_scholarship(scholarship_id: str, catalog: ReferenceCatalog = Depends(get_catalog)):
    scholarship = catalog.get_scholarship(scholarship_id)
    if scholarship is None:
        raise HTTPException(status_code=404, detail="Scholarship not found")
    return scholarship


@router.get("/statistics", response_model=CatalogStatistics)
async def statistics(catalog: ReferenceCatalog = Depends(get_catalog)):
    return catalog.statistics()


@router.post("/catalog/reload", response_model=CatalogStatistics)
async def reload_catalog(
    current_user: User = Depends(require_role("admin")),
    catalog: ReferenceCatalog = Depends(get_catalog),
    db: AsyncSession = Depends(get_db),
):
    stats = catalog.reload()
    await log_action(
        db,
        user_id=current_user.id,
        action="reload_catalog",
        entity_type="catalog",
        details=stats.model_dump(),
    )
    return stats

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class Fees(BaseModel):
    annual: int = Field(ge=0)
    currency: str = "INR"


class Ranking(BaseModel):
    nirf: int | None = Field(None, ge=1)
    category: str = ""


class College(BaseModel):
    id: str
    name: str
    location: str
    state: str = ""
    type: Literal["government", "private", "deemed"]
    courses: list[str]
    entrance_exams: list[str] = []
    fees: Fees
    rankings: Ranking = Ranking()
    website: str | None = None
    established: int | None = None


class AverageSalary(BaseModel):
    entry: int = Field(ge=0)
    mid: int = Field(ge=0)
    senior: int = Field(ge=0)

    @model_validator(mode="after")
    def ordered(self):
        if not self.entry <= self.mid <= self.senior:
            raise ValueError("salary bands must be non-decreasing")
        return self


class EducationStep(BaseModel):
    title: str
    description: str = ""
    duration: str = ""
    requirements: list[str] = []


class Career(BaseModel):
    id: str
    title: str
    description: str
    nep_category: str
    nep_alignment: str = ""
    interest_tags: list[str] = []
    relevant_subjects: list[str] = []
    required_education: list[str]
    skills: list[str]
    average_salary: AverageSalary
    growth_projection: str = ""
    demand_level: Literal["high", "medium", "low"] = "medium"
    work_life_balance: Literal["excellent", "good", "average", "challenging"] = "average"
    related_exams: list[str] = []
    education_cost: int = Field(0, ge=0, description="Estimated total cost of the degree path, INR")
    education_path: list[EducationStep] = []
    pros: list[str] = []
    cons: list[str] = []
    day_in_life: str = ""
    career_path: list[str] = []
    related_careers: list[str] = []


class ScholarshipEligibility(BaseModel):
    categories: list[str] | None = None
    classes: list[str] | None = None
    courses: list[str] | None = None
    income_limit: int | None = Field(None, ge=0)
    gender: str | None = None
    academic_criteria: str | None = None
    disability: bool = False


class ScholarshipAmount(BaseModel):
    value: int = Field(ge=0)
    period: str = "annual"
    currency: str = "INR"


class Scholarship(BaseModel):
    id: str
    name: str
    description: str = ""
    provider: str
    eligibility: ScholarshipEligibility = ScholarshipEligibility()
    amount: ScholarshipAmount
    application_period: str = ""
    website: str | None = None
    renewable: bool = False
    type: Literal["Merit-based", "Need-based", "Merit-cum-Means"]


class CatalogStatistics(BaseModel):
    total_colleges: int
    total_careers: int
    total_scholarships: int
    colleges_by_type: dict[str, int]
    careers_by_category: dict[str, int]
    scholarships_by_type: dict[str, int]


class CareerComparison(BaseModel):
    careers: list[dict]
    highest_entry_salary: str | None
    highest_demand: list[str]
    lowest_education_cost: str | None

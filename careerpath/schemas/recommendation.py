from datetime import datetime

from pydantic import BaseModel, Field

from careerpath.schemas.catalog import College, Scholarship


class ChartDataset(BaseModel):
    label: str
    data: list[float]
    background_color: list[str] = []
    border_color: list[str] = []
    border_width: int = 1


class ChartData(BaseModel):
    labels: list[str]
    datasets: list[ChartDataset]


class PathStep(BaseModel):
    title: str
    description: str
    duration: str
    requirements: list[str] = []


class PathData(BaseModel):
    steps: list[PathStep]
    total_duration: str


class RequirementData(BaseModel):
    education: list[str]
    relevant_subjects: list[str]
    technical_skills: list[str]
    entrance_exams: list[str]


class VisualizationData(BaseModel):
    salary_trends: ChartData
    education_path: PathData
    requirements: RequirementData


class SalaryRange(BaseModel):
    entry: int
    mid: int
    senior: int
    currency: str = "INR"


class CareerProspects(BaseModel):
    average_salary: SalaryRange
    growth_rate: str
    demand_level: str
    work_life_balance: str


class CareerRequirements(BaseModel):
    education: list[str]
    skills: list[str]
    entrance_exams: list[str]


class ReasoningFactors(BaseModel):
    interest_match: int = Field(ge=0, le=100)
    skill_alignment: int = Field(ge=0, le=100)
    market_demand: int = Field(ge=0, le=100)
    financial_viability: int = Field(ge=0, le=100)
    educational_fit: int = Field(ge=0, le=100)


class CareerRecommendation(BaseModel):
    id: str
    title: str
    description: str
    nep_category: str
    nep_alignment: str
    match_score: int = Field(ge=0, le=100)
    rule_score: int = Field(ge=0, le=100)
    llm_score: int | None = Field(None, ge=0, le=100)
    reasoning: str = ""
    factors: ReasoningFactors
    requirements: CareerRequirements
    prospects: CareerProspects
    recommended_colleges: list[College] = []
    scholarships: list[Scholarship] = []
    visual_data: VisualizationData
    pros: list[str] = []
    cons: list[str] = []
    day_in_life: str = ""
    career_path: list[str] = []
    related_careers: list[str] = []


class AlternativeOption(BaseModel):
    id: str
    title: str
    match_score: int
    reason: str


class StudentContext(BaseModel):
    interests: list[str]
    strengths: list[str]
    preferences: list[str]
    constraints: list[str]


class RecommendationContext(BaseModel):
    student_profile: StudentContext
    reasoning_factors: ReasoningFactors
    prompt_template: str | None = None
    alternative_options: list[AlternativeOption] = []


class RecommendationMetadata(BaseModel):
    generated_at: datetime
    profile_id: str
    ai_model: str
    processing_time_ms: int
    confidence: int = Field(ge=0, le=100)


class RecommendationResult(BaseModel):
    recommendations: list[CareerRecommendation]
    context: RecommendationContext
    metadata: RecommendationMetadata


class ProfileRecommendationResponse(RecommendationResult):
    profile_id: str
    completeness: int
    warnings: list[str] = []


class FollowUpQuestionsResponse(BaseModel):
    profile_id: str
    questions: list[str]

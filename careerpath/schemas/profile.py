from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

GRADES = ("9", "10", "11", "12", "Graduate", "Post-Graduate")
BOARDS = ("CBSE", "ICSE", "State Board", "IB", "IGCSE", "Other")
PERFORMANCE_LEVELS = ("Excellent", "Good", "Average", "Below Average")
CATEGORIES = ("General", "OBC", "SC", "ST", "EWS")
FAMILY_INCOME_RANGES = (
    "Below 1 Lakh",
    "1-3 Lakhs",
    "3-5 Lakhs",
    "5-10 Lakhs",
    "10-20 Lakhs",
    "20-50 Lakhs",
    "Above 50 Lakhs",
)

# Latin letters, Devanagari, spaces and name punctuation
NAME_PATTERN = r"^[A-Za-zऀ-ॿ\s.'-]+$"


def clean_string_list(value) -> list[str]:
    """Trim items, drop blanks and case-insensitive duplicates, keep order."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    seen = set()
    cleaned = []
    for item in value:
        text = str(item).strip()
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        cleaned.append(text)
    return cleaned


class _Trimmed(BaseModel):
    model_config = {"str_strip_whitespace": True}


class PersonalInfo(_Trimmed):
    name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)
    grade: Literal[GRADES]
    board: Literal[BOARDS]
    language_preference: Literal["hindi", "english"] = "english"
    age: int | None = Field(None, ge=5, le=100)
    gender: Literal["male", "female", "other", "prefer-not-to-say"] | None = None
    category: Literal[CATEGORIES] | None = None
    physically_disabled: bool = False


class AcademicData(_Trimmed):
    interests: list[str] = Field(min_length=1, max_length=10)
    subjects: list[str] = Field(min_length=1, max_length=15)
    performance: Literal[PERFORMANCE_LEVELS]
    favorite_subjects: list[str] = []
    difficult_subjects: list[str] = []
    extracurricular_activities: list[str] = []
    achievements: list[str] = []

    @field_validator(
        "interests",
        "subjects",
        "favorite_subjects",
        "difficult_subjects",
        "extracurricular_activities",
        "achievements",
        mode="before",
    )
    @classmethod
    def clean_lists(cls, v):
        return clean_string_list(v)

    @field_validator("interests")
    @classmethod
    def interest_length(cls, v: list[str]) -> list[str]:
        for interest in v:
            if not 2 <= len(interest) <= 50:
                raise ValueError("each interest must be 2-50 characters")
        return v


class ParentOccupation(_Trimmed):
    father: str | None = None
    mother: str | None = None


class SocioeconomicData(_Trimmed):
    location: str = Field(min_length=2, max_length=500)
    family_background: str = Field("", max_length=500)
    economic_factors: list[str] = []
    parent_occupation: ParentOccupation | None = None
    household_size: int | None = Field(None, ge=1, le=50)
    rural_urban: Literal["rural", "urban", "semi-urban"]
    transport_mode: str | None = None
    internet_access: bool = True
    device_access: list[str] = []

    @field_validator("economic_factors", "device_access", mode="before")
    @classmethod
    def clean_lists(cls, v):
        return clean_string_list(v)


class Aspirations(_Trimmed):
    preferred_careers: list[str] = []
    preferred_locations: list[str] = []
    salary_expectations: str | None = None
    work_life_balance: Literal["high", "medium", "low"] | None = None

    @field_validator("preferred_careers", "preferred_locations", mode="before")
    @classmethod
    def clean_lists(cls, v):
        return clean_string_list(v)


class Constraints(_Trimmed):
    financial_constraints: bool = False
    location_constraints: list[str] = []
    family_expectations: list[str] = []
    time_constraints: str | None = None

    @field_validator("location_constraints", "family_expectations", mode="before")
    @classmethod
    def clean_lists(cls, v):
        return clean_string_list(v)


class StudentProfileIn(_Trimmed):
    personal_info: PersonalInfo
    academic_data: AcademicData
    socioeconomic_data: SocioeconomicData
    family_income: Literal[FAMILY_INCOME_RANGES]
    aspirations: Aspirations | None = None
    constraints: Constraints | None = None


class ValidationResultOut(BaseModel):
    is_valid: bool
    errors: list[str]
    warnings: list[str]
    completeness: int


class ProfileOut(BaseModel):
    id: str
    profile: StudentProfileIn
    completeness: int
    summary: str
    created_at: datetime
    expires_at: datetime

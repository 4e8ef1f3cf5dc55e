"""Business-level checks on a parsed student profile.

Structural validation (types, enums, lengths) happens in the pydantic schema;
this module adds content screening, soft warnings and derived values.
"""

import re
import secrets
import string
import time
from dataclasses import dataclass, field

from careerpath.schemas.profile import StudentProfileIn

MAX_FIELD_LENGTH = 500

SUSPICIOUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
]

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    code: str | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def fail(self, code: str, message: str) -> None:
        # First failure decides the error code
        if self.code is None:
            self.code = code
        self.errors.append(message)


def _free_text_fields(profile: StudentProfileIn) -> list[tuple[str, str]]:
    personal = profile.personal_info
    academic = profile.academic_data
    socio = profile.socioeconomic_data

    fields = [
        ("personal_info.name", personal.name),
        ("socioeconomic_data.location", socio.location),
        ("socioeconomic_data.family_background", socio.family_background),
        ("socioeconomic_data.transport_mode", socio.transport_mode or ""),
    ]
    if socio.parent_occupation is not None:
        fields.append(("socioeconomic_data.parent_occupation.father", socio.parent_occupation.father or ""))
        fields.append(("socioeconomic_data.parent_occupation.mother", socio.parent_occupation.mother or ""))
    for name in ("interests", "subjects", "favorite_subjects", "difficult_subjects",
                 "extracurricular_activities", "achievements"):
        fields.extend((f"academic_data.{name}", item) for item in getattr(academic, name))
    fields.extend(("socioeconomic_data.economic_factors", item) for item in socio.economic_factors)
    if profile.aspirations is not None:
        fields.append(("aspirations.salary_expectations", profile.aspirations.salary_expectations or ""))
        fields.extend(("aspirations.preferred_careers", c) for c in profile.aspirations.preferred_careers)
        fields.extend(("aspirations.preferred_locations", c) for c in profile.aspirations.preferred_locations)
    if profile.constraints is not None:
        fields.append(("constraints.time_constraints", profile.constraints.time_constraints or ""))
        fields.extend(("constraints.family_expectations", c) for c in profile.constraints.family_expectations)
        fields.extend(("constraints.location_constraints", c) for c in profile.constraints.location_constraints)
    return fields


def validate_profile(profile: StudentProfileIn, known_interest_terms: list[str] | None = None) -> ValidationResult:
    result = ValidationResult()

    for path, value in _free_text_fields(profile):
        if len(value) > MAX_FIELD_LENGTH:
            result.fail("CONTENT_TOO_LONG", f"{path} is longer than {MAX_FIELD_LENGTH} characters")
        elif any(p.search(value) for p in SUSPICIOUS_PATTERNS):
            result.fail("INVALID_CONTENT", f"{path} contains disallowed content")

    personal = profile.personal_info
    socio = profile.socioeconomic_data

    if personal.age is not None and not 10 <= personal.age <= 25:
        result.warnings.append("Age should be between 10 and 25 for typical students")
    if socio.household_size is not None and socio.household_size > 15:
        result.warnings.append("Household size seems unusually large")
    if not socio.internet_access and not socio.device_access:
        result.warnings.append("No internet or device access: online resources may be hard to use")
    if len(profile.academic_data.subjects) < 3:
        result.warnings.append("Listing at least three subjects gives better recommendations")

    if known_interest_terms:
        vocabulary = [t.lower() for t in known_interest_terms]
        unmatched = [
            i for i in profile.academic_data.interests
            if not any(i.lower() in t or t in i.lower() for t in vocabulary)
        ]
        if unmatched and len(unmatched) == len(profile.academic_data.interests):
            result.warnings.append(
                "None of the listed interests match a known career area; results may be generic"
            )

    return result


def profile_completeness(profile: StudentProfileIn) -> int:
    """Percentage of the 13 optional intake details that are filled in.

    Required fields are enforced by the schema, so they do not count here.
    """
    personal = profile.personal_info
    academic = profile.academic_data
    socio = profile.socioeconomic_data

    checks = [
        personal.age is not None,
        personal.gender is not None,
        personal.category is not None,
        bool(academic.favorite_subjects),
        bool(academic.extracurricular_activities),
        bool(academic.achievements),
        bool(socio.family_background),
        bool(socio.economic_factors),
        socio.parent_occupation is not None,
        socio.household_size is not None,
        bool(socio.device_access),
        profile.aspirations is not None,
        profile.constraints is not None,
    ]
    return round(sum(checks) / len(checks) * 100)


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_profile_id() -> str:
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"profile_{stamp}_{suffix}"


def profile_summary(profile: StudentProfileIn) -> str:
    personal = profile.personal_info
    interests = ", ".join(profile.academic_data.interests[:3])
    return (
        f"Grade {personal.grade} ({personal.board}) student from "
        f"{profile.socioeconomic_data.location}, interested in {interests}; "
        f"{profile.academic_data.performance.lower()} academic performance"
    )


def extract_keywords(profile: StudentProfileIn) -> list[str]:
    academic = profile.academic_data
    raw = [
        *academic.interests,
        *academic.subjects,
        *academic.favorite_subjects,
        *academic.extracurricular_activities,
    ]
    if profile.aspirations is not None:
        raw.extend(profile.aspirations.preferred_careers)

    keywords = []
    for word in raw:
        lowered = word.lower()
        if lowered not in keywords:
            keywords.append(lowered)
    return keywords

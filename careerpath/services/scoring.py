"""Rule-based match scoring between a student profile and a catalog career.

Every factor is an additive heuristic clamped to [0, 100]. The overall rule
score is a weighted sum of the factors plus a small preference bonus.
"""

import re

from careerpath.schemas.catalog import Career
from careerpath.schemas.profile import StudentProfileIn

FACTOR_WEIGHTS = {
    "interest_match": 0.35,
    "skill_alignment": 0.20,
    "market_demand": 0.15,
    "financial_viability": 0.15,
    "educational_fit": 0.15,
}

DEMAND_SCORES = {"high": 90, "medium": 70, "low": 50}

PREFERRED_CAREER_BONUS = 5
FINANCIAL_CONSTRAINT_PENALTY = 15

# "science" and "arts" are left out: they name whole degree families
SUBJECT_KEYWORDS = ("computer", "engineering", "commerce", "medicine")

_NUMBER_RE = re.compile(r"(\d+)")


def clamp(value: float, low: int = 0, high: int = 100) -> int:
    return int(max(low, min(high, round(value))))


def parse_family_income(income: str | None) -> int:
    """Annual income in rupees from a bracket label such as '3-5 Lakhs'.

    Takes the first number of the label, so '3-5 Lakhs' gives 300000.
    """
    if not income:
        return 0
    match = _NUMBER_RE.search(income)
    if not match:
        return 0
    value = int(match.group(1))
    lowered = income.lower()
    if "crore" in lowered:
        return value * 10_000_000
    if "lakh" in lowered:
        return value * 100_000
    return value


def grade_level(grade: str) -> int:
    """Numeric school level; graduates count past Class 12."""
    if grade == "Graduate":
        return 13
    if grade == "Post-Graduate":
        return 15
    try:
        return int(grade)
    except (TypeError, ValueError):
        return 0


def is_education_match(requirement: str, course: str) -> bool:
    req = requirement.lower()
    crs = course.lower()
    if req in crs or crs in req:
        return True
    return any(word in req and word in crs for word in SUBJECT_KEYWORDS)


def is_exam_match(requirement: str, exam: str) -> bool:
    req = requirement.lower()
    exm = exam.lower()
    return req in exm or exm in req


def is_career_match(title_a: str, title_b: str) -> bool:
    """Loose title match: at least half the words of the shorter title overlap."""
    words_a = title_a.lower().split()
    words_b = title_b.lower().split()
    if not words_a or not words_b:
        return False
    common = [w for w in words_a if any(w in other or other in w for other in words_b)]
    return len(common) >= min(len(words_a), len(words_b)) * 0.5


def merge_unique(first: list[str], second: list[str]) -> list[str]:
    seen = []
    for item in [*first, *second]:
        lowered = item.lower()
        if lowered not in seen:
            seen.append(lowered)
    return seen


def _overlaps(term: str, candidates: list[str]) -> bool:
    term = term.lower()
    return any(term in c.lower() or c.lower() in term for c in candidates)


def interest_match(profile: StudentProfileIn, career: Career) -> int:
    interests = profile.academic_data.interests
    if not interests:
        return 0
    vocabulary = [*career.interest_tags, *career.skills, *career.relevant_subjects]
    matched = [i for i in interests if _overlaps(i, vocabulary)]
    return clamp(len(matched) / len(interests) * 100)


def skill_alignment(profile: StudentProfileIn, career: Career) -> int:
    academic = profile.academic_data
    score = 60
    performance = academic.performance.lower()
    if "excellent" in performance:
        score += 20
    elif "good" in performance:
        score += 10

    vocabulary = [*career.relevant_subjects, *career.skills]
    subjects = {s.lower() for s in [*academic.favorite_subjects, *academic.subjects]}
    score += 5 * sum(1 for s in subjects if _overlaps(s, vocabulary))
    return clamp(score)


def market_demand(career: Career) -> int:
    return DEMAND_SCORES.get(career.demand_level, 70)


def financial_viability(profile: StudentProfileIn, career: Career) -> int:
    income = parse_family_income(profile.family_income)
    entry = career.average_salary.entry
    if entry > income * 2:
        score = 90
    elif entry > income:
        score = 75
    elif entry > income * 0.5:
        score = 60
    else:
        score = 40

    constrained = profile.constraints is not None and profile.constraints.financial_constraints
    if constrained and income and career.education_cost > income * 4:
        score -= FINANCIAL_CONSTRAINT_PENALTY
    return clamp(score)


def educational_fit(profile: StudentProfileIn, career: Career) -> int:
    level = grade_level(profile.personal_info.grade)
    score = 70
    if level >= 10 and any("12" in req for req in career.required_education):
        score += 10
    if level >= 12 and any("Bachelor" in req for req in career.required_education):
        score += 10
    return clamp(score)


def reasoning_factors(profile: StudentProfileIn, career: Career) -> dict[str, int]:
    return {
        "interest_match": interest_match(profile, career),
        "skill_alignment": skill_alignment(profile, career),
        "market_demand": market_demand(career),
        "financial_viability": financial_viability(profile, career),
        "educational_fit": educational_fit(profile, career),
    }


def is_preferred(profile: StudentProfileIn, career: Career) -> bool:
    if profile.aspirations is None:
        return False
    return any(
        is_career_match(preferred, career.title)
        for preferred in profile.aspirations.preferred_careers
    )


def rule_score(profile: StudentProfileIn, career: Career) -> tuple[int, dict[str, int]]:
    """Weighted match score and the factors it was built from."""
    factors = reasoning_factors(profile, career)
    total = sum(factors[name] * weight for name, weight in FACTOR_WEIGHTS.items())
    if is_preferred(profile, career):
        total += PREFERRED_CAREER_BONUS
    return clamp(total), factors


def blend_scores(rule: int, llm: int | None, llm_weight: float) -> int:
    if llm is None:
        return clamp(rule)
    weight = max(0.0, min(1.0, llm_weight))
    return clamp((1 - weight) * rule + weight * llm)

"""Rule-based scoring (no DB needed)."""

import pytest

from conftest import make_profile
from careerpath.schemas.profile import StudentProfileIn
from careerpath.services.catalog import get_catalog
from careerpath.services.scoring import (
    blend_scores,
    clamp,
    grade_level,
    is_career_match,
    is_education_match,
    is_exam_match,
    merge_unique,
    parse_family_income,
    rule_score,
)


def _profile(**overrides) -> StudentProfileIn:
    return StudentProfileIn.model_validate(make_profile(**overrides))


def _career(career_id):
    return get_catalog().get_career(career_id)


@pytest.mark.parametrize(
    "label,expected",
    [
        ("Below 1 Lakh", 100_000),
        ("3-5 Lakhs", 300_000),
        ("Above 50 Lakhs", 5_000_000),
        ("2 Crore", 20_000_000),
        ("", 0),
        ("unknown", 0),
    ],
)
def test_parse_family_income(label, expected):
    assert parse_family_income(label) == expected


def test_grade_level():
    assert grade_level("9") == 9
    assert grade_level("12") == 12
    assert grade_level("Graduate") == 13
    assert grade_level("Post-Graduate") == 15
    assert grade_level("n/a") == 0


def test_clamp_and_blend():
    assert clamp(120) == 100
    assert clamp(-4) == 0
    assert blend_scores(80, None, 0.4) == 80
    assert blend_scores(80, 50, 0.4) == 68
    assert blend_scores(80, 50, 2.0) == 50


def test_education_and_exam_matching():
    assert is_education_match("Bachelor of Technology in Computer Science", "Computer Science")
    assert is_education_match("Engineering", "Diploma in Mechanical Engineering")
    assert not is_education_match("Medicine", "Computer Science")
    assert not is_education_match(
        "Bachelor of Technology in Computer Science", "Bachelor of Science in Nursing"
    )
    assert is_exam_match("JEE Main", "jee main")
    assert not is_exam_match("NEET UG", "CLAT")


def test_career_title_matching():
    assert is_career_match("software engineer", "Software Engineer")
    assert is_career_match("engineer", "Mechanical Engineer")
    assert not is_career_match("doctor", "Chartered Accountant")
    assert not is_career_match("", "Doctor")


def test_merge_unique_is_case_insensitive():
    assert merge_unique(["Maths", "Art"], ["maths", "Music"]) == ["maths", "art", "music"]


def test_tech_student_scores_software_engineer_high():
    score, factors = rule_score(_profile(), _career("software-engineer"))

    assert factors == {
        "interest_match": 100,
        "skill_alignment": 95,
        "market_demand": 90,
        "financial_viability": 75,
        "educational_fit": 90,
    }
    assert score == 92


def test_unrelated_career_scores_low():
    score, factors = rule_score(_profile(), _career("doctor"))
    assert factors["interest_match"] == 0
    assert score < 60


def test_preferred_career_bonus():
    base, _ = rule_score(_profile(), _career("chartered-accountant"))
    preferred, _ = rule_score(
        _profile(aspirations={"preferred_careers": ["Chartered Accountant"]}),
        _career("chartered-accountant"),
    )
    assert preferred == base + 5


def test_financial_constraint_penalises_expensive_education():
    career = _career("doctor")
    _, relaxed = rule_score(_profile(family_income="1-3 Lakhs"), career)
    _, constrained = rule_score(
        _profile(family_income="1-3 Lakhs", constraints={"financial_constraints": True}),
        career,
    )
    assert constrained["financial_viability"] == relaxed["financial_viability"] - 15


def test_scores_stay_in_range_for_every_career():
    profile = _profile()
    for career in get_catalog().careers:
        score, factors = rule_score(profile, career)
        assert 0 <= score <= 100
        assert all(0 <= v <= 100 for v in factors.values())

import re

import pytest
from pydantic import ValidationError

from conftest import DETAILED_OVERRIDES, make_profile
from careerpath.schemas.profile import StudentProfileIn
from careerpath.services.profile_validation import (
    extract_keywords,
    generate_profile_id,
    profile_completeness,
    profile_summary,
    validate_profile,
)


def _profile(**overrides) -> StudentProfileIn:
    return StudentProfileIn.model_validate(make_profile(**overrides))


def test_valid_profile_has_no_errors():
    result = validate_profile(_profile(), ["technology", "mathematics"])
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []


def test_strings_are_trimmed_and_lists_deduplicated():
    profile = _profile(
        personal_info={"name": "  Priya Verma  "},
        academic_data={"interests": [" Music ", "music", "", "Art"]},
    )
    assert profile.personal_info.name == "Priya Verma"
    assert profile.academic_data.interests == ["Music", "Art"]


def test_devanagari_names_are_accepted():
    assert _profile(personal_info={"name": "प्रिया शर्मा"}).personal_info.name == "प्रिया शर्मा"


@pytest.mark.parametrize(
    "overrides",
    [
        {"personal_info": {"name": "R2D2"}},
        {"personal_info": {"grade": "8"}},
        {"personal_info": {"board": "Unknown"}},
        {"academic_data": {"interests": []}},
        {"academic_data": {"interests": ["x"]}},
        {"academic_data": {"performance": "Great"}},
        {"socioeconomic_data": {"rural_urban": "suburban"}},
        {"family_income": "Lots"},
    ],
)
def test_schema_rejects_bad_input(overrides):
    with pytest.raises(ValidationError):
        _profile(**overrides)


def test_script_content_is_rejected():
    result = validate_profile(_profile(socioeconomic_data={"family_background": "<script>alert(1)</script>"}))
    assert not result.is_valid
    assert result.code == "INVALID_CONTENT"


def test_inline_handler_is_rejected():
    result = validate_profile(_profile(academic_data={"achievements": ['img onerror="x"']}))
    assert result.code == "INVALID_CONTENT"


def test_overlong_list_item_is_rejected():
    result = validate_profile(_profile(academic_data={"achievements": ["a" * 501]}))
    assert result.code == "CONTENT_TOO_LONG"


def test_soft_warnings():
    result = validate_profile(
        _profile(
            personal_info={"age": 30},
            academic_data={"subjects": ["Mathematics"]},
            socioeconomic_data={"household_size": 20, "internet_access": False, "device_access": []},
        ),
        ["technology"],
    )
    assert result.is_valid
    assert len(result.warnings) == 4


def test_unknown_interests_warn():
    result = validate_profile(
        _profile(academic_data={"interests": ["Underwater basket weaving"]}),
        ["technology", "law"],
    )
    assert any("interests" in w for w in result.warnings)


def test_completeness_counts_optional_details():
    # age, favourite subjects, activities, background, economic factors, devices
    assert profile_completeness(_profile()) == round(6 / 13 * 100)
    sparse = _profile(socioeconomic_data={"family_background": "", "economic_factors": []})
    assert profile_completeness(sparse) == round(4 / 13 * 100)
    assert profile_completeness(_profile(**DETAILED_OVERRIDES)) == 100


def test_profile_id_format():
    first = generate_profile_id()
    assert re.fullmatch(r"profile_[0-9a-z]+_[0-9a-z]{9}", first)
    assert first != generate_profile_id()


def test_summary_and_keywords():
    profile = _profile()
    summary = profile_summary(profile)
    assert "Grade 12" in summary
    assert "Aarav" not in summary

    keywords = extract_keywords(profile)
    assert keywords[:2] == ["technology", "mathematics"]
    assert keywords.count("mathematics") == 1

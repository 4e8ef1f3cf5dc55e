"""Reference catalog loading and queries (no DB needed)."""

import json

import pytest

from careerpath.core.errors import AppError
from careerpath.services.catalog import ReferenceCatalog, get_catalog, years_to_first_job


@pytest.fixture()
def catalog():
    return get_catalog()


def test_bundled_data_loads(catalog):
    stats = catalog.statistics()
    assert stats.total_careers == 12
    assert stats.total_colleges == 14
    assert stats.total_scholarships == 9
    assert stats.colleges_by_type["private"] == 2
    assert stats.colleges_by_type["deemed"] == 1


def test_lookup_by_id(catalog):
    assert catalog.get_career("software-engineer").title == "Software Engineer"
    assert catalog.get_college("iit-bombay").type == "government"
    assert catalog.get_scholarship("nmms") is not None
    assert catalog.get_career("astronaut") is None


def test_colleges_for_career_sorted_by_nirf(catalog):
    colleges = catalog.colleges_for_career("software-engineer")
    ids = [c.id for c in colleges]
    assert ids == ["iit-delhi", "iit-bombay", "nit-trichy", "bits-pilani", "manipal-mit"]
    assert "aiims-delhi" not in ids


def test_colleges_for_unknown_career(catalog):
    assert catalog.colleges_for_career("astronaut") == []


def test_unranked_colleges_sort_last(catalog):
    colleges = catalog.colleges_for_career("journalist")
    assert [c.id for c in colleges] == ["du-miranda", "jnu-delhi", "srcc-delhi", "iimc-delhi"]
    assert colleges[-1].rankings.nirf is None


def test_search_colleges(catalog):
    private = catalog.search_colleges(type="private")
    assert {c.id for c in private} == {"cmc-vellore", "manipal-mit"}

    in_delhi = catalog.search_colleges(location="delhi")
    assert all("Delhi" in c.location or c.state == "Delhi" for c in in_delhi)

    cheap = catalog.search_colleges(max_fees=25_000)
    assert {c.id for c in cheap} == {"aiims-delhi", "jnu-delhi", "du-miranda"}

    by_exam = catalog.search_colleges(entrance_exam="clat")
    assert [c.id for c in by_exam] == ["nlsiu-bengaluru"]


def test_search_careers(catalog):
    high_paying = catalog.search_careers(min_salary=700_000)
    assert {c.id for c in high_paying} == {"data-scientist", "doctor", "chartered-accountant"}

    by_skill = catalog.search_careers(skill="programming")
    assert {c.id for c in by_skill} == {"software-engineer", "data-scientist"}


def test_search_scholarships(catalog):
    merit = catalog.search_scholarships(type="Merit-based")
    assert {s.id for s in merit} == {"inspire-she", "kvpy-successor-merit"}


def test_applicable_scholarships(catalog):
    found = catalog.applicable_scholarships(category="SC", family_income=200_000, grade="12")
    assert {s.id for s in found} == {
        "nsp-post-matric-sc",
        "inspire-she",
        "central-sector-scheme",
        "nmms",
        "kvpy-successor-merit",
    }


def test_category_restricted_scholarships_need_a_category(catalog):
    found = catalog.applicable_scholarships(family_income=200_000, grade="12")
    assert "nsp-post-matric-sc" not in {s.id for s in found}


def test_gender_and_disability_restrictions(catalog):
    female = catalog.applicable_scholarships(family_income=500_000, grade="12", gender="female")
    assert "pragati-aicte" in {s.id for s in female}

    disabled = catalog.applicable_scholarships(grade="Graduate", disabled=True)
    assert "disability-top-class" in {s.id for s in disabled}
    assert "disability-top-class" not in {
        s.id for s in catalog.applicable_scholarships(grade="Graduate")
    }


def test_compare_careers(catalog):
    comparison = catalog.compare_careers(["software-engineer", "teacher"])
    assert [row["id"] for row in comparison.careers] == ["software-engineer", "teacher"]
    assert comparison.highest_entry_salary == "software-engineer"
    assert comparison.lowest_education_cost == "teacher"
    assert comparison.highest_demand == ["software-engineer"]


def test_compare_unknown_career(catalog):
    with pytest.raises(AppError) as exc:
        catalog.compare_careers(["software-engineer", "astronaut"])
    assert exc.value.code == "CAREER_NOT_FOUND"
    assert exc.value.status_code == 404


def test_years_to_first_job(catalog):
    # 2 years + 6 months + 3 years; the open-ended step is skipped
    assert years_to_first_job(catalog.get_career("software-engineer")) == 5.5


def test_invalid_records_are_skipped(tmp_path, catalog):
    careers = [c.model_dump() for c in catalog.careers[:2]]
    careers.append({"id": "broken", "title": "Missing fields"})
    (tmp_path / "careers.json").write_text(json.dumps(careers))
    (tmp_path / "colleges.json").write_text(json.dumps([c.model_dump() for c in catalog.colleges]))
    (tmp_path / "scholarships.json").write_text("[]")

    custom = ReferenceCatalog(tmp_path)
    assert len(custom.careers) == 2
    assert custom.get_career("broken") is None
    assert custom.scholarships == []


def test_missing_file_raises_data_load_error(tmp_path):
    with pytest.raises(AppError) as exc:
        ReferenceCatalog(tmp_path)
    assert exc.value.code == "DATA_LOAD_ERROR"


def test_non_list_file_raises_data_load_error(tmp_path):
    (tmp_path / "careers.json").write_text('{"careers": []}')
    with pytest.raises(AppError) as exc:
        ReferenceCatalog(tmp_path)
    assert exc.value.code == "DATA_LOAD_ERROR"

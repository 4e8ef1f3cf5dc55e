import pytest


@pytest.mark.asyncio
async def test_list_endpoints(client):
    careers = await client.get("/api/v1/careers")
    colleges = await client.get("/api/v1/colleges")
    scholarships = await client.get("/api/v1/scholarships")

    assert careers.status_code == 200
    assert len(careers.json()) == 12
    assert len(colleges.json()) == 14
    assert len(scholarships.json()) == 9


@pytest.mark.asyncio
async def test_get_career_and_its_colleges(client):
    res = await client.get("/api/v1/careers/software-engineer")
    assert res.status_code == 200
    assert res.json()["title"] == "Software Engineer"

    colleges = await client.get("/api/v1/careers/software-engineer/colleges")
    assert [c["id"] for c in colleges.json()][:2] == ["iit-delhi", "iit-bombay"]


@pytest.mark.asyncio
async def test_unknown_career(client):
    res = await client.get("/api/v1/careers/astronaut")
    assert res.status_code == 404
    assert res.json()["code"] == "CAREER_NOT_FOUND"

    colleges = await client.get("/api/v1/careers/astronaut/colleges")
    assert colleges.status_code == 404


@pytest.mark.asyncio
async def test_unknown_college_and_scholarship(client):
    assert (await client.get("/api/v1/colleges/nowhere")).status_code == 404
    assert (await client.get("/api/v1/scholarships/nothing")).status_code == 404


@pytest.mark.asyncio
async def test_search_colleges(client):
    res = await client.get("/api/v1/colleges/search", params={"type": "private"})
    assert {c["id"] for c in res.json()} == {"cmc-vellore", "manipal-mit"}

    bad = await client.get("/api/v1/colleges/search", params={"type": "online"})
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_search_careers(client):
    res = await client.get("/api/v1/careers/search", params={"skill": "programming"})
    assert {c["id"] for c in res.json()} == {"software-engineer", "data-scientist"}


@pytest.mark.asyncio
async def test_compare_careers(client):
    res = await client.get(
        "/api/v1/careers/compare", params={"ids": "software-engineer,teacher"}
    )
    assert res.status_code == 200
    assert res.json()["highest_entry_salary"] == "software-engineer"


@pytest.mark.asyncio
@pytest.mark.parametrize("ids", ["software-engineer", "a,b,c,d,e,f"])
async def test_compare_needs_two_to_five_ids(client, ids):
    res = await client.get("/api/v1/careers/compare", params={"ids": ids})
    assert res.status_code == 400
    assert res.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_applicable_scholarships(client):
    res = await client.get(
        "/api/v1/scholarships/applicable",
        params={"category": "SC", "family_income": 200000, "grade": "12"},
    )
    assert res.status_code == 200
    assert "nsp-post-matric-sc" in {s["id"] for s in res.json()}


@pytest.mark.asyncio
async def test_search_scholarships(client):
    res = await client.get("/api/v1/scholarships/search", params={"type": "Merit-based"})
    assert {s["id"] for s in res.json()} == {"inspire-she", "kvpy-successor-merit"}


@pytest.mark.asyncio
async def test_statistics(client):
    res = await client.get("/api/v1/statistics")
    assert res.status_code == 200
    assert res.json()["total_careers"] == 12


@pytest.mark.asyncio
async def test_reload_requires_admin(client, counselor_headers, admin_headers):
    forbidden = await client.post("/api/v1/catalog/reload", headers=counselor_headers)
    assert forbidden.status_code == 403

    res = await client.post("/api/v1/catalog/reload", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["total_colleges"] == 14

import pytest

HERO = {
    "page": "home",
    "section": "Hero",
    "section_key": "hero",
    "title": {"en": "Welcome", "ta": "வணக்கம்"},
    "content": {"en": "Tamil Literature Society"},
    "order": 1,
}


@pytest.fixture
def hero(client, admin_headers):
    resp = client.post("/api/website-content", json=HERO, headers=admin_headers)
    assert resp.status_code == 201
    return resp.json()["data"]


def test_create_and_duplicate(client, admin_headers, hero):
    assert hero["version"] == 1
    resp = client.post("/api/website-content", json=HERO, headers=admin_headers)
    assert resp.status_code == 400
    # same key on another page is fine
    resp = client.post("/api/website-content", json={**HERO, "page": "about"}, headers=admin_headers)
    assert resp.status_code == 201


def test_update_bumps_version(client, admin_headers, hero):
    resp = client.put(f"/api/website-content/{hero['_id']}", json={"title": {"en": "Hello", "ta": "வணக்கம்"}}, headers=admin_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["version"] == 2
    assert data["title"]["en"] == "Hello"
    assert data["section_key"] == "hero"


def test_update_cannot_clash_with_existing_key(client, admin_headers, hero):
    other = client.post("/api/website-content", json={**HERO, "section_key": "intro", "section": "Intro"}, headers=admin_headers).json()["data"]
    resp = client.put(f"/api/website-content/{other['_id']}", json={"section_key": "hero"}, headers=admin_headers)
    assert resp.status_code == 400


def test_required_content_cannot_be_deleted(client, admin_headers):
    required = client.post(
        "/api/website-content", json={**HERO, "section_key": "footer", "is_required": True}, headers=admin_headers
    ).json()["data"]
    resp = client.delete(f"/api/website-content/{required['_id']}", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Required content cannot be deleted"


def test_delete_optional_content(client, admin_headers, hero):
    assert client.delete(f"/api/website-content/{hero['_id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/website-content").json()["count"] == 0


def test_page_content_is_ordered_and_localized(client, admin_headers, hero):
    client.post(
        "/api/website-content",
        json={**HERO, "section_key": "intro", "section": "Intro", "order": 0, "title": {"en": "Intro"}},
        headers=admin_headers,
    )
    client.post(
        "/api/website-content",
        json={**HERO, "section_key": "hidden", "section": "Hidden", "is_visible": False},
        headers=admin_headers,
    )
    data = client.get("/api/website-content/pages/home", params={"lang": "ta"}).json()["data"]
    assert [d["section_key"] for d in data] == ["intro", "hero"]
    assert data[0]["title"] == "Intro"
    assert data[1]["title"] == "வணக்கம்"


def test_list_filters(client, admin_headers, hero):
    client.post("/api/website-content", json={**HERO, "page": "about", "section_key": "story", "section": "Story"}, headers=admin_headers)
    body = client.get("/api/website-content", params={"page": "about"}).json()
    assert body["count"] == 1
    body = client.get("/api/website-content", params={"search": "stor"}).json()
    assert body["data"][0]["section_key"] == "story"


def test_list_paginates_with_page_number(client, mongo):
    for i in range(3):
        mongo["websitecontent"].insert_one({"page": "home", "section_key": f"s{i}", "order": i, "is_active": True})
    mongo["websitecontent"].insert_one({"page": "about", "section_key": "s9", "order": 9, "is_active": True})

    body = client.get("/api/website-content", params={"page": "home", "page_number": 2, "limit": 2}).json()
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["page"] == 2
    assert [d["section_key"] for d in body["data"]] == ["s2"]
    assert body["pagination"]["prev"] == {"page": 1, "limit": 2}

def _person(api, first, last):
    return api.post("/api/people", json={"first_name": first, "last_name": last}).json["id"]


def test_group_members_leaders_first(api):
    group = api.post("/api/groups", json={"name": "Tuesday Bible Study", "category": "Adults"}).json
    zed = _person(api, "Zed", "Adams")
    amy = _person(api, "Amy", "Young")

    assert api.post(f"/api/groups/{group['id']}/members", json={"person_id": zed}).status_code == 201
    r = api.post(f"/api/groups/{group['id']}/members", json={"person_id": amy, "role": "leader"})
    assert r.status_code == 201

    members = api.get(f"/api/groups/{group['id']}/members").json["members"]
    assert [m["first_name"] for m in members] == ["Amy", "Zed"]
    assert members[0]["role"] == "leader"

    listing = api.get("/api/groups").json
    assert listing["total"] == 1
    assert listing["groups"][0]["member_count"] == 2


def test_duplicate_member_conflicts(api):
    group_id = api.post("/api/groups", json={"name": "Choir"}).json["id"]
    pid = _person(api, "Sam", "Singer")
    api.post(f"/api/groups/{group_id}/members", json={"person_id": pid})
    r = api.post(f"/api/groups/{group_id}/members", json={"person_id": pid})
    assert r.status_code == 409
    assert r.json["error"]["message"] == "Person is already a member of this group"


def test_member_role_must_be_valid(api):
    group_id = api.post("/api/groups", json={"name": "Youth"}).json["id"]
    pid = _person(api, "Kid", "One")
    r = api.post(f"/api/groups/{group_id}/members", json={"person_id": pid, "role": "boss"})
    assert r.status_code == 400


def test_remove_member_and_missing_member(api):
    group_id = api.post("/api/groups", json={"name": "Ushers"}).json["id"]
    pid = _person(api, "Ursula", "Usher")
    api.post(f"/api/groups/{group_id}/members", json={"person_id": pid})
    assert api.delete(f"/api/groups/{group_id}/members/{pid}").status_code == 200
    r = api.delete(f"/api/groups/{group_id}/members/{pid}")
    assert r.status_code == 404
    assert r.json["error"]["message"] == "Member not found"


def test_group_name_required(api):
    r = api.post("/api/groups", json={"description": "no name"})
    assert r.status_code == 400
    assert r.json["error"]["message"] == "Name is required."

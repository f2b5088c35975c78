from app.flock.db import session_scope
from app.flock.models import AuditEvent
from app.flock.modules.people.service import validate_person_payload


def test_validate_person_payload_collects_errors():
    errors = validate_person_payload({"first_name": "", "last_name": "x" * 101, "email": "nope"})
    assert "First name is required." in errors
    assert "Last name must be at most 100 characters." in errors
    assert "Invalid email address." in errors


def test_validate_person_payload_partial_skips_missing_names():
    assert validate_person_payload({"phone": "555-0100"}, partial=True) == []


def test_person_crud_and_audit(app, api):
    r = api.post(
        "/api/people",
        json={"first_name": "Mary", "last_name": "Jones", "email": "MARY@Example.org", "membership_status": "visitor"},
    )
    assert r.status_code == 201
    person = r.json
    assert person["full_name"] == "Mary Jones"
    assert person["email"] == "mary@example.org"

    r = api.patch(f"/api/people/{person['id']}", json={"membership_status": "member"})
    assert r.status_code == 200
    assert r.json["membership_status"] == "member"

    r = api.patch(f"/api/people/{person['id']}", json={})
    assert r.status_code == 400
    assert r.json["error"]["message"] == "No fields to update"

    r = api.delete(f"/api/people/{person['id']}")
    assert r.status_code == 200
    assert api.get(f"/api/people/{person['id']}").status_code == 404

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).filter(AuditEvent.entity_type == "Person").all()]
    assert actions == ["person.create", "person.edit", "person.delete"]


def test_person_validation_error_message(api):
    r = api.post("/api/people", json={"first_name": "A"})
    assert r.status_code == 400
    assert r.json["error"]["message"] == "Last name is required."


def test_people_search_and_paging(api):
    for first, last in (("Ann", "Adams"), ("Bob", "Baker"), ("Cara", "Baker")):
        api.post("/api/people", json={"first_name": first, "last_name": last})

    r = api.get("/api/people?search=baker")
    assert r.json["total"] == 2
    assert [p["first_name"] for p in r.json["people"]] == ["Bob", "Cara"]

    r = api.get("/api/people?limit=1&offset=1")
    assert r.json["total"] == 3
    assert len(r.json["people"]) == 1

    assert api.get("/api/people?limit=500").status_code == 400


def test_people_are_tenant_isolated(api, other_api):
    r = api.post("/api/people", json={"first_name": "Grace", "last_name": "Only"})
    person_id = r.json["id"]
    assert other_api.get(f"/api/people/{person_id}").status_code == 404
    assert other_api.get("/api/people").json["total"] == 0

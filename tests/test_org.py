from app.flock.modules.org.service import format_address, normalize_website


def test_normalize_website():
    assert normalize_website("mychurch.org") == "https://mychurch.org"
    assert normalize_website("http://mychurch.org") == "http://mychurch.org"
    assert normalize_website("  ") is None


def test_format_address():
    branding = {"address_line1": "1 Main St", "city": "Springfield", "state": "IL", "postal_code": "62701", "country": "US"}
    assert format_address(branding) == "1 Main St\nSpringfield, IL 62701"
    assert format_address({"country": "US"}) is None
    assert format_address({"city": "Toronto", "country": "Canada"}) == "Toronto\nCanada"


def test_branding_defaults_without_pack(api):
    r = api.get("/api/org/branding")
    assert r.status_code == 200
    assert r.json["brand_pack_id"] is None
    assert r.json["legal_name"] == "Organization"
    assert r.json["theology_profile"]["bible_translation"] == "ESV"


def test_update_branding_creates_pack(api):
    r = api.put(
        "/api/org/branding",
        json={"legal_name": "Grace Church", "church_name": "Grace", "website": "grace.example.org", "bulletin_default_pages": 2},
    )
    assert r.status_code == 200
    assert r.json["brand_pack_id"] is not None
    assert r.json["website"] == "https://grace.example.org"
    assert r.json["bulletin_default_pages"] == 2

    r = api.put("/api/org/branding", json={"legal_name": "Grace Church", "bulletin_default_pages": 9})
    assert r.status_code == 400
    assert "bulletin_default_pages must be between 1 and 4." in r.json["error"]["message"]


def test_legal_name_required(api):
    r = api.put("/api/org/branding", json={"church_name": "Grace"})
    assert r.status_code == 400
    assert r.json["error"]["message"] == "Legal name is required."


def test_viewer_cannot_edit_branding(viewer_api):
    assert viewer_api.put("/api/org/branding", json={"legal_name": "X"}).status_code == 403

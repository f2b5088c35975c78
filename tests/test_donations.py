import pytest

from app.flock.modules.donations.service import validate_campaign_payload, validate_donation_payload


def test_validate_donation_payload():
    assert validate_donation_payload({"amount": "0", "method": "cash"}) == ["Amount must be greater than 0."]
    errors = validate_donation_payload({})
    assert "Amount is required." in errors
    assert "Method is required." in errors
    assert any(e.startswith("Invalid method.") for e in validate_donation_payload({"amount": 5, "method": "barter"}))


def test_validate_campaign_dates():
    errors = validate_campaign_payload({"name": "Roof", "start_date": "2026-05-01", "end_date": "2026-04-01"})
    assert errors == ["End date must be on or after start date."]


def test_campaign_totals_count_completed_only(api):
    campaign = api.post("/api/donations/campaigns", json={"name": "New Roof", "goal_amount": "5000"}).json
    assert campaign["goal_amount"] == "5000.00"

    for amount, status in (("100", "completed"), ("50.5", "completed"), ("999", "pending")):
        r = api.post(
            "/api/donations",
            json={"amount": amount, "method": "check", "status": status, "campaign_id": campaign["id"]},
        )
        assert r.status_code == 201

    campaigns = api.get("/api/donations/campaigns").json["campaigns"]
    assert campaigns[0]["total_raised"] == "150.50"
    assert campaigns[0]["donation_count"] == 2


def test_stats_and_monthly(api):
    for amount, day in (("20", "2026-03-01"), ("30", "2026-03-15"), ("50", "2026-07-04")):
        api.post("/api/donations", json={"amount": amount, "method": "cash", "donation_date": day})

    stats = api.get("/api/donations/stats?start_date=2026-01-01&end_date=2026-12-31").json
    assert stats["total_amount"] == "100.00"
    assert stats["donation_count"] == 3
    assert stats["avg_donation"] == "33.33"

    months = api.get("/api/donations/stats/monthly?year=2026").json["months"]
    assert len(months) == 12
    assert months[2]["month_name"] == "March"
    assert months[2]["total_amount"] == "50.00"
    assert months[6]["donation_count"] == 1

    assert api.get("/api/donations/stats/monthly?year=1999").status_code == 400


def test_tax_statement_excludes_non_deductible(api):
    api.put("/api/org/branding", json={"legal_name": "Grace Church Inc.", "ein": "12-3456789"})
    pid = api.post("/api/people", json={"first_name": "Dana", "last_name": "Donor"}).json["id"]
    api.post("/api/donations", json={"amount": "40", "method": "online", "person_id": pid, "donation_date": "2026-02-01"})
    api.post(
        "/api/donations",
        json={"amount": "60", "method": "cash", "person_id": pid, "donation_date": "2026-02-02", "is_tax_deductible": False},
    )

    stmt = api.get(f"/api/donations/tax-statements/2026/{pid}").json
    assert stmt["donor"]["name"] == "Dana Donor"
    assert stmt["organization"]["legal_name"] == "Grace Church Inc."
    assert stmt["organization"]["ein"] == "12-3456789"
    assert stmt["total_amount"] == "40.00"
    assert stmt["donation_count"] == 1


def test_update_receipt_and_soft_delete(api):
    d = api.post("/api/donations", json={"amount": "10", "method": "cash"}).json
    r = api.patch(f"/api/donations/{d['id']}", json={"receipt_sent": True})
    assert r.json["receipt_sent_at"] is not None
    assert api.delete(f"/api/donations/{d['id']}").status_code == 200
    assert api.get(f"/api/donations/{d['id']}").status_code == 404


def test_viewer_cannot_see_donations(viewer_api):
    assert viewer_api.get("/api/donations").status_code == 403


@pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", "sNaN", "1e20"])
def test_non_finite_or_oversized_amounts_are_bad_requests(api, amount):
    r = api.post("/api/donations", json={"amount": amount, "method": "cash"})
    assert r.status_code == 400
    assert r.json["error"]["code"] == "BAD_REQUEST"

    campaign = api.post("/api/donations/campaigns", json={"name": "Roof", "goal_amount": amount})
    assert campaign.status_code == 400


def test_update_rejects_nan_amount(api):
    donation = api.post("/api/donations", json={"amount": "25", "method": "cash"}).json
    r = api.patch(f"/api/donations/{donation['id']}", json={"amount": "NaN"})
    assert r.status_code == 400
    assert api.get(f"/api/donations/{donation['id']}").json["amount"] == "25.00"

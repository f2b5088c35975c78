from tests.conftest import login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain_text(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_api_requires_login(client):
    r = client.get("/api/people")
    assert r.status_code == 401
    assert r.json["error"]["code"] == "UNAUTHORIZED"


def test_login_and_me(client):
    api = login(client, "admin@grace.example.org")
    r = api.get("/auth/me")
    assert r.status_code == 200
    assert r.json["user"]["email"] == "admin@grace.example.org"
    assert "admin" in r.json["user"]["roles"]


def test_login_bad_password(client):
    r = client.post("/auth/login", json={"email": "admin@grace.example.org", "password": "nope"})
    assert r.status_code == 401
    assert r.json["error"]["message"] == "Invalid credentials"


def test_login_rate_limited_after_five_failures(client):
    for _ in range(5):
        client.post("/auth/login", json={"email": "admin@grace.example.org", "password": "nope"})
    r = client.post("/auth/login", json={"email": "admin@grace.example.org", "password": "pw"})
    assert r.status_code == 429


def test_mutation_without_csrf_is_rejected(api):
    r = api.client.post("/api/people", json={"first_name": "Ann", "last_name": "Lee"})
    assert r.status_code == 400
    assert r.json["error"]["code"] == "CSRF_INVALID"


def test_csrf_token_in_json_body_is_accepted(api):
    r = api.client.post(
        "/api/people", json={"first_name": "Ann", "last_name": "Lee", "csrf_token": api.csrf_token}
    )
    assert r.status_code == 201


def test_viewer_cannot_edit(viewer_api):
    r = viewer_api.post("/api/people", json={"first_name": "Ann", "last_name": "Lee"})
    assert r.status_code == 403
    assert r.json["error"]["message"] == "Insufficient permissions"


def test_tenant_header_mismatch_is_ignored(api, other_api):
    r = other_api.post("/api/people", json={"first_name": "Hope", "last_name": "Member"})
    assert r.status_code == 201

    r = api.get("/api/people", headers={"X-Tenant-Id": "someone-else"})
    assert r.status_code == 200
    names = [p["first_name"] for p in r.json["people"]]
    assert "Hope" not in names


def test_platform_user_without_tenant_needs_context(platform_api):
    r = platform_api.get("/api/people")
    assert r.status_code == 400
    assert r.json["error"]["message"] == "Tenant context required"


def test_unknown_api_path_is_json_404(api):
    r = api.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["error"]["code"] == "NOT_FOUND"


def test_cors_only_for_allowed_origin(api):
    r = api.get("/api/people", headers={"Origin": "https://app.example.org"})
    assert r.headers.get("Access-Control-Allow-Origin") == "https://app.example.org"
    assert r.headers.get("Access-Control-Allow-Credentials") == "true"

    r = api.get("/api/people", headers={"Origin": "https://evil.example.com"})
    assert "Access-Control-Allow-Origin" not in r.headers


def test_login_throttle_window_and_forget(monkeypatch):
    from app.flock import auth

    clock = iter([0.0, 1.0, 2.0, 3.0, 400.0])
    monkeypatch.setattr(auth.time, "monotonic", lambda: next(clock))
    throttle = auth.LoginThrottle(limit=2, window_seconds=300)
    throttle.hit("1.2.3.4")
    throttle.hit("1.2.3.4")
    assert throttle.blocked("1.2.3.4")
    assert not throttle.blocked("5.6.7.8")
    # both attempts have aged out of the window
    assert not throttle.blocked("1.2.3.4")

    throttle.forget("1.2.3.4")
    assert "1.2.3.4" not in throttle._attempts

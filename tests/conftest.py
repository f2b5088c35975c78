import pytest
from werkzeug.security import generate_password_hash

from app.flock import create_app
from app.flock import auth as auth_module
from app.flock.db import session_scope
from app.flock.models import Base, Tenant, User
from app.flock.modules.ai.client import ChatResult
from app.flock.modules.sermon_helper import service as helper_service
from scripts.init_db import seed_roles

PASSWORD = "pw"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("APP_ENCRYPTION_KEY", "ab" * 32)
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://app.example.org")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    auth_module.login_throttle.reset()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = seed_roles(s)
        grace = Tenant(slug="grace", name="Grace Church", primary_email="office@grace.example.org")
        hope = Tenant(slug="hope", name="Hope Chapel", primary_email="office@hope.example.org")
        s.add_all([grace, hope])
        s.flush()

        def add_user(email, role_key, tenant_id):
            u = User(email=email, password_hash=generate_password_hash(PASSWORD), tenant_id=tenant_id, is_active=True)
            u.roles.append(roles[role_key])
            s.add(u)

        add_user("admin@grace.example.org", "admin", grace.id)
        add_user("viewer@grace.example.org", "viewer", grace.id)
        add_user("submitter@grace.example.org", "submitter", grace.id)
        add_user("admin@hope.example.org", "admin", hope.id)
        add_user("platform@example.org", "platform_admin", None)
        app.config["TEST_TENANTS"] = {"grace": grace.id, "hope": hope.id}

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


class ApiClient:
    """Test client wrapper that sends the session CSRF token on writes."""

    def __init__(self, client, csrf_token: str):
        self.client = client
        self.csrf_token = csrf_token

    def _headers(self, headers):
        out = {"X-CSRF-Token": self.csrf_token}
        out.update(headers or {})
        return out

    def get(self, url, **kwargs):
        return self.client.get(url, **kwargs)

    def post(self, url, json=None, headers=None, **kwargs):
        return self.client.post(url, json=json, headers=self._headers(headers), **kwargs)

    def put(self, url, json=None, headers=None, **kwargs):
        return self.client.put(url, json=json, headers=self._headers(headers), **kwargs)

    def patch(self, url, json=None, headers=None, **kwargs):
        return self.client.patch(url, json=json, headers=self._headers(headers), **kwargs)

    def delete(self, url, headers=None, **kwargs):
        return self.client.delete(url, headers=self._headers(headers), **kwargs)


def login(client, email: str, password: str = PASSWORD) -> ApiClient:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.json
    return ApiClient(client, r.json["csrf_token"])


@pytest.fixture()
def api(app):
    return login(app.test_client(), "admin@grace.example.org")


@pytest.fixture()
def viewer_api(app):
    return login(app.test_client(), "viewer@grace.example.org")


@pytest.fixture()
def submitter_api(app):
    return login(app.test_client(), "submitter@grace.example.org")


@pytest.fixture()
def other_api(app):
    return login(app.test_client(), "admin@hope.example.org")


@pytest.fixture()
def platform_api(app):
    return login(app.test_client(), "platform@example.org")


@pytest.fixture()
def tenant_id(app):
    return app.config["TEST_TENANTS"]["grace"]


@pytest.fixture()
def ai_ready(api):
    assert api.put("/api/admin/tenant-plan", json={"plan": "starter"}).status_code == 200
    r = api.put("/api/admin/ai-settings", json={"api_key": "sk-test-abcd", "enabled": True})
    assert r.status_code == 200, r.json
    return api


@pytest.fixture()
def fake_ai(monkeypatch):
    """Replace the provider call; returns the list of captured calls."""
    calls = []

    def install(content, *, model="gpt-4o-mini", tokens=(120, 80), error=None):
        def _call(api_key, messages, **kwargs):
            calls.append({"api_key": api_key, "messages": messages, "kwargs": kwargs})
            if error is not None:
                raise error
            return ChatResult(content=content, model=model, tokens_in=tokens[0], tokens_out=tokens[1])

        monkeypatch.setattr(helper_service, "call_ai", _call)
        return calls

    return install

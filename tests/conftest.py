import os
import re
import tempfile

# Configure the application before anything imports core.config
_test_tmp_dir = tempfile.mkdtemp(prefix="storefront_test_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_test_tmp_dir, 'test.db')}"
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-do-not-use-in-production")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-do-not-use-in-production")
os.environ.setdefault("JWT_EMAIL_SECRET", "test-email-secret-do-not-use-in-production")
os.environ.setdefault("JWT_PASSWORD_RESET_SECRET", "test-reset-secret-do-not-use-in-production")
os.environ["PASSWORD_HASH_ROUNDS"] = "10000"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from auth import store  # noqa: E402
from core.mailer import MailDeliveryError, Mailer, get_mailer  # noqa: E402
from core.rate_limit import ALL_LIMITERS  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from main import app  # noqa: E402
from models.enums import Role  # noqa: E402

_TOKEN_RE = re.compile(r"token=([A-Za-z0-9_\-\.]+)")


class RecordingMailer(Mailer):
    """Keeps every message in ``outbox`` instead of talking SMTP."""

    def __init__(self):
        super().__init__(from_email="no-reply@storefront.test")
        self.outbox = []
        self.fail = False

    def send(self, to, subject, html, text=None, reply_to=None):
        if self.fail:
            raise MailDeliveryError("SMTP unavailable")
        self.outbox.append({"to": to, "subject": subject, "html": html, "text": text})
        return f"<{len(self.outbox)}@storefront.test>"

    def last_token(self, to=None):
        for message in reversed(self.outbox):
            if to is None or message["to"] == to:
                match = _TOKEN_RE.search(message["text"] or message["html"])
                if match:
                    return match.group(1)
        raise AssertionError(f"no token mailed to {to!r}")


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_limiters():
    for limiter in ALL_LIMITERS:
        limiter.reset()
    yield
    for limiter in ALL_LIMITERS:
        limiter.reset()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def client(mailer):
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Factory for accounts created straight through the store."""

    def _make(name="bob", email=None, password="secret1", role=Role.USER, verified=True):
        return store.create(
            db,
            name=name,
            email=email or f"{name}@example.com",
            password=password,
            role=role,
            is_email_verified=verified,
        )

    return _make


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def login(client, name, password):
    return client.post("/auth/login", json={"name": name, "password": password})


def login_tokens(client, name, password):
    resp = login(client, name, password)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["tokens"]

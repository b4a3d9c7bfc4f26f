import os
import sys
import tempfile
from pathlib import Path

# Point storage at a throwaway SQLite file before anything imports `models`.
_test_tmp_dir = tempfile.mkdtemp(prefix="vending_test_")
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_test_tmp_dir}/test.db"
os.environ.setdefault("LOG_LEVEL", "WARNING")

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from api import create_app  # noqa: E402
from api.config import TestingConfig  # noqa: E402
from models import storage  # noqa: E402
from models.audit_log import AuditLog  # noqa: E402
from models.refresh_token import RefreshToken  # noqa: E402
from models.user import User  # noqa: E402
from services import build_security  # noqa: E402
from utils.clock import ManualClock  # noqa: E402
from utils.security import hash_password  # noqa: E402

PASSWORD = "Correct-Horse-42"


def _wipe():
    session = storage.get_session()
    for model in (AuditLog, RefreshToken, User):
        session.query(model).delete(synchronize_session=False)
    storage.save()
    storage.close()


@pytest.fixture(autouse=True)
def clean_db():
    _wipe()
    yield
    _wipe()


@pytest.fixture
def clock():
    return ManualClock()


def config_for(**overrides):
    cfg = {key: getattr(TestingConfig, key) for key in dir(TestingConfig) if key.isupper()}
    cfg.update(overrides)
    return cfg


@pytest.fixture
def make_security(clock):
    """Build a SecurityContext from TestingConfig plus overrides."""
    built = []

    def factory(**overrides):
        security = build_security(config_for(**overrides), clock=clock)
        built.append(security)
        return security

    yield factory
    for security in built:
        security.audit.flush()
        security.audit.shutdown()


@pytest.fixture
def security(make_security):
    return make_security()


@pytest.fixture
def app_overrides():
    return {}


@pytest.fixture
def app(clock, app_overrides):
    app = create_app("testing", overrides=app_overrides, clock=clock)
    yield app
    audit = app.extensions["security"].audit
    audit.flush()
    audit.shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user():
    def factory(username="alice", password=PASSWORD, roles=("VIEWER",), enabled=True, email=None):
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password(password),
            roles=list(roles),
            enabled=enabled,
            failed_login_attempts=0,
        )
        storage.new(user)
        storage.save()
        return user

    return factory


def fetch_user(username):
    """Fresh copy of the account as stored (drops this thread's session first)."""
    storage.close()
    return storage.get_session().query(User).filter(User.username == username).one()


def audit_rows(audit, **filters):
    assert audit.flush(timeout=10)
    storage.close()
    rows, _ = audit.search(limit=100, **filters)
    return rows

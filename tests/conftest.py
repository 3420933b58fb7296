import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure predictable environment variables for tests before importing the app.
BASE_DIR = Path(__file__).resolve().parents[1]
TEST_DB_PATH = BASE_DIR / "test.db"

if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

os.environ.setdefault("DATABASE_URL", f"sqlite:///{TEST_DB_PATH}")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("UPLOAD_DIR", str(BASE_DIR / "test_uploads"))
os.environ.setdefault("SEED_DEFAULT_PLANS", "false")

import app.main as main  # noqa: E402  (import after env vars are set)
from app.config import settings  # noqa: E402
from app.database import Base, SessionLocal, engine  # noqa: E402
from app.models.plan import Plan  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.services.actor import Actor  # noqa: E402
from app.services.auth_service import create_access_token  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", tmp_path)
    monkeypatch.setattr(settings, "SPACES_NAME", None)
    return tmp_path


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(monkeypatch):
    """Provide a TestClient with startup seeding patched out for isolation."""
    monkeypatch.setattr(main, "run_seed", lambda: None)

    with TestClient(main.app) as test_client:
        yield test_client


def _make_user(db, email: str, role: str, is_verified: bool = True) -> User:
    user = User(email=email, full_name=email.split("@")[0].title(), role=role, is_verified=is_verified)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def member(db):
    return _make_user(db, "maria@ironworksgym.com", UserRole.member.value)


@pytest.fixture()
def other_member(db):
    return _make_user(db, "jonas@ironworksgym.com", UserRole.member.value)


@pytest.fixture()
def admin(db):
    return _make_user(db, "owner@ironworksgym.com", UserRole.admin.value)


@pytest.fixture()
def staff(db):
    return _make_user(db, "desk@ironworksgym.com", UserRole.staff.value)


@pytest.fixture()
def make_user(db):
    def factory(email: str, role: str = UserRole.member.value, is_verified: bool = True) -> User:
        return _make_user(db, email, role, is_verified)

    return factory


@pytest.fixture()
def make_plan(db):
    def factory(price="1200.00", duration_months: int = 1, name: str = "Monthly Access") -> Plan:
        plan = Plan(
            name=name,
            price=Decimal(price),
            duration_months=duration_months,
            features=["Gym floor access"],
        )
        db.add(plan)
        db.commit()
        db.refresh(plan)
        return plan

    return factory


@pytest.fixture()
def actor_for():
    return Actor.from_user


@pytest.fixture()
def auth_headers(db):
    def factory(user: User) -> dict:
        token = create_access_token(db, user)
        return {"Authorization": f"Bearer {token}"}

    return factory


@pytest.fixture()
def png_proof():
    return ("receipt.png", PNG_BYTES, "image/png")

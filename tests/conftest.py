from __future__ import annotations

from collections.abc import Callable, Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mockcrm import audit
from mockcrm.auth import models as auth_models  # noqa: F401
from mockcrm.core.auth import get_authenticator, get_current_principal
from mockcrm.core.config import get_settings
from mockcrm.core.database import Base, get_db
from mockcrm.core.passwords import hash_password
from mockcrm.crm.models import Account, Customer, Deal, Stage, Task, User
from mockcrm.main import app
from mockcrm.platform.security import Principal, Role, Unauthenticated


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("SESSION_COOKIE_SECURE", "false")
    get_settings.cache_clear()
    get_authenticator.cache_clear()
    audit.audit_entries.clear()
    yield
    app.dependency_overrides.clear()
    get_settings.cache_clear()
    get_authenticator.cache_clear()
    audit.audit_entries.clear()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def _make_user(
        account_id: int,
        *,
        role: Role = Role.SALES_REP,
        email: str | None = None,
        password: str | None = None,
        user_id: int | None = None,
        display_name: str = "Test User",
        external_id: str | None = None,
    ) -> User:
        user = User(
            id=user_id,
            account_id=account_id,
            email=email,
            display_name=display_name,
            role=role.value,
            password_hash=hash_password(password) if password is not None else None,
            external_id=external_id,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture()
def crm_data(db_session: Session) -> dict[str, int]:
    """Two accounts: 100 with an admin (9) and reps 1 and 2, and 200 with admin 30.

    Deals follow the classic visibility scenario: deal 1 belongs to rep 1,
    deal 2 to rep 2, and deal 3 sits in account 200.
    """

    db_session.add_all([Account(id=100, name="Acme"), Account(id=200, name="Globex")])
    db_session.flush()
    db_session.add_all(
        [
            User(id=9, account_id=100, email="admin@acme.com", display_name="Acme Admin", role="admin"),
            User(id=1, account_id=100, email="rep1@acme.com", display_name="Rep One", role="sales_rep"),
            User(id=2, account_id=100, email="rep2@acme.com", display_name="Rep Two", role="sales_rep"),
            User(id=30, account_id=200, email="admin@globex.com", display_name="Globex Admin", role="admin"),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            Customer(id=10, account_id=100, name="Initech", email="buyer@initech.com"),
            Customer(id=20, account_id=200, name="Umbrella"),
            Stage(id=5, account_id=100, name="Prospecting", order_index=0),
            Stage(id=6, account_id=200, name="Prospecting", order_index=0),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            Deal(id=1, account_id=100, user_id=1, customer_id=10, stage_id=5, name="Deal One", amount=Decimal("100.00")),
            Deal(id=2, account_id=100, user_id=2, name="Deal Two", amount=Decimal("250.00")),
            Deal(id=3, account_id=200, user_id=2, name="Deal Three", amount=Decimal("75.50")),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            Task(id=1, deal_id=1, user_id=1, name="Call Initech"),
            Task(id=2, deal_id=2, user_id=2, name="Send proposal"),
            Task(id=3, deal_id=3, user_id=2, name="Foreign task"),
        ]
    )
    db_session.commit()
    return {"account_a": 100, "account_b": 200, "admin": 9, "rep1": 1, "rep2": 2, "admin_b": 30}


@pytest.fixture()
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[Principal | None], None]], None, None]:
    """Client with the principal fixed by the test instead of a credential."""

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    state: dict[str, Principal | None] = {"current": None}

    def override_get_current_principal() -> Principal:
        principal = state["current"]
        if principal is None:
            raise Unauthenticated("no test principal")
        return principal

    def set_principal(principal: Principal | None) -> None:
        state["current"] = principal

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_principal] = override_get_current_principal
    with TestClient(app) as test_client:
        yield test_client, set_principal
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_client(db_session: Session) -> Generator[TestClient, None, None]:
    """Client that authenticates through the configured strategy."""

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

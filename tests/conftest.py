# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CONTENT_SIGNING_SECRET", "test-signing-secret")
os.environ.setdefault("STORAGE_API_KEY", "test-storage-key")

from creatorhub.api.v1 import dependencies as deps
from creatorhub.core.settings import Settings, settings
from creatorhub.db.session import Base
from creatorhub.db.session import get_db as app_get_session
from creatorhub.main import app as fastapi_app
from creatorhub.models import LinkedWallet
from creatorhub.services.contract import CreatorHubReader
from creatorhub.services.fetch_instruction import FetchInstructionSigner
from creatorhub.services.identity import create_access_token
from creatorhub.services.idempotency import InMemoryIdempotencyStore
from creatorhub.services.rate_limit import InMemoryRateLimiter
from creatorhub.services.storage import StorageClient
from tests.fakes import HUB, PAYER, FakeChain

TEST_DB_URL = "sqlite://"
USER_ID = "did:privy:alice"
OTHER_USER_ID = "did:privy:bob"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture()
def hub(chain: FakeChain) -> CreatorHubReader:
    return CreatorHubReader(chain, HUB)  # type: ignore[arg-type]


@pytest.fixture()
def idempotency_store() -> InMemoryIdempotencyStore:
    return InMemoryIdempotencyStore(settings.idempotency_ttl_seconds)


@pytest.fixture()
def rate_limiter() -> InMemoryRateLimiter:
    return InMemoryRateLimiter(settings.rate_limit_window_seconds, settings.rate_limit_max_requests)


@pytest.fixture()
def fetch_signer() -> FetchInstructionSigner:
    return FetchInstructionSigner("test-signing-secret", ttl_seconds=3600)


@pytest.fixture()
def storage_client(mocker) -> StorageClient:
    client = mocker.Mock(spec=StorageClient)
    client.upload = mocker.AsyncMock(return_value="QmTestCid")
    return client


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    chain: FakeChain,
    idempotency_store: InMemoryIdempotencyStore,
    rate_limiter: InMemoryRateLimiter,
    fetch_signer: FetchInstructionSigner,
    storage_client: StorageClient,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    overrides = {
        app_get_session: _get_session_override,
        deps.get_chain_reader_dep: lambda: chain,
        deps.get_idempotency_store_dep: lambda: idempotency_store,
        deps.get_rate_limiter_dep: lambda: rate_limiter,
        deps.get_fetch_signer: lambda: fetch_signer,
        deps.get_storage_client_dep: lambda: storage_client,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Provide the Settings instance the application was built with."""
    return settings


@pytest.fixture()
def linked_wallet(db_session: Session) -> LinkedWallet:
    """Link ``PAYER`` to the default test user."""
    wallet = LinkedWallet(user_id=USER_ID, address=PAYER)
    db_session.add(wallet)
    db_session.commit()
    return wallet


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(USER_ID)}"}


@pytest.fixture()
def production_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "environment", "production")

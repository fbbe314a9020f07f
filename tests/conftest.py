import os
import tempfile
import time
from collections.abc import Generator

import pytest

os.environ["ENVIRONMENT"] = "development"
os.environ["SECRET_KEY"] = "test-signing-key-0123456789abcdefghijklmnop"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REVOCATION_BACKEND"] = "memory"
os.environ["BCRYPT_ROUNDS"] = "4"

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

import aloha.models  # noqa: F401
from aloha.core.config import settings
from aloha.core.tokens import TokenCodec
from aloha.db.base_class import Base
from aloha.db.session import get_db
from aloha.main import app
from aloha.services.auth_service import SessionService
from aloha.services.revocation import MemoryRevocationStore
from aloha.services.user_repository import UserRepository


class FakeClock:
    """Controllable replacement for ``time.time``."""

    def __init__(self, start: float | None = None):
        self.now = float(int(start if start is not None else time.time()))

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def codec(clock: FakeClock) -> TokenCodec:
    return TokenCodec.from_settings(settings, clock=clock)


@pytest.fixture()
def revocation_store(clock: FakeClock) -> MemoryRevocationStore:
    return MemoryRevocationStore(clock=clock)


@pytest.fixture()
def session_factory() -> Generator[sessionmaker, None, None]:
    db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_file.close()

    engine = create_engine(
        f"sqlite:///{db_file.name}",
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        os.unlink(db_file.name)


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def session_service(db_session: Session, codec: TokenCodec, revocation_store: MemoryRevocationStore) -> SessionService:
    return SessionService(UserRepository(db_session), codec, revocation_store)


@pytest.fixture()
def client(
    db_session: Session,
    codec: TokenCodec,
    revocation_store: MemoryRevocationStore,
) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    original_codec = app.state.token_codec
    original_store = app.state.revocation_store

    app.dependency_overrides[get_db] = override_get_db
    app.state.token_codec = codec
    app.state.revocation_store = revocation_store
    app.state.limiter.reset()
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
        app.state.token_codec = original_codec
        app.state.revocation_store = original_store

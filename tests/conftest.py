"""
Shared fixtures: a temporary SQLite key-value store, a fake identity
provider and a submission service wired to both.
"""

from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from common.db import create_engine_from_url, create_session_factory, create_tables
from common.exceptions import AuthenticationError
from common.locks import LocalKeyedLock
from common.schemas import Identity
from modules.kv_store import KeyValueStore
from modules.submission_service import SubmissionService

ADMIN_TOKEN = "admin-token"
USER_TOKEN = "user-token"
ADMIN_SECRET = "test-admin-secret"


class FakeIdentityProvider:
    """Token table standing in for Supabase Auth."""

    def __init__(self) -> None:
        self.identities = {
            ADMIN_TOKEN: Identity(
                id="admin-1",
                email="admin@example.com",
                name="Admin",
                is_admin=True
            ),
            USER_TOKEN: Identity(
                id="user-1",
                email="user@example.com",
                name="User",
                is_admin=False
            ),
        }
        self.created: list[dict[str, Any]] = []

    def verify_token(self, token: str) -> Identity:
        identity = self.identities.get(token)
        if identity is None:
            raise AuthenticationError("Unauthorized - Admin access required")
        return identity

    def create_admin_user(
        self,
        email: str,
        password: str,
        name: Optional[str]
    ) -> dict[str, Any]:
        user = {
            "id": f"user-{len(self.created) + 100}",
            "email": email,
            "user_metadata": {"name": name, "isAdmin": True},
        }
        self.created.append(user)
        return user


@pytest.fixture
def engine(tmp_path):
    engine = create_engine_from_url(f"sqlite:///{tmp_path / 'kv_store.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> KeyValueStore:
    return KeyValueStore(create_session_factory(engine))


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def service(store, identity_provider) -> SubmissionService:
    return SubmissionService(
        store,
        LocalKeyedLock(),
        identity_provider=identity_provider,
        admin_secret=ADMIN_SECRET
    )


@pytest.fixture
def admin(identity_provider) -> Identity:
    return identity_provider.identities[ADMIN_TOKEN]


@pytest.fixture
def user(identity_provider) -> Identity:
    return identity_provider.identities[USER_TOKEN]


@pytest.fixture
def client(service) -> TestClient:
    """API client; the lifespan is skipped and the test service injected."""
    from api.main import create_app

    app = create_app()
    app.state.submission_service = service
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {USER_TOKEN}"}

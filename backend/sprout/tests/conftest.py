"""
Root test configuration and fixtures.

Provides:
- db_engine / db_session / session_factory: per-test SQLite database
- Fake identity provider, entitlement provider and navigator for the
  reconciliation core
"""

import asyncio
import os
import uuid
from typing import Generator, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment
os.environ.setdefault("ENV", "test")

from sprout.config.settings import Settings, reset_settings
from sprout.db_base import Base
from sprout.entitlements.errors import ProviderUnavailableError
from sprout.entitlements.gate import Navigator
from sprout.entitlements.models import EntitlementState
from sprout.entitlements.provider import EntitlementProvider
from sprout.identity.errors import CredentialConflictError
from sprout.identity.models import Credential, Identity, OperationType, UserCredential
from sprout.identity.provider import IdentityProvider
from sprout.identity.stream import IdentityStateStream
import sprout.models  # noqa: F401 - registers all tables


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """
    Fresh SQLite database per test.

    File-backed rather than in-memory: resolvers read through
    asyncio.to_thread, and each worker thread needs its own connection.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sprout_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def settings():
    """Test settings installed as the process settings."""
    test_settings = Settings(
        env="test",
        database_url="sqlite:///:memory:",
        firebase_project_id="sprout-test",
        revenuecat_api_key="appl_test_key",
        revenuecat_webhook_secret="whsec_test",
        recap_worker_secret="worker_test",
        entitlement_provider_timeout_seconds=0.5,
        account_status_timeout_seconds=0.5,
    )
    reset_settings(test_settings)
    yield test_settings
    reset_settings()


# =============================================================================
# Fakes
# =============================================================================


class FakeIdentityProvider(IdentityProvider):
    """
    In-memory identity provider.

    Pre-register credential owners with `register(credential, identity_id)`;
    linking a registered credential to someone else raises a conflict.
    """

    def __init__(self, stream: Optional[IdentityStateStream] = None):
        self._stream = stream or IdentityStateStream()
        self._identity: Optional[Identity] = None
        self._owners = {}
        self.calls: List[Tuple[str, Optional[str]]] = []

    @staticmethod
    def _key(credential: Credential) -> str:
        return f"{credential.provider_id}:{credential.email or credential.id_token}"

    def register(self, credential: Credential, identity_id: str) -> None:
        self._owners[self._key(credential)] = identity_id

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def identity_changes(self) -> IdentityStateStream:
        return self._stream

    def start_anonymous(self, identity_id: Optional[str] = None) -> Identity:
        self._identity = Identity(id=identity_id or f"anon_{uuid.uuid4().hex[:8]}", is_anonymous=True)
        self._stream.emit(self._identity)
        return self._identity

    def set_signed_in(self, identity_id: str) -> Identity:
        self._identity = Identity(id=identity_id, is_anonymous=False)
        self._stream.emit(self._identity)
        return self._identity

    async def sign_in_with_credential(self, credential: Credential) -> UserCredential:
        self.calls.append(("sign_in", credential.provider_id))
        key = self._key(credential)
        identity_id = self._owners.setdefault(key, f"user_{uuid.uuid4().hex[:8]}")
        self._identity = Identity(
            id=identity_id,
            is_anonymous=False,
            email=credential.email,
            provider_ids=(credential.provider_id,),
        )
        self._stream.emit(self._identity)
        return UserCredential(
            identity=self._identity,
            operation=OperationType.SIGN_IN,
            provider_id=credential.provider_id,
        )

    async def link_with_credential(self, identity: Identity, credential: Credential) -> UserCredential:
        self.calls.append(("link", credential.provider_id))
        key = self._key(credential)
        owner = self._owners.get(key)
        if owner is not None and owner != identity.id:
            raise CredentialConflictError(
                provider_id=credential.provider_id,
                email=credential.email,
                provider_code="CREDENTIAL_ALREADY_IN_USE",
            )
        self._owners[key] = identity.id
        identity.mark_linked(credential.provider_id, email=credential.email)
        self._stream.emit(identity)
        return UserCredential(
            identity=identity,
            operation=OperationType.LINK,
            provider_id=credential.provider_id,
        )

    async def sign_out(self) -> None:
        self.calls.append(("sign_out", None))
        had_identity = self._identity is not None
        self._identity = None
        if had_identity:
            self._stream.emit(None)


class FakeEntitlementProvider(EntitlementProvider):
    """
    Records calls in order. Individual operations can be made to fail or
    block via `fail_on` and `block_on`.
    """

    def __init__(self):
        self.calls: List[Tuple[str, Optional[str]]] = []
        self.fail_on = set()
        self.block_on = set()
        self.release = asyncio.Event()
        self._configured = False
        self._app_user_id: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def _maybe_block_or_fail(self, operation: str) -> None:
        if operation in self.block_on:
            await self.release.wait()
        if operation in self.fail_on:
            raise ProviderUnavailableError(f"{operation} unavailable", operation=operation)

    async def configure(self, api_key: str) -> None:
        self.calls.append(("configure", api_key))
        await self._maybe_block_or_fail("configure")
        self._configured = True

    async def log_in(self, identity_id: str) -> EntitlementState:
        self.calls.append(("log_in", identity_id))
        await self._maybe_block_or_fail("log_in")
        self._app_user_id = identity_id
        return EntitlementState()

    async def log_out(self) -> None:
        self.calls.append(("log_out", None))
        await self._maybe_block_or_fail("log_out")
        self._app_user_id = None

    async def get_entitlement_state(self) -> EntitlementState:
        return EntitlementState()

    def operations(self) -> List[str]:
        return [name for name, _ in self.calls]


class RecordingNavigator(Navigator):
    def __init__(self, fail: bool = False):
        self.destinations: List[str] = []
        self.fail = fail

    def navigate_to_upsell(self, destination: str) -> None:
        self.destinations.append(destination)
        if self.fail:
            raise RuntimeError("navigation stack not mounted")


@pytest.fixture
def identity_stream() -> IdentityStateStream:
    return IdentityStateStream()


@pytest.fixture
def identity_provider(identity_stream) -> FakeIdentityProvider:
    return FakeIdentityProvider(identity_stream)


@pytest.fixture
def entitlement_provider() -> FakeEntitlementProvider:
    return FakeEntitlementProvider()


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()

import pytest
from fastapi.testclient import TestClient

from reverse_captcha.config import Settings
from reverse_captcha.main import app, build_components
from reverse_captcha.middleware.rate_limit import limiter
from reverse_captcha.routers.challenges import (
    get_dispatcher,
    get_settings,
    get_store,
    get_verifier,
)
from reverse_captcha.services.challenge_store import ChallengeStore
from tests.test_utils import FakeClock


@pytest.fixture
def clock():
    """A clock that only moves when the test advances it."""
    return FakeClock()


@pytest.fixture
def store(clock):
    """A challenge store with the default protocol TTL on the fake clock."""
    return ChallengeStore(ttl_ms=3000, eviction_grace_ms=1000, clock=clock)


@pytest.fixture
def challenge(store):
    return store.create()


@pytest.fixture
def fast_settings():
    """Short streams so API tests finish quickly."""
    return Settings(stream_interval_ms=5, ops_per_challenge=6, _env_file=None)


@pytest.fixture
def components(fast_settings):
    """Store, dispatcher and verifier the API client is wired to."""
    return build_components(fast_settings)


@pytest.fixture
def client(components):
    """Create a test client using the test components and disabled rate limiting."""
    app.dependency_overrides[get_settings] = lambda: components.settings
    app.dependency_overrides[get_store] = lambda: components.store
    app.dependency_overrides[get_dispatcher] = lambda: components.dispatcher
    app.dependency_overrides[get_verifier] = lambda: components.verifier

    # Disable rate limiting for tests
    limiter.enabled = False

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    limiter.enabled = True

"""Shared fixtures for the phone-home client tests."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import init_db
from failure_cache import MemoryFailureCache
from installation_facts import InstallationFacts, RequestContext
from license_store import LicenseStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def as_datetime(self, base: datetime = datetime(2026, 1, 1)):
        return lambda: base + timedelta(seconds=self.now)


class FakePluginRegistry:
    def __init__(self, keys=None):
        self.keys = dict(keys or {})
        self.statuses = {}

    def get_all_plugins(self):
        return list(self.keys)

    def get_plugin_license_key(self, handle):
        return self.keys.get(handle)

    def set_plugin_license_key_status(self, handle, status):
        self.statuses[handle] = status


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    return MemoryFailureCache(clock=clock)


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def config_dir(tmp_path):
    path = tmp_path / "config"
    path.mkdir()
    return path


@pytest.fixture
def license_store(config_dir):
    return LicenseStore(config_dir / "license.key", config_dir)


@pytest.fixture
def request_context():
    return RequestContext(
        absolute_url="https://example.test/admin/dashboard",
        user_ip="203.0.113.7",
        port=443,
        host_name="example.test",
    )


@pytest.fixture
def facts(request_context):
    return InstallationFacts(request_context, user_email="admin@example.test")

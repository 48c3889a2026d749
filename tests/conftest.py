"""Shared fixtures: a temporary SQLite database and a store with a controllable clock."""
from datetime import datetime, timedelta

import pytest

from push_registration.database import Database
from push_registration.schemas.registration import Device, NativeOS, PushRegistration
from push_registration.services.registration_store import RegistrationStore


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'registrations.db'}"


@pytest.fixture
async def database(db_url):
    db = Database(db_url).open()
    yield db
    await db.close()


@pytest.fixture
async def store(database, clock):
    store = RegistrationStore(database, clock=clock)
    await store.ensure_indexes()
    return store


def make_device(os: NativeOS = NativeOS.ios, model: str = "iPhone12,1", app_version: str = "1.0.0"):
    return Device(os=os, os_version="17.2", app_version=app_version, model=model)


def make_registration(token: str, device: Device | None = None, endpoint: str | None = None):
    return PushRegistration(token=token, device=device, endpoint=endpoint)

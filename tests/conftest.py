from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import MemoryBackend
from credentials import CredentialMatcher

# bcrypt's minimum cost keeps the suite fast
TEST_BCRYPT_ROUNDS = 4

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0, step: timedelta = timedelta(0)):
        self.current = start
        # advanced after every reading when non-zero
        self.step = step

    def __call__(self) -> datetime:
        reading = self.current
        self.current = self.current + self.step
        return reading

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend(clock):
    return MemoryBackend(clock=clock)


@pytest.fixture
def matcher(backend):
    return CredentialMatcher(backend, bcrypt_rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def app(backend, tmp_path):
    return create_app(
        backend=backend,
        bcrypt_rounds=TEST_BCRYPT_ROUNDS,
        sweep_interval=3600,
        upload_dir=str(tmp_path / "uploads"),
        upload_max_bytes=1024,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def join(client):
    def _join(password="Secret1", username="alice", image_key="3", custom_image_url=None, **extra):
        payload = {"imageKey": image_key, "password": password, "username": username, **extra}
        if custom_image_url is not None:
            payload["customImageUrl"] = custom_image_url
        return client.post("/api/rooms/join", json=payload)

    return _join

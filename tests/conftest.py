import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app


@pytest.fixture()
def make_settings(tmp_path):
    """Settings pointing at a temp log file, with short timeouts."""

    def _make(**overrides):
        values = {
            "DATA_FILE": str(tmp_path / "logs.json"),
            "WAIT_TIMEOUT_S": 0.3,
            "STATUS_TTL_S": 30.0,
            "DISCONNECT_POLL_S": 0.05,
            "MAX_WAITERS": 100,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture()
def make_client(make_settings):
    clients = []

    def _make(**overrides):
        client = TestClient(create_app(make_settings(**overrides)))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture()
def client(make_client):
    return make_client()

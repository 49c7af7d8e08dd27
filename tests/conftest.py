import os

import pytest

from tests.fake.fake_observer import RecordingObserver
from tests.fake.fake_presenter import RecordingPresenter

from pidgeon.bootstrap.config.loader import CONFIG_ENV
from pidgeon.bootstrap.deps import get_config
from pidgeon.core.connections.client import ClientConnection
from pidgeon.core.helpers.spawn import TaskSpawner
from pidgeon.core.models.config import ConnectionConfig, SessionConfig
from pidgeon.core.session.protocol import SessionProtocol
from pidgeon.core.throttling.backoff import ExponentialBackoff
from pidgeon.core.transport.codec import FrameCodec
from pidgeon.infra.json_serializer import JsonSerializer


@pytest.fixture
def serializer():
    return JsonSerializer()


@pytest.fixture
def codec(serializer):
    return FrameCodec(serializer, max_frame_size=1024)


@pytest.fixture
def spawner():
    return TaskSpawner()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def connection_config():
    return ConnectionConfig(host="127.0.0.1", port=6666, max_frame_size=1024, read_size=256)


@pytest.fixture
def connection(connection_config, codec, spawner, observer):
    return ClientConnection(connection_config, codec, spawner, observer)


@pytest.fixture
def backoff():
    return ExponentialBackoff(initial=0, maximum=0, factor=1, jitter=0)


@pytest.fixture
def session_config():
    return SessionConfig(
        connect_timeout=1.0,
        check_timeout=1.0,
        notify_threshold=10,
        reconnect=False,
        max_retries=3,
    )


@pytest.fixture
def session(connection_config, codec, presenter, spawner, session_config, backoff):
    return SessionProtocol(
        config=connection_config,
        codec=codec,
        presenter=presenter,
        spawner=spawner,
        session=session_config,
        backoff=backoff,
    )


@pytest.fixture
def isolated_config(monkeypatch, tmp_path):
    """Run with no config file, no PIDGEON_ variables and a fresh config cache."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(CONFIG_ENV, raising=False)
    for name in list(os.environ):
        if name.startswith("PIDGEON_"):
            monkeypatch.delenv(name)
    get_config.cache_clear()
    yield tmp_path
    get_config.cache_clear()

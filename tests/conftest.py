import pytest

from gridsession.config import ClientSettings, get_settings
from gridsession.connector import control_plane_connection_pool

from .control_plane import ControlPlaneServer, FakeControlPlane


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    for name in ("GRIDSESSION_CONFIG_FILE", "GRIDSESSION_ENDPOINT", "GRIDSESSION_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> ClientSettings:
    return ClientSettings(
        submit_wait_ms=0,
        retry_base_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
        retry_jitter=0.0,
        result_poll_interval_seconds=0.01,
        rpc_timeout_seconds=5.0,
    )


@pytest.fixture
def control_plane():
    server = ControlPlaneServer(FakeControlPlane()).start()
    try:
        yield server
    finally:
        server.stop()


@pytest.fixture
def pool(control_plane):
    channel_pool = control_plane_connection_pool(control_plane.endpoint)
    try:
        yield channel_pool
    finally:
        channel_pool.close()

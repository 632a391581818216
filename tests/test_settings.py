from pathlib import Path

import pytest
from pydantic import ValidationError

from gridsession.config import ClientSettings, get_settings


def test_defaults():
    settings = ClientSettings()

    assert settings.endpoint == "http://localhost:5001"
    assert settings.ssl_validation is True
    assert settings.submit_max_retries == 5
    assert settings.submit_wait_ms == 2
    assert settings.submit_chunk_size == 500
    assert settings.engine_type == "Unified"
    assert settings.client_cert_path is None
    assert settings.config_path is None


def test_yaml_config_file(monkeypatch, tmp_path):
    config = tmp_path / "client.yaml"
    config.write_text(
        "endpoint: https://cp.example:5001\n"
        "ssl_validation: false\n"
        "submit_max_retries: 2\n"
        "partition_id: gpu\n"
        "log_level: debug\n"
    )
    monkeypatch.setenv("GRIDSESSION_CONFIG_FILE", str(config))

    settings = ClientSettings()

    assert settings.endpoint == "https://cp.example:5001"
    assert settings.ssl_validation is False
    assert settings.submit_max_retries == 2
    assert settings.partition_id == "gpu"
    assert settings.log_level == "DEBUG"
    assert settings.config_path == config


def test_default_config_location_in_working_directory(tmp_path):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "client.yml").write_text("partition_id: from-cwd\n")

    assert ClientSettings().partition_id == "from-cwd"


def test_environment_variables(monkeypatch):
    monkeypatch.setenv("GRIDSESSION_ENDPOINT", "grpcs://env.example")
    monkeypatch.setenv("GRIDSESSION_POOL_MAX_SIZE", "4")

    settings = ClientSettings()

    assert settings.endpoint == "grpcs://env.example"
    assert settings.pool_max_size == 4


def test_init_arguments_win_over_config_file(monkeypatch, tmp_path):
    config = tmp_path / "client.json"
    config.write_text('{"endpoint": "https://file.example"}')
    monkeypatch.setenv("GRIDSESSION_CONFIG_FILE", str(config))

    assert ClientSettings(endpoint="http://init.example").endpoint == "http://init.example"


def test_blank_certificate_paths_are_unset(monkeypatch):
    monkeypatch.setenv("GRIDSESSION_CLIENT_CERT_PATH", "")
    monkeypatch.setenv("GRIDSESSION_CLIENT_KEY_PATH", " ")

    settings = ClientSettings()

    assert settings.client_cert_path is None
    assert settings.client_key_path is None


def test_config_file_must_be_a_mapping(monkeypatch, tmp_path):
    config = tmp_path / "client.yaml"
    config.write_text("- just\n- a list\n")
    monkeypatch.setenv("GRIDSESSION_CONFIG_FILE", str(config))

    with pytest.raises(ValueError):
        ClientSettings()


def test_invalid_yaml_is_reported(monkeypatch, tmp_path):
    config = tmp_path / "client.yaml"
    config.write_text("endpoint: [unclosed\n")
    monkeypatch.setenv("GRIDSESSION_CONFIG_FILE", str(config))

    with pytest.raises(ValueError, match="Invalid client config file"):
        ClientSettings()


def test_retry_window_is_validated():
    with pytest.raises(ValidationError):
        ClientSettings(retry_base_delay_seconds=2.0, retry_max_delay_seconds=1.0)


def test_get_settings_is_cached_and_expands_user(monkeypatch):
    monkeypatch.setenv("GRIDSESSION_CLIENT_CERT_PATH", "~/certs/client.pem")
    monkeypatch.setenv("GRIDSESSION_CLIENT_KEY_PATH", "~/certs/client.key")

    settings = get_settings()

    assert settings is get_settings()
    assert settings.client_cert_path == Path("~/certs/client.pem").expanduser()
    assert "~" not in str(settings.client_key_path)


def test_paths_are_expanded_at_validation():
    settings = ClientSettings(client_cert_path="~/c.pem", client_key_path="~/c.key", ca_cert_path="~/ca.pem")

    assert settings.client_cert_path == Path("~/c.pem").expanduser()
    assert settings.ca_cert_path == Path("~/ca.pem").expanduser()
    assert ClientSettings(ca_cert_path=" ").ca_cert_path is None

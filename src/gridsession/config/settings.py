"""Client configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import Field, NonNegativeFloat, PositiveInt
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/gridsession/client.yaml"),
    Path("/etc/gridsession/client.yml"),
    Path("./config/client.yaml"),
    Path("./config/client.yml"),
)


class ClientSettings(BaseSettings):
    """Validated settings for the control-plane client."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="GRIDSESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection
    endpoint: str = Field(
        default="http://localhost:5001",
        description="Control-plane URI; https/grpcs enable TLS, http/grpc are plaintext.",
    )
    client_cert_path: Path | None = Field(
        default=None,
        description="PEM (or DER) client certificate presented for mutual TLS.",
    )
    client_key_path: Path | None = Field(
        default=None,
        description="PEM (or DER PKCS#8) private key matching client_cert_path.",
        repr=False,
    )
    ca_cert_path: Path | None = Field(
        default=None,
        description="PEM CA bundle trusted instead of the system roots.",
    )
    ssl_validation: bool = Field(
        default=True,
        description="Validate the server certificate. Disable only for test environments.",
    )
    ssl_target_name_override: str | None = Field(
        default=None,
        description="Host name expected in the server certificate when validation is relaxed.",
    )

    # Channel tuning
    keepalive_time_ms: PositiveInt = Field(
        default=10000,
        description="Interval between HTTP/2 keepalive pings.",
    )
    keepalive_timeout_ms: PositiveInt = Field(
        default=5000,
        description="Time to wait for a keepalive ping acknowledgement.",
    )
    max_message_bytes: PositiveInt = Field(
        default=16 * 1024 * 1024,
        description="Maximum send/receive message size on each channel.",
    )
    rpc_timeout_seconds: float | None = Field(
        default=None,
        description="Deadline applied to each RPC; None leaves it to the transport.",
    )

    # Pool
    pool_max_size: PositiveInt | None = Field(
        default=None,
        description="Upper bound on channels created by the pool; None is unbounded.",
    )
    pool_acquire_timeout_seconds: float | None = Field(
        default=None,
        description="How long a lease waits for a free channel when the pool is full.",
    )

    # Submission
    submit_max_retries: int = Field(
        default=5,
        ge=0,
        description="Retries after the first attempt for transient submission failures.",
    )
    submit_wait_ms: int = Field(
        default=2,
        ge=0,
        description="Pacing delay before each single-task submission.",
    )
    submit_chunk_size: PositiveInt = Field(
        default=500,
        description="Maximum number of tasks carried by one SubmitTasks request.",
    )
    retry_base_delay_seconds: NonNegativeFloat = Field(
        default=0.1,
        description="Base delay for submission retry backoff.",
    )
    retry_max_delay_seconds: NonNegativeFloat = Field(
        default=5.0,
        description="Maximum delay for submission retry backoff.",
    )
    retry_jitter: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Jitter factor applied to retry backoff (0.0-1.0).",
    )

    # Results
    result_poll_interval_seconds: NonNegativeFloat = Field(
        default=0.5,
        description="Delay between GetResult polls while a task is still running.",
    )

    # Default task options
    default_max_duration_seconds: PositiveInt = Field(
        default=40,
        description="Wall-clock budget per task enforced by the control plane.",
    )
    default_max_retries: int = Field(
        default=2,
        ge=0,
        description="Execution retries the control plane grants each task.",
    )
    default_priority: int = Field(
        default=1,
        description="Scheduling weight of submitted tasks.",
    )
    partition_id: str = Field(
        default="",
        description="Resource partition targeted by the session.",
    )
    engine_type: str = Field(
        default="Unified",
        description="Execution-engine identifier sent with each task.",
    )
    application_name: str = Field(default="", description="Worker image application name.")
    application_version: str = Field(default="", description="Worker image application version.")
    application_namespace: str = Field(default="", description="Worker image application namespace.")
    application_service: str = Field(default="", description="Worker image service name.")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level used by the bundled scripts.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    @field_validator("client_cert_path", "client_key_path", "ca_cert_path", mode="before")
    @classmethod
    def _blank_path_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("client_cert_path", "client_key_path", "ca_cert_path")
    @classmethod
    def _expand_user(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None

    @model_validator(mode="after")
    def _check_retry_window(self) -> "ClientSettings":
        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError("retry_max_delay_seconds must be >= retry_base_delay_seconds")
        return self

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[ClientSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._yaml_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _yaml_settings_source(settings_cls: type[ClientSettings] | None = None) -> Dict[str, Any]:
        candidates: Iterable[Path] = ClientSettings._resolve_candidate_paths()

        for path in candidates:
            data = ClientSettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("GRIDSESSION_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read client config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid client config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Client config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> ClientSettings:
    """Return memoized client settings."""

    return ClientSettings()

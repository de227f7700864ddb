"""
Secure Origin Configuration
===========================
Settings read from the environment. The header name is the only required value;
a process that cannot find it must not start.
"""

import ipaddress
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError

DEFAULT_SIDECAR_HOST = "127.0.0.1"
DEFAULT_SIDECAR_PORT = 3579
DEFAULT_IPC_TIMEOUT = 2.0
DEFAULT_REFRESH_INTERVAL = 15.0
DEFAULT_COOLDOWN = 15.0
DEFAULT_ROTATION_INTERVAL = 24 * 3600.0
DEFAULT_GRACE_DURATION = 300.0
DEFAULT_EDGE_PROPAGATION_DELAY = 60.0
DEFAULT_SECRET_LENGTH = 64

ENV_PREFIX = "SECURE_ORIGIN_"

# Header carrying the caller trust token on sidecar IPC calls
CALLER_TOKEN_HEADER = "X-Caller-Token"


def _get(env: Mapping[str, str], name: str, default: str = "") -> str:
    return env.get(ENV_PREFIX + name, default).strip()


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be positive")
    return value


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get(env, name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def is_loopback_host(host: str) -> bool:
    """Check that a listen host can only be reached from the same machine."""
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


@dataclass
class Settings:
    """Runtime configuration for the gate, the sidecar and the rotation coordinator."""

    header_name: str = ""

    # Sidecar
    sidecar_host: str = DEFAULT_SIDECAR_HOST
    sidecar_port: int = DEFAULT_SIDECAR_PORT
    ipc_timeout: float = DEFAULT_IPC_TIMEOUT
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    cooldown: float = DEFAULT_COOLDOWN
    caller_token: str = ""

    # Rotation
    rotation_interval: float = DEFAULT_ROTATION_INTERVAL
    rotate_on_start: bool = False
    grace_duration: float = DEFAULT_GRACE_DURATION
    edge_propagation_delay: float = DEFAULT_EDGE_PROPAGATION_DELAY
    secret_length: int = DEFAULT_SECRET_LENGTH

    # Secret store (Vault KV v2)
    vault_addr: str = ""
    vault_token: Optional[str] = None
    vault_mount: str = "secret"
    secret_path: str = "secure-origin/header-secret"

    # Edge injector
    edge_api_url: str = ""
    edge_api_token: str = ""
    distribution_id: str = ""

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def sidecar_url(self) -> str:
        return f"http://{self.sidecar_host}:{self.sidecar_port}"

    def require_header_name(self) -> str:
        """Return the header name or fail the process."""
        if not self.header_name:
            raise ConfigurationError(
                f"{ENV_PREFIX}HEADER_NAME is required and was not set"
            )
        return self.header_name

    def validate(self) -> "Settings":
        self.require_header_name()
        if not is_loopback_host(self.sidecar_host):
            raise ConfigurationError(
                f"Sidecar host must be a loopback address, got {self.sidecar_host!r}"
            )
        if self.grace_duration <= self.edge_propagation_delay:
            raise ConfigurationError(
                "Grace duration must exceed the edge propagation delay "
                f"({self.grace_duration}s <= {self.edge_propagation_delay}s)"
            )
        # A sidecar may serve a set this old; it has to catch up within one grace window
        for field_name in ("refresh_interval", "cooldown"):
            if getattr(self, field_name) > self.grace_duration:
                raise ConfigurationError(
                    f"{field_name} must not exceed the grace duration "
                    f"({getattr(self, field_name)}s > {self.grace_duration}s)"
                )
        if self.secret_length < 16:
            raise ConfigurationError("Secret length must be at least 16")
        return self

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build and validate settings from environment variables."""
        env = os.environ if env is None else env

        port_raw = _get(env, "SIDECAR_PORT")
        try:
            port = int(port_raw) if port_raw else DEFAULT_SIDECAR_PORT
        except ValueError:
            raise ConfigurationError(
                f"{ENV_PREFIX}SIDECAR_PORT must be an integer, got {port_raw!r}"
            )

        length_raw = _get(env, "SECRET_LENGTH")
        try:
            secret_length = int(length_raw) if length_raw else DEFAULT_SECRET_LENGTH
        except ValueError:
            raise ConfigurationError(
                f"{ENV_PREFIX}SECRET_LENGTH must be an integer, got {length_raw!r}"
            )

        settings = cls(
            header_name=_get(env, "HEADER_NAME"),
            sidecar_host=_get(env, "SIDECAR_HOST", DEFAULT_SIDECAR_HOST),
            sidecar_port=port,
            ipc_timeout=_get_float(env, "IPC_TIMEOUT", DEFAULT_IPC_TIMEOUT),
            refresh_interval=_get_float(env, "REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL),
            cooldown=_get_float(env, "COOLDOWN", DEFAULT_COOLDOWN),
            caller_token=_get(env, "CALLER_TOKEN") or env.get("AWS_SESSION_TOKEN", ""),
            rotation_interval=_get_float(env, "ROTATION_INTERVAL", DEFAULT_ROTATION_INTERVAL),
            rotate_on_start=_get_bool(env, "ROTATE_ON_START", False),
            grace_duration=_get_float(env, "GRACE_DURATION", DEFAULT_GRACE_DURATION),
            edge_propagation_delay=_get_float(
                env, "EDGE_PROPAGATION_DELAY", DEFAULT_EDGE_PROPAGATION_DELAY
            ),
            secret_length=secret_length,
            vault_addr=_get(env, "VAULT_ADDR") or env.get("VAULT_ADDR", ""),
            vault_token=env.get("VAULT_TOKEN"),
            vault_mount=_get(env, "VAULT_MOUNT", "secret"),
            secret_path=_get(env, "SECRET_PATH", "secure-origin/header-secret"),
            edge_api_url=_get(env, "EDGE_API_URL"),
            edge_api_token=_get(env, "EDGE_API_TOKEN"),
            distribution_id=_get(env, "DISTRIBUTION_ID"),
            log_level=_get(env, "LOG_LEVEL", "INFO"),
            log_json=_get_bool(env, "LOG_JSON", True),
        )
        return settings.validate()

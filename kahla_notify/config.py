# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for the notify server.

Configuration is loaded from a YAML file (by default
``~/.config/kahla-notify/kahla-notify.yaml``) with support for ``!env``
tags that resolve values from environment variables::

    email: bot@example.com
    password: !env KAHLA_PASSWORD
    http:
      port: 8080

When the file does not exist yet, ``write_config_template`` creates a
commented template for the user to fill in.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_path

from kahla_notify.dotenv_loader import load_dotenv_once
from kahla_notify.kahla.client import DEFAULT_SERVER
from kahla_notify.logging import SecretFilter
from kahla_notify.relay.retry import RetryPolicy
from kahla_notify.relay.server import DEFAULT_DOCS_URL


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "kahla-notify"


def get_config_path() -> Path:
    """Return the default config file path.

    Uses XDG: ``$XDG_CONFIG_HOME/kahla-notify/kahla-notify.yaml``.
    """
    return user_config_path(_APP_NAME) / "kahla-notify.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when the config file does not exist."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Config file not found: {path}")


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


_MISSING = object()


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
    required: str = "",
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a literal).
        coerce: Target type (``str``, ``int``, ``float``).
        default: Default when the value is absent.
        required: Human-readable field name.  When set, raises
            ``ConfigError`` if the value is absent.

    Raises:
        ConfigError: If a required value is missing or coercion fails.
    """
    if isinstance(value, _EnvVar):
        raw: object = os.environ.get(value.var_name) or None
        if raw is None and required:
            raise ConfigError(
                f"{required} references unset environment variable "
                f"{value.var_name}"
            )
    else:
        raw = value

    if raw is None or raw == "":
        if required:
            raise ConfigError(f"{required} is required")
        return None if default is _MISSING else default

    try:
        return coerce(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"Cannot convert {raw!r} to {coerce.__name__}"
        ) from e


def _section(raw: dict, key: str) -> dict:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


# ---------------------------------------------------------------------------
# Server configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerConfig:
    """Complete configuration of one relay process.

    Attributes:
        email: Kahla account email.
        password: Kahla account password (redacted from logs).
        server: Kahla server base URL.
        host: HTTP bind address.
        port: HTTP port.
        docs_url: Redirect target of ``GET /``.
        retry: Session stage retry policy.
        send_retry_attempts: Attempts per outgoing message.
        request_timeout_seconds: Kahla API request timeout.
    """

    email: str
    password: str
    server: str = DEFAULT_SERVER
    host: str = "0.0.0.0"
    port: int = 8080
    docs_url: str = DEFAULT_DOCS_URL
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    send_retry_attempts: int = 3
    request_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not self.email:
            raise ConfigError("email is required")
        if not self.password:
            raise ConfigError("password is required")
        if not 0 <= self.port < 65536:
            raise ConfigError(f"http.port out of range: {self.port}")
        if self.send_retry_attempts < 1:
            raise ConfigError("send_retry_attempts must be at least 1")
        if self.request_timeout_seconds <= 0:
            raise ConfigError("request_timeout_seconds must be positive")
        SecretFilter.register_secret(self.password)

    @property
    def send_retry(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.send_retry_attempts,
            delay_seconds=self.retry.delay_seconds,
            max_delay_seconds=self.retry.max_delay_seconds,
        )

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "ServerConfig":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the config file.  Defaults to
                ``get_config_path()``.

        Raises:
            ConfigNotFoundError: If the file does not exist.
            ConfigError: If the file is invalid.
        """
        load_dotenv_once()
        path = config_path or get_config_path()
        if not path.exists():
            raise ConfigNotFoundError(path)

        try:
            with open(path) as f:
                raw = yaml.load(f, Loader=_make_loader())
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(f"{path} must contain a mapping")
        logger.debug("Loaded config from %s", path)
        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict) -> "ServerConfig":
        http = _section(raw, "http")
        retry = _section(raw, "retry")
        try:
            retry_policy = RetryPolicy(
                attempts=_resolve(retry.get("attempts"), int, default=10),
                delay_seconds=_resolve(
                    retry.get("delay_seconds"), float, default=0.1
                ),
                max_delay_seconds=_resolve(
                    retry.get("max_delay_seconds"), float, default=30.0
                ),
            )
        except ValueError as e:
            raise ConfigError(f"retry: {e}") from e

        return cls(
            email=_resolve(raw.get("email"), str, required="email"),
            password=_resolve(raw.get("password"), str, required="password"),
            server=_resolve(raw.get("server"), str, default=DEFAULT_SERVER),
            host=_resolve(http.get("host"), str, default="0.0.0.0"),
            port=_resolve(http.get("port"), int, default=8080),
            docs_url=_resolve(http.get("docs_url"), str, default=DEFAULT_DOCS_URL),
            retry=retry_policy,
            send_retry_attempts=_resolve(
                raw.get("send_retry_attempts"), int, default=3
            ),
            request_timeout_seconds=_resolve(
                raw.get("request_timeout_seconds"), float, default=30.0
            ),
        )


CONFIG_TEMPLATE = """\
# kahla-notify configuration
#
# Values may reference environment variables with !env, e.g.
#   password: !env KAHLA_PASSWORD

email: ""
password: ""
# server: https://server.kahla.app

http:
  host: 0.0.0.0
  port: 8080

# retry:
#   attempts: 10
#   delay_seconds: 0.1
#   max_delay_seconds: 30
"""


def write_config_template(path: Path) -> None:
    """Write an empty config file for the user to fill in."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CONFIG_TEMPLATE)
    logger.info("Wrote config template to %s", path)

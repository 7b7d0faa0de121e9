# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Signer configuration.

Configuration is loaded from a YAML file.  The default location follows
the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/s3signer/s3signer.yaml``
    (typically ``~/.config/s3signer/s3signer.yaml``)

``!env`` tags resolve values from environment variables, so keys never
need to be written to disk::

    region: eu-west-1
    host: s3.eu-west-1.amazonaws.com   # optional, for S3-compatible stores
    use_tls: true
    credentials:
      access_key: !env AWS_ACCESS_KEY_ID
      secret_key: !env AWS_SECRET_ACCESS_KEY
      session_token: !env AWS_SESSION_TOKEN

or, on an EC2 instance with an IAM role::

    region: eu-west-1
    credentials:
      role_name: my-instance-role
      refresh_interval: 1800
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_path

from s3signer.credentials import METADATA_URL, REFRESH_INTERVAL_SECONDS
from s3signer.logging import SecretFilter
from s3signer.region import DEFAULT_REGION, Region


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "s3signer"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})


def get_config_path() -> Path:
    """Return the default config file path.

    Returns:
        ``$XDG_CONFIG_HOME/s3signer/s3signer.yaml``.
    """
    return user_config_path(_APP_NAME) / "s3signer.yaml"


class ConfigError(Exception):
    """Invalid or missing configuration."""


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)
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


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _resolve(
    value: object,
    coerce: type[Any],
    field_name: str,
    *,
    default: Any = None,
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    An unset environment variable or an empty string counts as absent.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None or a literal).
        coerce: Target type (``str``, ``int``, ``float``, ``bool``).
        field_name: Name used in error messages.
        default: Returned when the value is absent.

    Returns:
        The resolved, coerced value, or ``default``.

    Raises:
        ConfigError: If the value cannot be coerced.
    """
    if isinstance(value, _EnvVar):
        value = os.environ.get(value.var_name)
    if value is None or value == "":
        return default

    if coerce is bool:
        try:
            return _coerce_bool(value)
        except ConfigError as e:
            raise ConfigError(f"Config '{field_name}': {e}") from e
    if isinstance(value, coerce) and not isinstance(value, bool):
        return value
    try:
        return coerce(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"Config '{field_name}': cannot convert {value!r} "
            f"to {coerce.__name__}"
        ) from e


# ---------------------------------------------------------------------------
# Signer configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignerConfig:
    """Settings needed to construct an ``S3Signer``.

    Exactly one credential source is set: either the static
    ``access_key``/``secret_key`` pair (with optional ``session_token``)
    or ``role_name``.
    """

    region: Region
    access_key: str | None = None
    secret_key: str | None = None
    session_token: str | None = None
    role_name: str | None = None
    refresh_interval: float = REFRESH_INTERVAL_SECONDS
    metadata_url: str = METADATA_URL

    def __post_init__(self) -> None:
        has_keys = bool(self.access_key or self.secret_key)
        if has_keys and not (self.access_key and self.secret_key):
            raise ConfigError(
                "Both credentials.access_key and credentials.secret_key "
                "must be set"
            )
        if has_keys and self.role_name:
            raise ConfigError(
                "Set either static keys or credentials.role_name, not both"
            )
        if not has_keys and not self.role_name:
            raise ConfigError(
                "No credentials configured: set credentials.access_key and "
                "credentials.secret_key, or credentials.role_name"
            )
        if self.refresh_interval <= 0:
            raise ConfigError("credentials.refresh_interval must be positive")

    @property
    def uses_role(self) -> bool:
        """True when credentials come from the instance metadata service."""
        return self.role_name is not None

    @classmethod
    def from_dict(cls, raw: Any) -> SignerConfig:
        """Build configuration from a parsed YAML mapping.

        Raises:
            ConfigError: If the mapping is invalid.
        """
        if not isinstance(raw, dict):
            raise ConfigError("Config root must be a mapping")
        creds = raw.get("credentials") or {}
        if not isinstance(creds, dict):
            raise ConfigError("Config 'credentials' must be a mapping")

        region_name = _resolve(
            raw.get("region"), str, "region", default=DEFAULT_REGION
        )
        region = Region(
            name=region_name,
            host=_resolve(raw.get("host"), str, "host", default=""),
            use_tls=_resolve(raw.get("use_tls"), bool, "use_tls", default=True),
        )
        if not region.is_known and not raw.get("host"):
            logger.warning(
                "Region %s is not a known AWS region; using host %s",
                region.name,
                region.host,
            )

        config = cls(
            region=region,
            access_key=_resolve(
                creds.get("access_key"), str, "credentials.access_key"
            ),
            secret_key=_resolve(
                creds.get("secret_key"), str, "credentials.secret_key"
            ),
            session_token=_resolve(
                creds.get("session_token"), str, "credentials.session_token"
            ),
            role_name=_resolve(
                creds.get("role_name"), str, "credentials.role_name"
            ),
            refresh_interval=_resolve(
                creds.get("refresh_interval"),
                float,
                "credentials.refresh_interval",
                default=REFRESH_INTERVAL_SECONDS,
            ),
            metadata_url=_resolve(
                creds.get("metadata_url"),
                str,
                "credentials.metadata_url",
                default=METADATA_URL,
            ),
        )
        SecretFilter.register_secret(config.secret_key)
        SecretFilter.register_secret(config.session_token)
        return config

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> SignerConfig:
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the file (defaults to the XDG location).

        Raises:
            ConfigError: If the file is missing, unreadable or invalid.
        """
        if config_path is None:
            config_path = get_config_path()
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            with config_path.open() as f:
                raw = yaml.load(f, Loader=_make_loader())
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {config_path}: {e}") from e

        logger.debug("Loaded config from %s", config_path)
        return cls.from_dict(raw)

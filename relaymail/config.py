# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for the relay service.

Configuration is loaded from a YAML file (``config/relaymail.yaml`` by
default) with support for ``!env`` tags that resolve values from
environment variables.  A ``.env`` file is loaded first if present.

Example::

    smtp:
      port: 2525
      server_name: mail.example.com
    web:
      port: 3000
      base_url: https://mail.example.com
    filter:
      allowed_domains: [steampowered.com]
      blocked_keywords: [spam]
    storage:
      directory: /var/lib/relaymail
      max_email_age_days: 7
    notifier:
      webhook_url: !env DISCORD_WEBHOOK_URL
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar, overload
from urllib.parse import urlsplit

import yaml

from relaymail.dotenv_loader import load_dotenv_once
from relaymail.logging import SecretFilter


logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path("config/relaymail.yaml")

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})

MIB = 1024 * 1024
GIB = 1024 * MIB

# Upper bound on retention; larger values overflow timedelta
MAX_EMAIL_AGE_DAYS = 36500


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""


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


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is unset/empty.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name) or None
    if value is None:
        return None
    return str(value)


_MISSING = object()

_T = TypeVar("_T")


@overload
def _resolve(value: object, coerce: type[_T], *, default: _T) -> _T: ...


@overload
def _resolve(value: object, coerce: type[_T]) -> _T | None: ...


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``int``, ``bool``, ``Path``).
        default: Default when value is absent.

    Returns:
        The resolved, coerced value, or None when optional and absent.

    Raises:
        ConfigError: If the value cannot be coerced.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce) and not (
            coerce is int and isinstance(value, bool)
        ):
            return value

    resolved = _raw_resolve(value)

    if resolved is None:
        if default is not _MISSING:
            return default
        return None

    if coerce is bool:
        return _coerce_bool(resolved)
    if coerce is Path:
        return Path(resolved).expanduser()
    try:
        return coerce(resolved)
    except ValueError as e:
        raise ConfigError(
            f"Cannot convert {resolved!r} to {coerce.__name__}"
        ) from e


def _resolve_string_list(value: object, *, name: str) -> list[str]:
    """Resolve a list of strings, handling ``!env`` for each element.

    Args:
        value: Raw value from YAML (should be a list, may contain ``_EnvVar``).
        name: Human-readable field name for error messages.

    Returns:
        List of resolved strings (non-empty values only).

    Raises:
        ConfigError: If value is present but not a list.
    """
    if value is None:
        return []

    if not isinstance(value, list):
        raise ConfigError(
            f"Config '{name}' must be a list, got {type(value).__name__}"
        )

    result: list[str] = []
    for item in value:
        resolved = _raw_resolve(item)
        if resolved:
            result.append(resolved)
    return result


def _section(raw: dict, name: str) -> dict:
    """Return a top-level mapping section, or an empty dict if absent."""
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a YAML mapping")
    return section


# ---------------------------------------------------------------------------
# Configuration sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilterConfig:
    """Accept/reject policy for inbound messages.

    Attributes:
        allowed_domains: Sender domains admitted (lower-cased).
        blocked_keywords: Case-insensitive subject substrings that reject.
        max_message_size: Byte ceiling for acceptance.
    """

    allowed_domains: frozenset[str] = frozenset()
    blocked_keywords: tuple[str, ...] = ()
    max_message_size: int = 10 * MIB

    def __post_init__(self) -> None:
        if self.max_message_size < 0:
            raise ValueError(
                f"Max message size must be >= 0: {self.max_message_size}"
            )


@dataclass(frozen=True)
class StorageConfig:
    """Message storage and eviction settings.

    Attributes:
        directory: Directory holding one JSON file per stored message.
        max_email_age_days: Retention window; older records are swept.
        max_storage_size: Soft byte budget enforced by eviction.
        min_free_space: Hard free-space floor checked before each write.
    """

    directory: Path = Path("email-storage")
    max_email_age_days: float = 7
    max_storage_size: int = 5 * GIB
    min_free_space: int = 500 * MIB

    def __post_init__(self) -> None:
        if not (0 < self.max_email_age_days <= MAX_EMAIL_AGE_DAYS):
            raise ValueError(
                f"Max email age must be in (0, {MAX_EMAIL_AGE_DAYS}] days: "
                f"{self.max_email_age_days}"
            )
        if self.max_storage_size < 0:
            raise ValueError(
                f"Max storage size must be >= 0: {self.max_storage_size}"
            )
        if self.min_free_space < 0:
            raise ValueError(
                f"Min free space must be >= 0: {self.min_free_space}"
            )

    @property
    def max_email_age_seconds(self) -> float:
        """Retention window in seconds."""
        return self.max_email_age_days * 24 * 60 * 60


@dataclass(frozen=True)
class SMTPConfig:
    """Inbound SMTP listener settings.

    Attributes:
        host: Bind address.
        port: Bind port.
        server_name: Hostname announced in the SMTP greeting.
        tls_key_path: PEM private key enabling STARTTLS (with cert).
        tls_cert_path: PEM certificate chain enabling STARTTLS (with key).
    """

    host: str = "0.0.0.0"
    port: int = 2525
    server_name: str | None = None
    tls_key_path: Path | None = None
    tls_cert_path: Path | None = None

    def __post_init__(self) -> None:
        if not (1 <= self.port <= 65535):
            raise ValueError(f"Invalid SMTP port: {self.port}")


@dataclass(frozen=True)
class WebConfig:
    """Retrieval HTTP server settings.

    Attributes:
        host: Bind address.
        port: Bind port.
        base_url: Public URL used to build retrieval links. Defaults to
            ``http://localhost:<port>``.
    """

    host: str = "0.0.0.0"
    port: int = 3000
    base_url: str | None = None

    def __post_init__(self) -> None:
        if not (1 <= self.port <= 65535):
            raise ValueError(f"Invalid web port: {self.port}")

    @property
    def public_base_url(self) -> str:
        """Base URL for retrieval links, without trailing slash."""
        if self.base_url:
            return self.base_url.rstrip("/")
        return f"http://localhost:{self.port}"


@dataclass(frozen=True)
class NotifierConfig:
    """Outbound webhook notifier settings.

    Attributes:
        webhook_url: Webhook endpoint (auto-redacted in logs). When unset,
            summaries are only logged.
        username: Display name for webhook posts.
        avatar_url: Avatar image for webhook posts.
        timeout_seconds: HTTP timeout for a single post.
    """

    webhook_url: str | None = None
    username: str = "Steam Guard"
    avatar_url: str | None = "https://store.steampowered.com/favicon.ico"
    timeout_seconds: float = 10

    def __post_init__(self) -> None:
        if self.webhook_url:
            SecretFilter.register_secret(self.webhook_url)
            parts = urlsplit(self.webhook_url)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                # The URL is a secret; never echo it
                raise ValueError("Webhook URL must be an http(s) URL")
        if self.timeout_seconds <= 0:
            raise ValueError(
                f"Notifier timeout must be > 0s: {self.timeout_seconds}"
            )


@dataclass(frozen=True)
class RelayConfig:
    """Complete relay service configuration."""

    smtp: SMTPConfig = field(default_factory=SMTPConfig)
    web: WebConfig = field(default_factory=WebConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)

    def __post_init__(self) -> None:
        if not self.filter.allowed_domains:
            logger.warning(
                "No allowed sender domains configured; every message "
                "will be rejected"
            )
        logger.info(
            "Relay config loaded: smtp=%s:%d, web=%s:%d, storage=%s, "
            "allowed_domains=%s",
            self.smtp.host,
            self.smtp.port,
            self.web.host,
            self.web.port,
            self.storage.directory,
            sorted(self.filter.allowed_domains),
        )

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "RelayConfig":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to YAML config file.  Defaults to
                ``config/relaymail.yaml`` in the working directory.

        Returns:
            RelayConfig instance.

        Raises:
            ConfigError: If the file is missing or values are invalid.
        """
        load_dotenv_once()

        if config_path is None:
            config_path = _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            raw = yaml.load(f, Loader=_make_loader())

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict) -> "RelayConfig":
        """Build config from parsed (but unresolved) YAML dict."""
        smtp = _section(raw, "smtp")
        web = _section(raw, "web")
        filter_raw = _section(raw, "filter")
        storage = _section(raw, "storage")
        notifier = _section(raw, "notifier")

        try:
            return cls(
                smtp=SMTPConfig(
                    host=_resolve(smtp.get("host"), str, default="0.0.0.0"),
                    port=_resolve(smtp.get("port"), int, default=2525),
                    server_name=_resolve(smtp.get("server_name"), str),
                    tls_key_path=_resolve(smtp.get("tls_key_path"), Path),
                    tls_cert_path=_resolve(smtp.get("tls_cert_path"), Path),
                ),
                web=WebConfig(
                    host=_resolve(web.get("host"), str, default="0.0.0.0"),
                    port=_resolve(web.get("port"), int, default=3000),
                    base_url=_resolve(web.get("base_url"), str),
                ),
                filter=FilterConfig(
                    allowed_domains=frozenset(
                        d.lower()
                        for d in _resolve_string_list(
                            filter_raw.get("allowed_domains"),
                            name="filter.allowed_domains",
                        )
                    ),
                    blocked_keywords=tuple(
                        k.lower()
                        for k in _resolve_string_list(
                            filter_raw.get("blocked_keywords"),
                            name="filter.blocked_keywords",
                        )
                    ),
                    max_message_size=_resolve(
                        filter_raw.get("max_message_size"),
                        int,
                        default=10 * MIB,
                    ),
                ),
                storage=StorageConfig(
                    directory=_resolve(
                        storage.get("directory"),
                        Path,
                        default=Path("email-storage"),
                    ),
                    max_email_age_days=_resolve(
                        storage.get("max_email_age_days"), float, default=7.0
                    ),
                    max_storage_size=_resolve(
                        storage.get("max_storage_size"), int, default=5 * GIB
                    ),
                    min_free_space=_resolve(
                        storage.get("min_free_space"), int, default=500 * MIB
                    ),
                ),
                notifier=NotifierConfig(
                    webhook_url=_resolve(notifier.get("webhook_url"), str),
                    username=_resolve(
                        notifier.get("username"), str, default="Steam Guard"
                    ),
                    avatar_url=_resolve(
                        notifier.get("avatar_url"),
                        str,
                        default="https://store.steampowered.com/favicon.ico",
                    ),
                    timeout_seconds=_resolve(
                        notifier.get("timeout_seconds"), float, default=10.0
                    ),
                ),
            )
        except ValueError as e:
            raise ConfigError(str(e)) from e

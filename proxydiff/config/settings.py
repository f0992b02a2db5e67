"""
Configuration loader for the differential harness.

Settings come from three layers, later layers winning:
built-in defaults, an optional YAML file, then PROXYDIFF_* environment variables.
"""

import ipaddress
import logging
import os
from dataclasses import dataclass, asdict, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from proxydiff.domain.records import BackendEndpoint
from proxydiff.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent
DEFAULT_SCENARIOS_FILE = CONFIG_DIR / "scenarios.yaml"
DEFAULT_SCENARIOS_SCHEMA = CONFIG_DIR / "scenarios.schema.json"

# Backends of the reconfiguration under test
DEFAULT_OLD_IP = "128.178.222.108"
DEFAULT_NEW_IP = "128.178.222.7"
DEFAULT_LOGICAL_HOST = "www.epfl.ch"

# Synthetic session cookie: makes the CMS render as it would behind the public proxy.
# NOTE: not a credential, the value is deliberately bogus.
DEFAULT_SESSION_COOKIE = "wordpress_logged_in_whatever: notReally"  # nosec B105

DEFAULT_SAME_THRESHOLD = 0.95
DEFAULT_DIFFERENT_THRESHOLD = 0.8

# Environment variable -> (settings attribute, converter)
_ENV_OVERRIDES = {
    "PROXYDIFF_OLD_IP": ("old_ip", str),
    "PROXYDIFF_NEW_IP": ("new_ip", str),
    "PROXYDIFF_PORT": ("port", int),
    "PROXYDIFF_LOGICAL_HOST": ("logical_host", str),
    "PROXYDIFF_BASE_URL": ("base_url", str),
    "PROXYDIFF_SESSION_COOKIE": ("session_cookie", str),
    "PROXYDIFF_SCENARIO_TIMEOUT": ("scenario_timeout", float),
    "PROXYDIFF_CONNECT_TIMEOUT": ("connect_timeout", float),
    "PROXYDIFF_SAME_THRESHOLD": ("same_threshold", float),
    "PROXYDIFF_DIFFERENT_THRESHOLD": ("different_threshold", float),
    "PROXYDIFF_MAX_WORKERS": ("max_workers", int),
    "PROXYDIFF_OUTPUT_DIR": ("output_dir", str),
    "PROXYDIFF_VERBOSE": ("verbose", lambda raw: raw.lower() == "true"),
}


@dataclass
class Settings:
    """Run-wide configuration. Built once at startup and then only read."""

    old_ip: str = DEFAULT_OLD_IP
    new_ip: str = DEFAULT_NEW_IP
    port: int = 443
    logical_host: str = DEFAULT_LOGICAL_HOST
    base_url: str = ""
    session_cookie: str = DEFAULT_SESSION_COOKIE

    # Deadline for both fetches of one scenario, in seconds
    scenario_timeout: float = 20.0
    connect_timeout: float = 10.0

    same_threshold: float = DEFAULT_SAME_THRESHOLD
    different_threshold: float = DEFAULT_DIFFERENT_THRESHOLD

    max_workers: int = 4
    scenarios_file: str = str(DEFAULT_SCENARIOS_FILE)
    output_dir: str = ""
    verbose: bool = False
    extra_headers: Dict[str, str] = field(default_factory=dict)
    # Overrides for ClassifierMarkers fields
    classifier_markers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not self.base_url:
            self.base_url = f"https://{self.logical_host}"

    @property
    def old_backend(self) -> BackendEndpoint:
        return BackendEndpoint("old", self.old_ip, self.port)

    @property
    def new_backend(self) -> BackendEndpoint:
        return BackendEndpoint("new", self.new_ip, self.port)

    def request_headers(self) -> Dict[str, str]:
        """Headers applied identically to both backends on every request."""
        headers = dict(self.extra_headers)
        headers["Host"] = self.logical_host
        headers["Cookie"] = self.session_cookie
        return headers

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigurationError: On the first invalid value
        """
        for attr in ("old_ip", "new_ip"):
            try:
                ipaddress.ip_address(getattr(self, attr))
            except ValueError as e:
                raise ConfigurationError(f"{attr} is not an IP address: {e}") from e

        if not 0 < self.port < 65536:
            raise ConfigurationError(f"port out of range: {self.port}")
        if not self.logical_host:
            raise ConfigurationError("logical_host must not be empty")
        if not self.base_url.startswith("https://"):
            raise ConfigurationError(f"base_url must be an https URL: {self.base_url}")

        for attr in ("same_threshold", "different_threshold"):
            value = getattr(self, attr)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{attr} must be within [0, 1], got {value}")
        if self.different_threshold > self.same_threshold:
            raise ConfigurationError(
                f"different_threshold ({self.different_threshold}) must not exceed "
                f"same_threshold ({self.same_threshold})"
            )

        if self.scenario_timeout <= 0 or self.connect_timeout <= 0:
            raise ConfigurationError("timeouts must be positive")
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["session_cookie"] = "***REDACTED***"
        return data


def _load_yaml(config_path: str) -> Dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if content is None:
        logger.warning(f"Empty configuration file: {config_path}")
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at top level")
    return content


def _apply_file(settings: Settings, content: Dict[str, Any], source: str) -> None:
    known = {f.name for f in fields(Settings)}

    # Nested "backends" block is accepted as an alternative to old_ip/new_ip
    backends = content.pop("backends", None) or {}
    for side in ("old", "new"):
        if side in backends:
            content.setdefault(f"{side}_ip", backends[side])

    for key, value in content.items():
        if key not in known:
            logger.warning(f"Ignoring unknown setting '{key}' in {source}")
            continue
        setattr(settings, key, value)


def _apply_env(settings: Settings) -> None:
    for env_name, (attr, convert) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None:
            continue
        try:
            setattr(settings, attr, convert(raw))
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}") from e


def load_settings(config_path: Optional[str] = None, validate: bool = True) -> Settings:
    """
    Build settings from defaults, an optional YAML file and the environment.

    Args:
        config_path: Optional path to a YAML settings file
        validate: Run Settings.validate() before returning

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid
    """
    settings = Settings()
    base_url_explicit = False

    if config_path:
        content = _load_yaml(config_path)
        base_url_explicit = "base_url" in content
        _apply_file(settings, content, config_path)
        logger.debug(f"Loaded settings from {config_path}")

    base_url_explicit = base_url_explicit or "PROXYDIFF_BASE_URL" in os.environ
    _apply_env(settings)

    # base_url follows logical_host unless set explicitly
    if not base_url_explicit:
        settings.base_url = f"https://{settings.logical_host}"

    if validate:
        settings.validate()
    return settings

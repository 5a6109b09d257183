"""
Configuration management and loading.

Handles application settings from YAML and environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "API_USAGE_GUARD_CONFIG"
ACCESS_SECRET_ENV = "API_USAGE_GUARD_ACCESS_SECRET"
REFRESH_SECRET_ENV = "API_USAGE_GUARD_REFRESH_SECRET"

# Development-only secrets, replaced through config or environment in production
DEV_ACCESS_SECRET = "dev-access-secret-change-me-0123456789abcdef"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-me-0123456789abcdef"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class StorageBackend(Enum):
    """Where entities are persisted."""
    MEMORY = "memory"
    SQLITE = "sqlite"


class TenancyMode(Enum):
    """How integrations are owned."""
    SINGLE = "single"  # everything belongs to the anonymous owner
    MULTI = "multi"    # integrations belong to the authenticated user


@dataclass(frozen=True)
class StorageConfig:
    """Storage backend selection."""
    backend: StorageBackend = StorageBackend.MEMORY
    db_path: str = "api_usage_guard.db"

    def __post_init__(self):
        """Validate the database path."""
        if self.backend == StorageBackend.SQLITE and not self.db_path:
            raise ValueError("db_path is required for the sqlite backend")


@dataclass(frozen=True)
class AuthConfig:
    """Token signing and password hashing settings."""
    access_secret: str = DEV_ACCESS_SECRET
    refresh_secret: str = DEV_REFRESH_SECRET
    access_ttl_minutes: float = 15
    refresh_ttl_days: float = 7
    bcrypt_rounds: int = 10

    def __post_init__(self):
        """Validate secrets, lifetimes and work factor."""
        if not self.access_secret or not self.refresh_secret:
            raise ValueError("token secrets must not be empty")
        if self.access_secret == self.refresh_secret:
            raise ValueError("access_secret and refresh_secret must differ")
        if self.access_ttl_minutes <= 0:
            raise ValueError("access_ttl_minutes must be > 0")
        if self.refresh_ttl_days <= 0:
            raise ValueError("refresh_ttl_days must be > 0")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")

    @property
    def uses_dev_secrets(self) -> bool:
        return self.access_secret == DEV_ACCESS_SECRET or self.refresh_secret == DEV_REFRESH_SECRET


@dataclass(frozen=True)
class LoggingConfig:
    """Log output settings."""
    level: str = "INFO"

    def __post_init__(self):
        """Validate log level name."""
        if self.level not in _LOG_LEVELS:
            raise ValueError(f"logging level must be one of: {sorted(_LOG_LEVELS)}")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    tenancy: TenancyMode = TenancyMode.SINGLE
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_app_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Load and validate application configuration.

    Reads the YAML file at ``path`` (or the file named by
    ``API_USAGE_GUARD_CONFIG``); with neither, every setting takes its
    default. Token secrets from the environment override the file.

    Args:
        path: Path to YAML configuration file
        environ: Environment mapping, defaults to ``os.environ``

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    env = os.environ if environ is None else environ
    path = path or env.get(CONFIG_PATH_ENV)

    raw_config: Dict = {}
    if path:
        raw_config = _read_yaml(path)

    allowed_top_keys = {'storage', 'auth', 'tenancy', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    storage = _parse_storage(_section(raw_config, 'storage'))
    auth = _parse_auth(_section(raw_config, 'auth'), env)
    logging_config = _parse_logging(_section(raw_config, 'logging'))

    tenancy_str = raw_config.get('tenancy', TenancyMode.SINGLE.value)
    if not isinstance(tenancy_str, str):
        raise ValueError("'tenancy' must be a string")
    try:
        tenancy = TenancyMode(tenancy_str.lower())
    except ValueError:
        valid = [mode.value for mode in TenancyMode]
        raise ValueError(f"'tenancy' must be one of: {valid}")

    if auth.uses_dev_secrets:
        logger.warning("Using development token secrets; set %s and %s", ACCESS_SECRET_ENV, REFRESH_SECRET_ENV)

    return AppConfig(
        storage=storage,
        auth=auth,
        tenancy=tenancy,
        logging=logging_config,
    )


def _read_yaml(path: str) -> Dict:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")
    return raw_config


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config.get(name, {})
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _check_keys(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_storage(data: Dict) -> StorageConfig:
    """Parse and validate the storage section.

    Raises:
        ValueError: If configuration is invalid
    """
    _check_keys(data, {'backend', 'db_path'}, 'storage')

    backend_str = data.get('backend', StorageBackend.MEMORY.value)
    if not isinstance(backend_str, str):
        raise ValueError("'backend' in storage must be a string")
    try:
        backend = StorageBackend(backend_str.lower())
    except ValueError:
        valid = [backend.value for backend in StorageBackend]
        raise ValueError(f"'backend' in storage must be one of: {valid}")

    db_path = data.get('db_path', StorageConfig.db_path)
    if not isinstance(db_path, str):
        raise ValueError("'db_path' in storage must be a string")

    return StorageConfig(backend=backend, db_path=db_path)


def _parse_auth(data: Dict, env: Mapping[str, str]) -> AuthConfig:
    """Parse and validate the auth section, applying environment overrides.

    Raises:
        ValueError: If configuration is invalid
    """
    _check_keys(
        data,
        {'access_secret', 'refresh_secret', 'access_ttl_minutes', 'refresh_ttl_days', 'bcrypt_rounds'},
        'auth',
    )

    access_secret = env.get(ACCESS_SECRET_ENV) or data.get('access_secret', DEV_ACCESS_SECRET)
    refresh_secret = env.get(REFRESH_SECRET_ENV) or data.get('refresh_secret', DEV_REFRESH_SECRET)
    for key, value in (('access_secret', access_secret), ('refresh_secret', refresh_secret)):
        if not isinstance(value, str):
            raise ValueError(f"'{key}' in auth must be a string")

    access_ttl = data.get('access_ttl_minutes', AuthConfig.access_ttl_minutes)
    refresh_ttl = data.get('refresh_ttl_days', AuthConfig.refresh_ttl_days)
    for key, value in (('access_ttl_minutes', access_ttl), ('refresh_ttl_days', refresh_ttl)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{key}' in auth must be a number")

    rounds = data.get('bcrypt_rounds', AuthConfig.bcrypt_rounds)
    if isinstance(rounds, bool) or not isinstance(rounds, int):
        raise ValueError("'bcrypt_rounds' in auth must be an integer")

    return AuthConfig(
        access_secret=access_secret,
        refresh_secret=refresh_secret,
        access_ttl_minutes=float(access_ttl),
        refresh_ttl_days=float(refresh_ttl),
        bcrypt_rounds=rounds,
    )


def _parse_logging(data: Dict) -> LoggingConfig:
    _check_keys(data, {'level'}, 'logging')
    level = data.get('level', LoggingConfig.level)
    if not isinstance(level, str):
        raise ValueError("'level' in logging must be a string")
    return LoggingConfig(level=level.upper())

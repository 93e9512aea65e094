"""
Configuration management for the academy store.

All configuration is done via environment variables. This module provides
typed configuration classes with validation, plus the resource profile that
sizes the embedded store for the current host.

Invariants:
    - All settings have sensible defaults for local development
    - Overriding capacity never changes the reader budget
    - Unparsable numeric overrides fall back to the computed profile
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep profile numbers conservative: an under-sized reader budget fails
      requests under load, an over-sized one only costs a few bytes
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

ONE_MIB = 1024 * 1024
ONE_GIB = 1024 * ONE_MIB

DEFAULT_ACADEMY_ID = "default"
DEVELOPMENT_COOKIE_SECRET = "academy-dev-secret-change-me"


class ProfileName(Enum):
    """Host resource profiles."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int(name: str) -> int | None:
    """Read an integer override, ignoring unset or unparsable values."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring unparsable {name}={raw!r}; using resource profile")
        return None


def total_memory_bytes() -> int:
    """Total physical memory of the host, 0 if it cannot be determined."""
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, ValueError, OSError):
        return 0


@dataclass(frozen=True)
class ResourceProfile:
    """Store sizing derived from host memory.

    Attributes:
        name: Profile name
        map_size: Store capacity in bytes
        max_readers: Concurrent reader slots
        max_stores: Maximum named sub-stores
        total_memory: Detected host memory in bytes
    """

    name: ProfileName
    map_size: int
    max_readers: int
    max_stores: int
    total_memory: int = 0

    @classmethod
    def for_memory(cls, total_memory: int, low_resource: bool = False) -> ResourceProfile:
        """Pick a profile for a given amount of host memory."""
        if low_resource or total_memory <= ONE_GIB:
            # maxReaders does not reserve capacity; it only caps concurrent reads.
            return cls(ProfileName.LOW, 64 * ONE_MIB, 64, 4, total_memory)
        if total_memory <= 2 * ONE_GIB:
            return cls(ProfileName.MEDIUM, 96 * ONE_MIB, 128, 8, total_memory)
        return cls(ProfileName.HIGH, 128 * ONE_MIB, 256, 16, total_memory)

    @classmethod
    def detect(cls) -> ResourceProfile:
        """Detect the profile for the current host."""
        return cls.for_memory(total_memory_bytes(), _env_flag("LOW_RESOURCE_MODE"))


@dataclass(frozen=True)
class StorageConfig:
    """Embedded store configuration.

    Attributes:
        data_dir: Directory holding the store file
        map_size: Capacity in bytes
        max_readers: Concurrent reader slots
        max_stores: Maximum named sub-stores
        max_writers: Concurrent writer slots
        profile: Profile the defaults were taken from
        wal_mode: SQLite WAL journal mode
        busy_timeout_ms: Busy timeout, also the wait for a reader slot
    """

    data_dir: str = "./data/academy-db"
    map_size: int = 64 * ONE_MIB
    max_readers: int = 64
    max_stores: int = 4
    max_writers: int = 1
    profile: ProfileName = ProfileName.LOW
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls, profile: ResourceProfile | None = None) -> StorageConfig:
        """Load configuration from environment variables.

        Each size override falls back to the resource profile independently,
        so ACADEMY_DB_MAP_SIZE alone never shrinks the reader budget.
        """
        profile = profile or ResourceProfile.detect()

        map_size = _env_int("ACADEMY_DB_MAP_SIZE")
        max_readers = _env_int("ACADEMY_DB_MAX_READERS")
        max_stores = _env_int("ACADEMY_DB_MAX_STORES")
        max_writers = _env_int("ACADEMY_DB_MAX_WRITERS")

        if max_readers is not None and max_readers < profile.max_readers:
            logger.warning(
                f"ACADEMY_DB_MAX_READERS={max_readers} is below the "
                f"{profile.name.value} profile ({profile.max_readers}); "
                "expect reader exhaustion under load"
            )

        return cls(
            data_dir=os.getenv("ACADEMY_DATA_DIR", "./data/academy-db"),
            map_size=map_size if map_size is not None else profile.map_size,
            max_readers=max_readers if max_readers is not None else profile.max_readers,
            max_stores=max_stores if max_stores is not None else profile.max_stores,
            max_writers=max_writers if max_writers is not None else 1,
            profile=profile.name,
            wal_mode=_env_flag("ACADEMY_DB_WAL_MODE", "true"),
            busy_timeout_ms=_env_int("ACADEMY_DB_BUSY_TIMEOUT_MS") or 5000,
        )


@dataclass(frozen=True)
class CookieConfig:
    """Academy selection cookie configuration.

    Attributes:
        name: Cookie name
        secret: HMAC signing secret
        max_age: Lifetime in seconds
        secure: Whether to mark the cookie Secure
    """

    name: str = "academy-id"
    secret: str = DEVELOPMENT_COOKIE_SECRET
    max_age: int = 60 * 60 * 24 * 30
    secure: bool = False

    @classmethod
    def from_env(cls) -> CookieConfig:
        """Load configuration from environment variables."""
        return cls(
            name=os.getenv("ACADEMY_COOKIE_NAME", "academy-id"),
            secret=os.getenv("ACADEMY_COOKIE_SECRET", DEVELOPMENT_COOKIE_SECRET),
            max_age=_env_int("ACADEMY_COOKIE_MAX_AGE") or 60 * 60 * 24 * 30,
            secure=_env_flag("ACADEMY_COOKIE_SECURE"),
        )


@dataclass(frozen=True)
class BootstrapConfig:
    """Bootstrap tenant and account.

    Attributes:
        default_academy_id: Id of the academy that always exists
        admin_email: Email of the bootstrap admin account
        admin_username: Username of the bootstrap admin account
        admin_password: Initial password of the bootstrap admin account
    """

    default_academy_id: str = DEFAULT_ACADEMY_ID
    admin_email: str = "admin@academy.local"
    admin_username: str = "admin"
    admin_password: str = "admin123"

    @classmethod
    def from_env(cls) -> BootstrapConfig:
        """Load configuration from environment variables."""
        return cls(
            default_academy_id=os.getenv("ACADEMY_DEFAULT_ID", DEFAULT_ACADEMY_ID),
            admin_email=os.getenv("ACADEMY_ADMIN_EMAIL", "admin@academy.local"),
            admin_username=os.getenv("ACADEMY_ADMIN_USERNAME", "admin"),
            admin_password=os.getenv("ACADEMY_ADMIN_PASSWORD", "admin123"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class AppConfig:
    """Complete application configuration.

    Attributes:
        environment: Deployment environment name
        storage: Embedded store configuration
        cookie: Academy cookie configuration
        bootstrap: Bootstrap tenant/account configuration
        observability: Logging configuration
    """

    environment: str = "development"
    storage: StorageConfig = field(default_factory=StorageConfig)
    cookie: CookieConfig = field(default_factory=CookieConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            environment=os.getenv("ACADEMY_ENV", "development"),
            storage=StorageConfig.from_env(),
            cookie=CookieConfig.from_env(),
            bootstrap=BootstrapConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.storage.map_size <= 0:
            raise ValueError("ACADEMY_DB_MAP_SIZE must be positive")
        if self.storage.max_readers <= 0:
            raise ValueError("ACADEMY_DB_MAX_READERS must be positive")
        if self.storage.max_stores <= 0:
            raise ValueError("ACADEMY_DB_MAX_STORES must be positive")
        if self.storage.max_writers <= 0:
            raise ValueError("ACADEMY_DB_MAX_WRITERS must be positive")

        if self.cookie.secret == DEVELOPMENT_COOKIE_SECRET:
            if self.environment == "production":
                raise ValueError("ACADEMY_COOKIE_SECRET is required in production")
            logger.warning("Using the development cookie secret; set ACADEMY_COOKIE_SECRET")

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first open."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Academy store configuration loaded",
            extra={
                "environment": self.environment,
                "data_dir": self.storage.data_dir,
                "profile": self.storage.profile.value,
                "map_size": self.storage.map_size,
                "max_readers": self.storage.max_readers,
                "max_stores": self.storage.max_stores,
                "max_writers": self.storage.max_writers,
                "default_academy_id": self.bootstrap.default_academy_id,
                "log_level": self.observability.log_level,
            },
        )

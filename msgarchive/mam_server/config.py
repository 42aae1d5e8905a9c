"""
Configuration management for the message archive server.

All configuration is done via environment variables - no config files inside
containers. This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set ARCHIVE_HOSTS and STORAGE_DATA_DIR

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Archive database configuration.

    Attributes:
        data_dir: Directory for per-domain SQLite databases
        db_pattern: Pattern for archive database files
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        pool_size: Connections per domain
        acquire_timeout_ms: Wait for a pooled connection before failing
    """

    data_dir: str = "/var/lib/msgarchive"
    db_pattern: str = "archive_{host}.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    pool_size: int = 10
    acquire_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("STORAGE_DATA_DIR", "/var/lib/msgarchive"),
            db_pattern=os.getenv("STORAGE_DB_PATTERN", "archive_{host}.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            pool_size=int(os.getenv("STORAGE_POOL_SIZE", "10")),
            acquire_timeout_ms=int(os.getenv("STORAGE_ACQUIRE_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class ArchiveConfig:
    """Archiving behaviour.

    Attributes:
        hosts: Served domains, one actor each
        ignore_group_chats: Do not archive type="groupchat" messages
        max_query_limit: Enforced maximum page size
        opt_out: Bare JIDs whose messages are never archived
    """

    hosts: tuple[str, ...] = ("localhost",)
    ignore_group_chats: bool = False
    max_query_limit: int = 50
    opt_out: tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> ArchiveConfig:
        """Load configuration from environment variables."""
        return cls(
            hosts=_env_list("ARCHIVE_HOSTS", "localhost"),
            ignore_group_chats=_env_bool("ARCHIVE_IGNORE_GROUPCHATS", "false"),
            max_query_limit=int(os.getenv("ARCHIVE_MAX_QUERY_LIMIT", "50")),
            opt_out=_env_list("ARCHIVE_OPT_OUT", ""),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP intake configuration.

    Attributes:
        enabled: Whether to serve the HTTP API
        host: Bind host
        port: Bind port
        cors_origins: Allowed CORS origins
    """

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("HTTP_ENABLED", "true"),
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            cors_origins=_env_list("HTTP_CORS_ORIGINS", "*"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability and logging configuration.

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
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Archive database configuration
        archive: Archiving behaviour
        http: HTTP intake configuration
        observability: Observability configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            archive=ArchiveConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.archive.hosts:
            raise ValueError("ARCHIVE_HOSTS must name at least one served domain")
        if self.archive.max_query_limit < 1:
            raise ValueError("ARCHIVE_MAX_QUERY_LIMIT must be at least 1")
        if self.storage.pool_size < 1:
            raise ValueError("STORAGE_POOL_SIZE must be at least 1")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "hosts": list(self.archive.hosts),
                "data_dir": self.storage.data_dir,
                "pool_size": self.storage.pool_size,
                "ignore_group_chats": self.archive.ignore_group_chats,
                "max_query_limit": self.archive.max_query_limit,
                "opt_out_count": len(self.archive.opt_out),
                "http_enabled": self.http.enabled,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )

"""
Settings from environment variables.

Connection settings are read per side with a prefix, e.g. SOURCE_DIALECT,
SOURCE_HOST, ..., TARGET_PASSWORD. Comparison settings use DBCOMPARE_*.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .dialect import DIALECTS, DatabaseType, Dialect
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {
    DatabaseType.POSTGRESQL: 5432,
    DatabaseType.SQLSERVER: 1433,
    DatabaseType.DB2: 50000,
}

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_int(name: str, value: str | None, default: int | None) -> int | None:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def _parse_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class DatabaseConfig:
    """Connection settings for one data source."""

    dialect: DatabaseType
    host: str = "localhost"
    port: int | None = None
    database: str = ""
    user: str = ""
    password: str | None = None
    driver: str | None = None
    schema: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(
        cls,
        prefix: str,
        environ: Mapping[str, str] | None = None,
    ) -> "DatabaseConfig":
        """
        Read ``<PREFIX>_DIALECT``, ``_HOST``, ``_PORT``, ``_DATABASE``,
        ``_USER``, ``_PASSWORD``, ``_DRIVER`` and ``_SCHEMA``.

        Raises:
            ConfigurationError: if the dialect is missing or unknown
        """
        env = os.environ if environ is None else environ
        prefix = prefix.upper().rstrip("_")

        dialect_name = env.get(f"{prefix}_DIALECT")
        if not dialect_name:
            raise ConfigurationError(f"{prefix}_DIALECT is not set")
        dialect = DatabaseType.from_name(dialect_name)
        if dialect is DatabaseType.UNKNOWN:
            raise ConfigurationError(f"Unsupported dialect for {prefix}: {dialect_name}")

        return cls(
            dialect=dialect,
            host=env.get(f"{prefix}_HOST", "localhost"),
            port=_parse_int(f"{prefix}_PORT", env.get(f"{prefix}_PORT"), None),
            database=env.get(f"{prefix}_DATABASE", ""),
            user=env.get(f"{prefix}_USER", ""),
            password=env.get(f"{prefix}_PASSWORD"),
            driver=env.get(f"{prefix}_DRIVER"),
            schema=env.get(f"{prefix}_SCHEMA"),
        )

    @property
    def effective_port(self) -> int | None:
        return self.port or DEFAULT_PORTS.get(self.dialect)

    def __repr__(self) -> str:
        # Never print the password
        return (
            f"DatabaseConfig(dialect={self.dialect.value}, host={self.host}, "
            f"port={self.effective_port}, database={self.database}, user={self.user})"
        )


@dataclass
class CompareSettings:
    """Options of one comparison run."""

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    parallel: bool = False
    max_workers: int | None = 4
    fail_fast: bool = False
    table_retries: int = 0
    numeric_tolerance: bool = True
    temporal_tolerance: bool = True
    text_tolerance: bool = True
    binary_tolerance: bool = True
    fetch_size: int = 1000
    progress_interval: int = 10_000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "CompareSettings":
        """
        Read DBCOMPARE_INCLUDE and DBCOMPARE_EXCLUDE (comma separated),
        DBCOMPARE_PARALLEL, DBCOMPARE_MAX_WORKERS, DBCOMPARE_FAIL_FAST,
        DBCOMPARE_TABLE_RETRIES, DBCOMPARE_<KIND>_TOLERANCE,
        DBCOMPARE_FETCH_SIZE and DBCOMPARE_PROGRESS_INTERVAL.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def flag(name: str, default: bool) -> bool:
            key = f"DBCOMPARE_{name}"
            return _parse_bool(key, env.get(key), default)

        def number(name: str, default: int | None) -> int | None:
            key = f"DBCOMPARE_{name}"
            return _parse_int(key, env.get(key), default)

        settings = cls(
            include=_parse_list(env.get("DBCOMPARE_INCLUDE")),
            exclude=_parse_list(env.get("DBCOMPARE_EXCLUDE")),
            parallel=flag("PARALLEL", defaults.parallel),
            max_workers=number("MAX_WORKERS", defaults.max_workers),
            fail_fast=flag("FAIL_FAST", defaults.fail_fast),
            table_retries=number("TABLE_RETRIES", defaults.table_retries),
            numeric_tolerance=flag("NUMERIC_TOLERANCE", defaults.numeric_tolerance),
            temporal_tolerance=flag("TEMPORAL_TOLERANCE", defaults.temporal_tolerance),
            text_tolerance=flag("TEXT_TOLERANCE", defaults.text_tolerance),
            binary_tolerance=flag("BINARY_TOLERANCE", defaults.binary_tolerance),
            fetch_size=number("FETCH_SIZE", defaults.fetch_size),
            progress_interval=number("PROGRESS_INTERVAL", defaults.progress_interval),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.table_retries < 0:
            raise ConfigurationError(f"table_retries must not be negative, got {self.table_retries}")
        if self.fetch_size < 1:
            raise ConfigurationError(f"fetch_size must be at least 1, got {self.fetch_size}")
        if self.progress_interval < 1:
            raise ConfigurationError(
                f"progress_interval must be at least 1, got {self.progress_interval}"
            )


def create_dialect(config: DatabaseConfig, fetch_size: int = 1000) -> Dialect:
    """
    Build the dialect for ``config`` with a driver-backed connection factory.

    Raises:
        ConfigurationError: if the password is missing or the dialect is unsupported
    """
    if not config.password:
        raise ConfigurationError(f"Password not provided for {config.dialect.value} database")

    dialect_class = DIALECTS.get(config.dialect)
    if dialect_class is None:
        raise ConfigurationError(f"Unsupported dialect: {config.dialect.value}")

    options: dict[str, Any] = {"fetch_size": fetch_size, "default_schema": config.schema}
    if config.driver and config.dialect is not DatabaseType.POSTGRESQL:
        options["driver"] = config.driver
    options.update(config.extra)

    if config.dialect is DatabaseType.SQLSERVER:
        server = config.host
        if config.port:
            server = f"{config.host},{config.port}"
        dialect = dialect_class.from_params(
            server=server,
            database=config.database,
            user=config.user,
            password=config.password,
            **options,
        )
    else:
        dialect = dialect_class.from_params(
            host=config.host,
            port=config.effective_port,
            database=config.database,
            user=config.user,
            password=config.password,
            **options,
        )

    logger.info(f"Created {dialect!r} for {config!r}")
    return dialect

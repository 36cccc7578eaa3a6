"""Database configuration for the care-team store.

SQLite (a local file) is the default and what the tests run on.
PostgreSQL through asyncpg is supported for shared deployments.
Everything is read from ``DB_`` environment variables or ``.env``.
"""

import ssl
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """
    Where the roster and audit tables live and how to reach them.

    Example environment:
        DB_DRIVER=postgresql+asyncpg
        DB_HOST=db.internal
        DB_NAME=care_team
        DB_USER=careuser
        DB_PASSWORD=secret
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    driver: str = Field(default="sqlite+aiosqlite", description="SQLAlchemy async driver")

    # Server databases
    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    name: str = Field(default="care_team")
    user: str = Field(default="")
    password: str = Field(default="")
    ssl_mode: str = Field(
        default="prefer",
        description="disable, prefer, require, verify-ca or verify-full",
    )
    ssl_ca_cert: Optional[str] = Field(default=None, description="CA bundle for verify-* modes")

    # File databases
    sqlite_path: Path = Field(default=Path("data/care_team.db"))
    sqlite_immediate_transactions: bool = Field(
        default=True,
        description="Start every SQLite transaction with BEGIN IMMEDIATE so writers queue",
    )

    # Pooling (server databases only)
    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=20, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1, description="Seconds to wait for a free connection")
    pool_recycle: int = Field(default=1800, ge=60, description="Seconds before a connection is replaced")
    pool_pre_ping: bool = Field(default=True)

    echo_sql: bool = Field(default=False, description="Log every statement")
    query_timeout: int = Field(
        default=30,
        ge=1,
        description="Statement timeout in seconds; on SQLite, how long a writer waits for the lock",
    )

    @computed_field
    @property
    def is_sqlite(self) -> bool:
        return self.driver.lower().startswith("sqlite")

    @computed_field
    @property
    def is_postgres(self) -> bool:
        return self.driver.lower().startswith("postgres")

    @computed_field
    @property
    def async_url(self) -> str:
        """Connection URL; creates the SQLite file's directory on first use."""
        if self.is_sqlite:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path.absolute()}"

        credentials = ""
        if self.user:
            credentials = self.user + (f":{self.password}" if self.password else "") + "@"
        return f"{self.driver}://{credentials}{self.host}:{self.port}/{self.name}"

    @property
    def label(self) -> str:
        """Database name for logs and the readiness check."""
        return "sqlite" if self.is_sqlite else self.name

    def pool_options(self) -> Dict[str, Any]:
        """Pool keyword arguments for ``create_async_engine``."""
        if self.is_sqlite:
            return {}
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "pool_pre_ping": self.pool_pre_ping,
        }

    def get_connect_args(self) -> Dict[str, Any]:
        """Driver-level connection arguments."""
        if self.is_sqlite:
            # aiosqlite runs the connection on its own thread
            return {"check_same_thread": False, "timeout": self.query_timeout}

        args: Dict[str, Any] = {"command_timeout": self.query_timeout}
        context = self._ssl_context()
        if context is not None:
            args["ssl"] = context
        return args

    def _ssl_context(self) -> Optional[ssl.SSLContext]:
        if self.ssl_mode == "disable":
            return None

        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        if self.ssl_mode in ("verify-ca", "verify-full"):
            if self.ssl_ca_cert:
                context.load_verify_locations(self.ssl_ca_cert)
            context.check_hostname = self.ssl_mode == "verify-full"
        elif self.ssl_mode != "require":
            # prefer: encrypt without verifying the server
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Database settings from the environment, loaded once."""
    return DatabaseSettings()

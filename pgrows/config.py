"""
Pydantic models for pool configuration.

Authentication fields left unset fall through to libpq, which reads the
standard PGHOST, PGPORT, PGDATABASE, PGUSER and PGPASSWORD variables.
"""

import inspect
import os
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PasswordProvider = Callable[[], Union[str, Awaitable[str]]]

DEFAULT_MAX_SIZE = 10


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


async def resolve_password(password: Union[str, PasswordProvider, None]) -> Optional[str]:
    """Return the password, calling (and awaiting) a provider if one is configured."""
    if password is None or isinstance(password, str):
        return password
    value = password()
    if inspect.isawaitable(value):
        value = await value
    return value


class AuthConfig(BaseModel):
    """Connection credentials. Every field is optional."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: Optional[str] = Field(None, description="Database host name or socket directory")
    port: Optional[int] = Field(None, ge=1, le=65535, description="Database port")
    database: Optional[str] = Field(None, description="Database name")
    user: Optional[str] = Field(None, description="Role to connect as")
    password: Optional[Union[str, PasswordProvider]] = Field(
        None,
        description="Static password, or a callable returning the password (sync or async). "
                    "A callable is invoked for every new physical connection."
    )

    @property
    def password_provider(self) -> Optional[PasswordProvider]:
        return None if self.password is None or isinstance(self.password, str) else self.password

    def connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for psycopg connect(). Unset fields and password providers are omitted."""
        kwargs: Dict[str, Any] = {}
        if self.host is not None:
            kwargs["host"] = self.host
        if self.port is not None:
            kwargs["port"] = self.port
        if self.database is not None:
            kwargs["dbname"] = self.database
        if self.user is not None:
            kwargs["user"] = self.user
        if isinstance(self.password, str):
            kwargs["password"] = self.password
        return kwargs


class PoolConfig(BaseModel):
    """
    Configuration consumed once when a PoolManager is initialized.

    ``max`` is accepted as an alias of ``max_size``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str = Field(..., min_length=1, description="Label used in log lines")
    auth: Optional[AuthConfig] = Field(None, description="Credentials; libpq defaults apply when omitted")
    max_size: Optional[int] = Field(
        None, alias="max", ge=1, le=1000,
        description=f"Maximum number of connections (default {DEFAULT_MAX_SIZE})"
    )
    min_size: int = Field(0, ge=0, le=1000, description="Connections opened eagerly and kept idle")
    timeout: float = Field(30.0, gt=0, description="Seconds to wait when acquiring a connection")
    initial_script: Optional[str] = Field(None, description="SQL run once after the pool is created")

    @field_validator("initial_script")
    @classmethod
    def blank_script_is_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_sizes(self):
        if self.min_size > self.effective_max_size:
            raise ValueError(f"max_size ({self.effective_max_size}) must be >= min_size ({self.min_size})")
        return self

    @property
    def effective_max_size(self) -> int:
        return self.max_size if self.max_size is not None else DEFAULT_MAX_SIZE

    @classmethod
    def from_env(cls, prefix: str = "PGROWS_") -> "PoolConfig":
        """
        Build a configuration from environment variables.

        Reads ``<prefix>NAME``, ``<prefix>MAX``, ``<prefix>MIN``,
        ``<prefix>TIMEOUT`` and ``<prefix>INITIAL_SCRIPT`` (or
        ``<prefix>INITIAL_SCRIPT_FILE``, a path to a .sql file).
        Credentials are not read here; libpq picks up PG* variables itself.
        """
        script = os.getenv(f"{prefix}INITIAL_SCRIPT")
        script_file = os.getenv(f"{prefix}INITIAL_SCRIPT_FILE")
        if not script and script_file:
            with open(script_file, "r", encoding="utf-8") as f:
                script = f.read()

        return cls(
            name=os.getenv(f"{prefix}NAME", "default"),
            max_size=_env_int(f"{prefix}MAX", None),
            min_size=_env_int(f"{prefix}MIN", 0),
            timeout=_env_float(f"{prefix}TIMEOUT", 30.0),
            initial_script=script,
        )

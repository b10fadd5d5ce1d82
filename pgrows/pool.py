"""
PostgreSQL connection pool manager.

A PoolManager owns at most one AsyncConnectionPool. The first successful
initialize() creates it; later calls are no-ops, even with a different
configuration. Managers are plain objects: pass the one you created to
the code that needs connections.

Usage:
    manager = PoolManager()
    await manager.initialize(PoolConfig(name="app", max=5, initial_script=SCHEMA))

    async with manager.connection() as conn:
        await insert(conn, "list", [{"id": 1, "value": "a"}])

    await manager.close()
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Type, Union

from psycopg import AsyncConnection
from psycopg.rows import DictRow, dict_row
from psycopg_pool import AsyncConnectionPool

from pgrows.config import PoolConfig, resolve_password
from pgrows.errors import QueryError
from pgrows.logger import setup_logger
from pgrows.queries import query

logger = setup_logger(__name__, include_location=True)


class ObservedConnection(AsyncConnection):
    """
    AsyncConnection reporting its creation and closing to a PoolManager.

    PoolManager makes one subclass per pool with ``manager`` (and
    ``password_provider`` when the password is a callable) set on it.
    """

    manager: Optional["PoolManager"] = None
    password_provider = None

    @classmethod
    async def connect(cls, conninfo: str = "", **kwargs):
        if cls.password_provider is not None:
            kwargs["password"] = await resolve_password(cls.password_provider)
        conn = await super().connect(conninfo, **kwargs)
        if cls.manager is not None:
            cls.manager._on_connect()
        return conn

    async def close(self) -> None:
        # connections dropped by the server are already closed here; still one report each
        try:
            await super().close()
        finally:
            if self.manager is not None and not getattr(self, "_removal_reported", False):
                self._removal_reported = True
                self.manager._on_remove()


class PoolManager:
    """Lazily created connection pool with connect/remove logging."""

    def __init__(self, config: Union[PoolConfig, Dict[str, Any], None] = None):
        self._config: Optional[PoolConfig] = self._validate(config) if config is not None else None
        self._pool: Optional[AsyncConnectionPool[AsyncConnection[DictRow]]] = None
        self._lock = asyncio.Lock()
        # set from pool creation until close, so hooks fired while opening can count
        self._observed: Optional[AsyncConnectionPool[AsyncConnection[DictRow]]] = None

    @staticmethod
    def _validate(config: Union[PoolConfig, Dict[str, Any]]) -> PoolConfig:
        if isinstance(config, PoolConfig):
            return config
        try:
            return PoolConfig.model_validate(config)
        except ValueError as e:
            raise QueryError(f"Invalid pool configuration: {e}") from e

    @property
    def name(self) -> str:
        return self._config.name if self._config else "unconfigured"

    @property
    def config(self) -> Optional[PoolConfig]:
        return self._config

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    @property
    def total_count(self) -> int:
        """Physical connections the pool currently holds, by the pool's own count."""
        if self._observed is None:
            return 0
        return self._observed.get_stats().get("pool_size", 0)

    @property
    def pool(self) -> AsyncConnectionPool[AsyncConnection[DictRow]]:
        if self._pool is None:
            raise QueryError(f"[{self.name} DB] pool is not initialized. Call initialize() first.")
        return self._pool

    def _on_connect(self) -> None:
        logger.info(f"[{self.name} DB] new connection: {self.total_count}")

    def _on_remove(self) -> None:
        logger.info(f"[{self.name} DB] removed connection: {self.total_count}")

    def _connection_class(self, config: PoolConfig) -> Type[ObservedConnection]:
        attrs = {"manager": self}
        if config.auth is not None and config.auth.password_provider is not None:
            attrs["password_provider"] = staticmethod(config.auth.password_provider)
        return type("ObservedConnection", (ObservedConnection,), attrs)

    async def initialize(self, config: Union[PoolConfig, Dict[str, Any], None] = None) -> None:
        """
        Create the pool and run the initialization script, once.

        Calling again after a pool exists does nothing, whatever the
        config. If the initialization script fails the pool is kept, so
        a retry is a no-op as well.

        Raises:
            QueryError: if the pool cannot be opened or the script fails
        """
        async with self._lock:
            if self._pool is not None:
                logger.debug(f"[{self.name} DB] pool already initialized")
                return

            if config is not None:
                self._config = self._validate(config)
            if self._config is None:
                raise QueryError("PoolManager.initialize() needs a PoolConfig")
            conf = self._config

            kwargs: Dict[str, Any] = {"autocommit": True, "row_factory": dict_row}
            if conf.auth is not None:
                kwargs.update(conf.auth.connection_kwargs())

            logger.info(
                f"[{conf.name} DB] creating pool | "
                f"min={conf.min_size}, max={conf.effective_max_size}, timeout={conf.timeout}s"
            )
            pool = AsyncConnectionPool(
                "",
                connection_class=self._connection_class(conf),
                kwargs=kwargs,
                min_size=conf.min_size,
                max_size=conf.effective_max_size,
                timeout=conf.timeout,
                name=conf.name,
                open=False,
            )
            self._observed = pool
            try:
                await pool.open(wait=True, timeout=conf.timeout)
            except Exception as e:
                logger.error(f"[{conf.name} DB] failed to open pool: {e}")
                try:
                    await pool.close()
                finally:
                    self._observed = None
                raise QueryError(f"Pool open failed: {e}") from e
            self._pool = pool

            if not conf.initial_script:
                return

            logger.info(f"[{conf.name} DB] Init started")
            init_start = time.perf_counter()
            async with self.connection() as conn:
                await query(conn, conf.initial_script)
            logger.success(f"[{conf.name} DB] Init: {(time.perf_counter() - init_start) * 1000:.1f}ms")

    @asynccontextmanager
    async def connection(self, timeout: Optional[float] = None) -> AsyncIterator[AsyncConnection[DictRow]]:
        """
        Borrow a connection for the duration of the block.

        The connection goes back to the pool on every exit path,
        including exceptions and task cancellation.

        Raises:
            QueryError: if the pool is not initialized or no connection
                became available within ``timeout`` (default: config timeout)
        """
        pool = self.pool
        acquire_start = time.perf_counter()
        try:
            conn = await pool.getconn(timeout=timeout)
        except Exception as e:
            logger.error(
                f"[{self.name} DB] failed to acquire connection after "
                f"{time.perf_counter() - acquire_start:.2f}s: {e}"
            )
            raise QueryError(f"Connection acquire failed: {e}") from e
        logger.debug(f"[{self.name} DB] connection acquired in {(time.perf_counter() - acquire_start) * 1000:.1f}ms")
        try:
            yield conn
        finally:
            await pool.putconn(conn)
            logger.debug(f"[{self.name} DB] connection released")

    def get_stats(self) -> Dict[str, Any]:
        if self._pool is None:
            return {}
        stats = dict(self._pool.get_stats())
        stats["name"] = self.name
        stats["total_count"] = self.total_count
        return stats

    async def close(self) -> None:
        """Close the pool. Safe to call when not initialized; initialize() works again afterwards."""
        async with self._lock:
            if self._pool is None:
                return
            logger.info(f"[{self.name} DB] closing pool")
            try:
                await self._pool.close()
            finally:
                self._pool = None
                self._observed = None
            logger.info(f"[{self.name} DB] pool closed")

    async def __aenter__(self) -> "PoolManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

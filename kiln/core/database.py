import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Sequence

import asyncpg

from kiln.core.config import DatabaseConfig
from kiln.core.exception import DatabaseNotInitialized

PoolFactory = Callable[..., Awaitable[asyncpg.Pool]]


class Database:
    """
    Owns the process' PostgreSQL pool.

    ``init`` is serialized behind a lock so concurrent callers never build two
    pools; ``query`` scopes each connection to one statement.
    """

    def __init__(self, config: DatabaseConfig, pool_factory: PoolFactory = asyncpg.create_pool) -> None:
        self._config = config
        self._pool_factory = pool_factory
        self._pool: asyncpg.Pool | None = None
        self._init_lock = asyncio.Lock()
        self._logger = logging.getLogger("kiln.core.database")

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    async def init(self) -> None:
        async with self._init_lock:
            if self._pool is not None:
                self._logger.info("Database pool already initialized.")
                return

            config = self._config
            self._logger.info(
                f"Attempting to initialize database connection to "
                f"{config.host}:{config.port}/{config.database}..."
            )
            try:
                self._pool = await self._pool_factory(
                    host=config.host,
                    port=config.port,
                    user=config.user,
                    password=config.password,
                    database=config.database,
                    min_size=config.min_size,
                    max_size=config.max_size,
                )
                async with self._pool.acquire():
                    pass
                self._logger.info("Database pool connected successfully.")
            except Exception as exc:
                self._logger.error(f"Database initialization failed: {exc}")
                if self._pool is not None:
                    try:
                        await self._pool.close()
                    except Exception as close_exc:
                        self._logger.error(f"Error closing pool after connection failure: {close_exc}")
                self._pool = None
                raise

    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[Any]:
        """Run a ``$1, $2...`` parameterized statement and return its rows."""
        pool = self._pool
        if pool is None:
            self._logger.error("Query attempt failed: Database is not initialized.")
            raise DatabaseNotInitialized()

        try:
            async with pool.acquire() as connection:
                return await connection.fetch(sql, *params)
        except Exception as exc:
            self._logger.error(
                f'Query failed: SQL="{sql}" PARAMS={json.dumps(list(params), default=str)} ERROR={exc}'
            )
            raise

    async def close(self) -> None:
        if self._pool is None:
            self._logger.warning("Database pool was not initialized or already closed. No action taken.")
            return

        self._logger.info("Attempting to close database pool...")
        try:
            await self._pool.close()
            self._logger.info("Database pool closed successfully.")
        except Exception as exc:
            self._logger.error(f"Failed to close database pool gracefully: {exc}")
            raise
        finally:
            self._pool = None

import asyncio
from dataclasses import dataclass

from kiln.bootstrap.config.settings import Settings
from kiln.bootstrap.routes import create_router
from kiln.core.app import App
from kiln.core.config import Config, DatabaseConfig
from kiln.core.database import Database, PoolFactory
from kiln.core.middleware import (
    BodyParserMiddleware,
    CompressionMiddleware,
    CORSMiddleware,
    LoggingMiddleware,
    Middleware,
    ProxyMiddleware,
)
from kiln.core.router import Router
from kiln.core.server import Server


@dataclass
class Context:
    """Everything the process owns, built once by the entrypoint."""

    settings: Settings
    loop: asyncio.AbstractEventLoop
    app: App
    routes: Router
    database: Database | None
    server: Server


class ContextBuilder:
    """
    Constructs a fully wired Context.

    Responsibilities:
    - Build the server config from settings
    - Build the database (pooled variant only)
    - Build the middleware chain and the routes
    """

    def __init__(
        self,
        settings: Settings,
        name: str = "kiln",
        pool_factory: PoolFactory | None = None,
    ) -> None:
        self.settings = settings
        self.name = name
        self.pool_factory = pool_factory

    def build(self, loop: asyncio.AbstractEventLoop) -> Context:
        app = App(self.name)
        database = self._build_database()
        routes = create_router(self.name, database)
        server = Server(
            config=self._build_server_config(app, loop),
            routes=routes,
            middlewares=self._build_middlewares(),
            database=database,
            settings=self.settings,
        )

        return Context(
            settings=self.settings,
            loop=loop,
            app=app,
            routes=routes,
            database=database,
            server=server,
        )

    def _build_server_config(self, app: App, loop: asyncio.AbstractEventLoop) -> Config:
        settings = self.settings
        return Config(
            app=app,
            host=settings.host,
            port=settings.port,
            backlog=2048,
            loop=loop,
            keep_alive_timeout=settings.keep_alive_timeout,
            headers_timeout=settings.headers_timeout,
            max_body_size=max(1024 * 1024, settings.body_limit),
            timeout_graceful_shutdown=settings.graceful_shutdown_timeout,
        )

    def _build_database(self) -> Database | None:
        settings = self.settings
        if not settings.database_enabled:
            return None

        config = DatabaseConfig(
            host=settings.pg_host,
            port=settings.pg_port,
            user=settings.pg_user,
            password=settings.pg_password,
            database=settings.pg_database,
            min_size=settings.pg_pool_min_size,
            max_size=settings.pg_pool_max_size,
        )
        if self.pool_factory is None:
            return Database(config)
        return Database(config, pool_factory=self.pool_factory)

    def _build_middlewares(self) -> list[Middleware]:
        settings = self.settings
        return [
            ProxyMiddleware(hops=settings.trust_proxy),
            LoggingMiddleware(),
            CORSMiddleware(),
            CompressionMiddleware(threshold=settings.compression_threshold),
            BodyParserMiddleware(limit=settings.body_limit),
        ]

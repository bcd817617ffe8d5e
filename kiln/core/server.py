import asyncio
import logging
from typing import Any, Sequence

from kiln.core.app import App
from kiln.core.config import Config
from kiln.core.database import Database
from kiln.core.exception import ShutdownTimeout
from kiln.core.middleware.base import Middleware
from kiln.core.model.state import ServerPhase, ServerState
from kiln.core.protocol import HttpProtocol
from kiln.core.router import Router


class Server:
    def __init__(
        self,
        config: Config,
        routes: Router,
        middlewares: Sequence[Middleware] = (),
        database: Database | None = None,
        settings: Any = None,
    ) -> None:
        self._config = config
        self._routes = routes
        self._middlewares = list(middlewares)
        self._database = database
        self._settings = settings

        self.state = ServerState()
        self._server: asyncio.Server | None = None
        self._logger = logging.getLogger("kiln.core.server")

    @property
    def app(self) -> App:
        return self._config.app

    @property
    def port(self) -> int | None:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def init(self) -> App:
        # later stages read what earlier ones attach to the app
        self._mount_config()
        await self._initialize_services()
        self._mount_middlewares()
        self._mount_routes()
        return self.app

    async def start(self) -> None:
        config = self._config
        self._server = await config.loop.create_server(
            self.create_protocol,
            host=config.host,
            port=config.port,
            backlog=config.backlog,
        )
        self.state.phase = ServerPhase.LISTENING
        self._logger.info(f"Running SERVER @ 'http://{config.host}:{self.port}'")

    def create_protocol(self) -> asyncio.Protocol:
        loop = self._config.loop
        return HttpProtocol(config=self._config, server_state=self.state, loop=loop)

    async def shutdown(self) -> None:
        """
        Stop the listener, destroy tracked sockets, then close the pool.

        Raises ``ShutdownTimeout`` when the listener does not settle within
        ``timeout_graceful_shutdown``; the database is left untouched in that
        case and the caller is expected to exit.
        """
        self._logger.warning("Initiating graceful shutdown...")
        self.state.phase = ServerPhase.SHUTTING_DOWN

        server = self._server
        if server is None:
            self._logger.warning("Server instance not found, skipping server close.")
        else:
            server.close()
            self._destroy_connections()

            timeout = self._config.timeout_graceful_shutdown
            try:
                await asyncio.wait_for(asyncio.shield(server.wait_closed()), timeout=timeout)
            except TimeoutError:
                self._logger.error("Shutdown timed out, forcing exit.")
                raise ShutdownTimeout(timeout) from None
            except Exception as exc:
                self._logger.error(f"Error during server close: {exc}")
                raise

            self._server = None
            self._logger.info("HTTP server stopped accepting new connections.")

        await self._close_database()

        self.state.phase = ServerPhase.STOPPED
        self._logger.info("Graceful shutdown completed.")

    def _destroy_connections(self) -> None:
        connections = list(self.state.connections.values())
        self._logger.info(f"Closing {len(connections)} active connections...")

        for connection in connections:
            connection.abort()
        self.state.connections.clear()

    async def _close_database(self) -> None:
        if self._database is None:
            return

        self._logger.info("Closing database connection pool...")
        try:
            await self._database.close()
        except Exception as exc:
            # pool errors never fail the shutdown
            self._logger.error(f"Error closing database pool during shutdown: {exc}", exc_info=exc)

    def _mount_config(self) -> None:
        self.app.locals["config"] = self._settings
        self._logger.info("Configuration mounted")

    async def _initialize_services(self) -> None:
        self._logger.info("Initializing core services...")
        if self._database is not None:
            try:
                await self._database.init()
            except Exception as exc:
                self._logger.critical(f"FATAL: Failed to initialize core services: {exc}")
                raise
        self._logger.info("Core services initialized successfully.")

    def _mount_middlewares(self) -> None:
        for middleware in self._middlewares:
            self.app.use(middleware)
        self._logger.info(f"Mount middlewares: {', '.join(self.app.middleware) or '-'}")

    def _mount_routes(self) -> None:
        self.app.mount("/", self._routes)
        self._logger.info("API Routes mounted")

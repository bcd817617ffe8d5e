import asyncio
from dataclasses import dataclass

from kiln.core.app import App


@dataclass
class Config:
    app: App

    host: str
    port: int
    backlog: int

    loop: asyncio.AbstractEventLoop

    keep_alive_timeout: float = 65.0
    headers_timeout: float = 66.0
    max_body_size: int = 1 * 1024 * 1024  # 1MB

    timeout_graceful_shutdown: float = 15.0


@dataclass
class DatabaseConfig:
    host: str
    port: int
    user: str
    password: str
    database: str

    min_size: int = 1
    max_size: int = 10

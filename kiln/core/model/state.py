import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from kiln.core.protocol import HttpProtocol


class ServerPhase(str, Enum):
    UNSTARTED = "unstarted"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ConnectionId:
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class ServerState:
    phase: ServerPhase = ServerPhase.UNSTARTED
    connections: dict[ConnectionId, "HttpProtocol"] = field(default_factory=dict)
    tasks: set[asyncio.Task[None]] = field(default_factory=set)

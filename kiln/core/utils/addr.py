import asyncio

from kiln.core.model.state import ConnectionId


def get_remote_addr(transport: asyncio.BaseTransport) -> tuple[str, int] | None:
    info = transport.get_extra_info("peername")

    if isinstance(info, (tuple, list)) and len(info) >= 2:
        return str(info[0]), int(info[1])
    return None


def connection_id(transport: asyncio.BaseTransport) -> ConnectionId:
    addr = get_remote_addr(transport)
    if addr is None:
        # unix sockets carry no peer address; fall back to the transport identity
        return ConnectionId(host=f"transport-{id(transport):x}", port=0)
    return ConnectionId(host=addr[0], port=addr[1])

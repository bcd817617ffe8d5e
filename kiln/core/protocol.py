import asyncio
import logging
from email.utils import formatdate

import h11

from kiln.core.config import Config
from kiln.core.flow import FlowControl
from kiln.core.model.request import Request
from kiln.core.model.response import Response, error_response, handle_error
from kiln.core.model.state import ConnectionId, ServerPhase, ServerState
from kiln.core.utils.addr import connection_id, get_remote_addr

# managed by the protocol itself, whatever the handler set
HOP_HEADERS = frozenset({"content-length", "transfer-encoding", "date", "x-powered-by"})


class HttpProtocol(asyncio.Protocol):
    def __init__(
        self,
        config: Config,
        server_state: ServerState,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._transport: asyncio.Transport = None   # type: ignore[assignment]
        self._flow: FlowControl = None  # type: ignore[assignment]
        self.conn_id: ConnectionId = None   # type: ignore[assignment]

        self._config = config
        self._app = config.app
        self._loop = loop or asyncio.get_event_loop()
        self._state = server_state
        self._connections = server_state.connections
        self._tasks = server_state.tasks

        self._conn = h11.Connection(h11.SERVER)
        self._client: tuple[str, int] | None = None
        self._request: h11.Request | None = None
        self._body = bytearray()
        self._headers_timer: asyncio.TimerHandle | None = None
        self._keep_alive_timer: asyncio.TimerHandle | None = None

        self._logger = logging.getLogger("kiln.core.transport")

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]
        self._flow = FlowControl(self._transport)
        self._client = get_remote_addr(transport)
        self.conn_id = connection_id(transport)

        # accepted by the listener but made after the shutdown sweep
        if self._state.phase in (ServerPhase.SHUTTING_DOWN, ServerPhase.STOPPED):
            self._logger.debug(f"Rejecting {self.conn_id}: server is shutting down")
            self._transport.abort()
            return

        self._connections[self.conn_id] = self
        self._start_headers_timer()

        self._logger.debug(f"Connection made: {self.conn_id}")

    def connection_lost(self, exc: Exception | None) -> None:
        if self._connections.get(self.conn_id) is self:
            del self._connections[self.conn_id]
        self._cancel_timers()
        self._flow.resume_writing()

        self._logger.debug(f"Connection lost: {self.conn_id}")

    def data_received(self, data: bytes) -> None:
        self._cancel_keep_alive_timer()
        if self._request is None and self._headers_timer is None:
            self._start_headers_timer()

        self._conn.receive_data(data)
        self._handle_events()

    def eof_received(self) -> bool | None:
        self._conn.receive_data(b"")
        self._handle_events()
        return None

    def pause_writing(self) -> None:
        self._flow.pause_writing()

    def resume_writing(self) -> None:
        self._flow.resume_writing()

    def abort(self) -> None:
        """Destroy the socket without waiting for in-flight responses."""
        self._cancel_timers()
        if self._transport is not None:
            self._transport.abort()

    def _handle_events(self) -> None:
        while not self._transport.is_closing():
            try:
                event = self._conn.next_event()
            except h11.RemoteProtocolError as exc:
                self._logger.debug(f"Invalid HTTP request from {self.conn_id}: {exc}")
                self._send_error(exc.error_status_hint, "Invalid HTTP request")
                return

            if event is h11.NEED_DATA:
                break

            if event is h11.PAUSED:
                self._flow.pause_reading()
                break

            if isinstance(event, h11.Request):
                self._cancel_headers_timer()
                self._request = event
                self._body = bytearray()

            elif isinstance(event, h11.Data):
                self._body.extend(event.data)
                if len(self._body) > self._config.max_body_size:
                    self._send_error(413, "Request entity too large")
                    return

            elif isinstance(event, h11.EndOfMessage):
                self._flow.pause_reading()
                self._spawn(self._cycle(self._build_request()))
                break

            elif isinstance(event, h11.ConnectionClosed):
                self._transport.close()
                break

    def _spawn(self, coro) -> None:
        task = self._loop.create_task(coro)
        task.add_done_callback(self._tasks.discard)
        self._tasks.add(task)

    def _build_request(self) -> Request:
        event = self._request
        headers: dict[str, str] = {}
        for raw_name, raw_value in event.headers:
            name = raw_name.decode("latin-1").lower()
            value = raw_value.decode("latin-1")
            headers[name] = f"{headers[name]}, {value}" if name in headers else value

        return Request.from_target(
            method=event.method.decode("ascii"),
            target=event.target.decode("latin-1"),
            headers=headers,
            body=bytes(self._body),
            client=self._client,
        )

    async def _cycle(self, request: Request) -> None:
        try:
            response = await self._app(request)
        except Exception as exc:
            response = handle_error(exc)

        await self._send_response(request, response)

    async def _send_response(self, request: Request, response: Response) -> None:
        if self._flow.write_paused:
            await self._flow.drain()

        if self._transport.is_closing():
            return

        headers = [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in response.headers.items()
            if name.lower() not in HOP_HEADERS
        ]
        headers.append((b"date", formatdate(usegmt=True).encode("ascii")))

        body = response.body
        if response.status in (204, 304) or response.status < 200:
            body = b""
        else:
            headers.append((b"content-length", str(len(body)).encode("ascii")))

        try:
            output = self._conn.send(
                h11.Response(status_code=response.status, headers=headers, reason=response.reason.encode("ascii"))
            )
            if body and request.method != "HEAD":
                output += self._conn.send(h11.Data(data=body))
            output += self._conn.send(h11.EndOfMessage())
        except h11.LocalProtocolError as exc:
            self._logger.error(f"Failed to send response to {self.conn_id}: {exc}")
            self._transport.close()
            return

        self._transport.write(output)
        self._next_cycle()

    def _next_cycle(self) -> None:
        if self._conn.our_state is h11.MUST_CLOSE or self._conn.their_state is h11.MUST_CLOSE:
            self._transport.close()
            return

        try:
            self._conn.start_next_cycle()
        except h11.LocalProtocolError:
            self._transport.close()
            return

        self._request = None
        self._start_keep_alive_timer()
        self._flow.resume_reading()
        # pipelined requests may already sit in h11's buffer
        self._handle_events()

    def _send_error(self, status: int, message: str) -> None:
        response = error_response(message, status)
        response.set_header("Connection", "close")

        if self._conn.our_state in (h11.IDLE, h11.SEND_RESPONSE):
            headers = [(name.encode("latin-1"), value.encode("latin-1")) for name, value in response.headers.items()]
            headers.append((b"content-length", str(len(response.body)).encode("ascii")))
            try:
                output = self._conn.send(h11.Response(status_code=status, headers=headers))
                output += self._conn.send(h11.Data(data=response.body))
                output += self._conn.send(h11.EndOfMessage())
                self._transport.write(output)
            except h11.LocalProtocolError:
                pass

        self._transport.close()

    def _start_headers_timer(self) -> None:
        self._cancel_headers_timer()
        self._headers_timer = self._loop.call_later(
            self._config.headers_timeout, self._on_timeout, "headers"
        )

    def _cancel_headers_timer(self) -> None:
        if self._headers_timer is not None:
            self._headers_timer.cancel()
            self._headers_timer = None

    def _start_keep_alive_timer(self) -> None:
        self._cancel_keep_alive_timer()
        self._keep_alive_timer = self._loop.call_later(
            self._config.keep_alive_timeout, self._on_timeout, "keep-alive"
        )

    def _cancel_keep_alive_timer(self) -> None:
        if self._keep_alive_timer is not None:
            self._keep_alive_timer.cancel()
            self._keep_alive_timer = None

    def _cancel_timers(self) -> None:
        self._cancel_headers_timer()
        self._cancel_keep_alive_timer()

    def _on_timeout(self, kind: str) -> None:
        self._logger.debug(f"Closing {self.conn_id}: {kind} timeout")
        self._headers_timer = None
        self._keep_alive_timer = None
        if not self._transport.is_closing():
            self._transport.close()

import asyncio

from kiln.bootstrap.config.settings import Settings

REQUIRED_ENV = {
    "PORT": "8000",
    "APP_SECRET": "secret",
    "JWT_EXPIRES_IN": "1d",
    "PG_HOST": "db.local",
    "PG_PORT": "5432",
    "PG_USER": "kiln",
    "PG_PASSWORD": "kiln",
    "PG_DATABASE": "kiln",
}


class FakeConnection:
    def __init__(self, pool: "FakePool") -> None:
        self._pool = pool

    async def fetch(self, sql: str, *params):
        self._pool.statements.append((sql, params))
        await asyncio.sleep(0)
        if self._pool.fail_queries:
            raise RuntimeError(f"syntax error in {sql!r}")
        return [{"value": 1}]


class _Acquire:
    def __init__(self, pool: "FakePool") -> None:
        self._pool = pool

    async def __aenter__(self) -> FakeConnection:
        if self._pool.closed:
            raise RuntimeError("pool is closed")
        if self._pool.fail_acquire:
            raise ConnectionRefusedError("connection refused")
        self._pool.available -= 1
        return FakeConnection(self._pool)

    async def __aexit__(self, *exc) -> bool:
        self._pool.available += 1
        return False


class FakePool:
    def __init__(self, size: int = 10, fail_acquire: bool = False, fail_close: bool = False) -> None:
        self.size = size
        self.available = size
        self.fail_acquire = fail_acquire
        self.fail_close = fail_close
        self.fail_queries = False
        self.closed = False
        self.statements: list = []

    def acquire(self) -> _Acquire:
        return _Acquire(self)

    async def close(self) -> None:
        await asyncio.sleep(0)
        self.closed = True
        if self.fail_close:
            raise RuntimeError("close failed")


class HangingListener:
    """Stands in for an ``asyncio.Server`` whose connections never drain."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.sockets: list = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        await self.release.wait()


class FakePoolFactory:
    def __init__(self, **pool_kwargs) -> None:
        self.pool_kwargs = pool_kwargs
        self.calls: list[dict] = []
        self.pools: list[FakePool] = []

    async def __call__(self, **kwargs) -> FakePool:
        self.calls.append(kwargs)
        await asyncio.sleep(0)
        pool = FakePool(**self.pool_kwargs)
        self.pools.append(pool)
        return pool

    @property
    def pool(self) -> FakePool:
        return self.pools[-1]


def make_settings(**overrides) -> Settings:
    values = {
        "port": 0,
        "host": "127.0.0.1",
        "app_secret": "secret",
        "jwt_expires_in": "1d",
        "pg_host": "db.local",
        "pg_user": "kiln",
        "pg_password": "kiln",
        "pg_database": "kiln",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


async def http_request(port: int, raw: bytes) -> tuple[int, dict[str, str], bytes]:
    """Send one request with ``Connection: close`` and read the full reply."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        writer.write(raw)
        await writer.drain()
        data = await asyncio.wait_for(reader.read(), timeout=5)
    finally:
        writer.close()
    return parse_response(data)


def parse_response(data: bytes) -> tuple[int, dict[str, str], bytes]:
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return status, headers, body


async def wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)

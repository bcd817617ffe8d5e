import argparse
import asyncio
import gzip
import json
import logging
import os
import signal

import pytest

from kiln.bootstrap.builder import ContextBuilder
from kiln.bootstrap.main import configure, entrypoint, serve
from kiln.core.exception import ConfigError
from kiln.core.model.state import ServerPhase
from kiln.core.utils.log import clear_history, get_history

from support import FakePoolFactory, HangingListener, http_request, make_settings, wait_until


def build(pool_factory: FakePoolFactory, **overrides):
    return ContextBuilder(make_settings(**overrides), pool_factory=pool_factory).build(asyncio.get_running_loop())


@pytest.mark.ut
@pytest.mark.asyncio
async def test_serve_exits_zero_after_signal(pool_factory, caplog):
    caplog.set_level(logging.INFO)
    context = build(pool_factory)
    task = asyncio.create_task(serve(context))
    await wait_until(lambda: context.server.state.phase is ServerPhase.LISTENING)

    os.kill(os.getpid(), signal.SIGTERM)

    assert await asyncio.wait_for(task, timeout=5) == 0
    assert context.server.state.phase is ServerPhase.STOPPED
    assert pool_factory.pool.closed
    assert "SIGTERM received. Starting graceful shutdown..." in caplog.text


@pytest.mark.ut
@pytest.mark.asyncio
async def test_serve_exits_zero_after_unhandled_loop_error(pool_factory, caplog):
    caplog.set_level(logging.INFO)
    context = build(pool_factory)
    loop = asyncio.get_running_loop()
    previous = loop.get_exception_handler()
    task = asyncio.create_task(serve(context))
    await wait_until(lambda: context.server.state.phase is ServerPhase.LISTENING)

    loop.call_exception_handler({"message": "Task exception was never retrieved", "exception": RuntimeError("lost")})

    assert await asyncio.wait_for(task, timeout=5) == 0
    assert "UNHANDLED_REJECTION received" in caplog.text
    assert loop.get_exception_handler() is previous


@pytest.mark.ut
@pytest.mark.asyncio
async def test_serve_exits_one_when_start_fails():
    factory = FakePoolFactory(fail_acquire=True)
    context = build(factory)

    assert await asyncio.wait_for(serve(context), timeout=5) == 1
    assert context.server.state.phase is ServerPhase.UNSTARTED
    assert factory.pool.closed


@pytest.mark.ut
@pytest.mark.asyncio
async def test_serve_exits_one_when_listener_hangs(pool_factory):
    context = build(pool_factory, shutdown_timeout=0.1)
    server = context.server
    task = asyncio.create_task(serve(context))
    await wait_until(lambda: server.state.phase is ServerPhase.LISTENING)

    listener = server._server
    hanging = HangingListener()
    server._server = hanging
    os.kill(os.getpid(), signal.SIGINT)

    try:
        assert await asyncio.wait_for(task, timeout=5) == 1
        assert hanging.closed
        # the pool stage never ran
        assert context.database.initialized
    finally:
        hanging.release.set()
        listener.close()
        await listener.wait_closed()
        await context.database.close()


@pytest.mark.ut
@pytest.mark.asyncio
async def test_serve_end_to_end(pool_factory):
    context = build(pool_factory)
    server = context.server
    task = asyncio.create_task(serve(context))
    await wait_until(lambda: server.state.phase is ServerPhase.LISTENING)

    status, headers, body = await http_request(
        server.port,
        b"GET / HTTP/1.1\r\nHost: test\r\nAccept-Encoding: gzip, deflate\r\nConnection: close\r\n\r\n",
    )
    os.kill(os.getpid(), signal.SIGTERM)

    assert await asyncio.wait_for(task, timeout=5) == 0
    assert status == 200
    assert headers["content-encoding"] == "gzip"
    assert "x-powered-by" not in headers
    assert json.loads(gzip.decompress(body)) == {"success": True, "message": "kiln is running"}


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    clear_history()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.ut
def test_entrypoint_exits_one_on_missing_configuration(env, monkeypatch, tmp_path, root_logger):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("sys.argv", ["kiln"])
    monkeypatch.delenv("APP_SECRET")
    monkeypatch.delenv("PG_USER")

    with pytest.raises(SystemExit) as exc_info:
        entrypoint()

    assert exc_info.value.code == 1
    assert any("Missing required environment variables: APP_SECRET, PG_USER" in line for line in get_history())


@pytest.mark.ut
def test_configure_reads_log_level_from_env_file(env, monkeypatch, tmp_path, root_logger):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    env_file = tmp_path / "service.env"
    env_file.write_text("LOG_LEVEL=debug\n")

    settings = configure(argparse.Namespace(env_file=str(env_file), log_level=None))

    assert settings.log_level == "DEBUG"
    assert root_logger.level == logging.DEBUG


@pytest.mark.ut
def test_configure_prefers_cli_log_level(env, monkeypatch, tmp_path, root_logger):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    configure(argparse.Namespace(env_file=None, log_level="ERROR"))

    assert root_logger.level == logging.ERROR


@pytest.mark.ut
def test_configure_rejects_unknown_log_level(env, monkeypatch, tmp_path, root_logger):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_LEVEL", "verbose")

    with pytest.raises(ConfigError, match="Invalid configuration: LOG_LEVEL"):
        configure(argparse.Namespace(env_file=None, log_level=None))

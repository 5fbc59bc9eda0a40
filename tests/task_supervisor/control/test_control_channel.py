from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import anyio
import pytest

from task_supervisor.config import SupervisorConfig, WorkerConfig
from task_supervisor.control import (
    ConnectionTimeout,
    Method,
    ProtocolError,
    connect_to_worker,
)
from task_supervisor.control.schema import ContextList
from task_supervisor.control.server import ControlServer
from task_supervisor.model import TaskResult
from task_supervisor.ports import find_available_port

# generous, a loaded CI box can be slow to accept
PATIENT = SupervisorConfig(connect_timeout=timedelta(seconds=10))


@asynccontextmanager
async def serving(server: ControlServer) -> AsyncGenerator[int]:
    port = await find_available_port(21000)
    async with anyio.create_task_group() as tg:
        tg.start_soon(server.serve, port)
        yield port
        tg.cancel_scope.cancel()


async def answer() -> dict[str, int]:
    return {"answer": 42}


@pytest.mark.anyio
class TestHandshake:
    async def test_connects_to_ready_worker(self):
        server = ControlServer()
        server.register(answer)

        async with serving(server) as port:
            context = await connect_to_worker(port, config=PATIENT)
            try:
                assert context.info == server.context
            finally:
                await context.aclose()

    async def test_worker_without_task_never_becomes_ready(self):
        config = SupervisorConfig(connect_timeout=timedelta(milliseconds=600))

        async with serving(ControlServer()) as port:
            with pytest.raises(ConnectionTimeout):
                await connect_to_worker(port, config=config)

    async def test_times_out_when_nothing_listens(self):
        port = await find_available_port(22000)
        started = time.monotonic()

        with pytest.raises(ConnectionTimeout) as exc_info:
            await connect_to_worker(port)

        elapsed = time.monotonic() - started
        assert 2 <= elapsed < 4
        assert exc_info.value.duration == timedelta(seconds=2)
        assert "Failed to connect to the task runner process" in str(exc_info.value)


@pytest.mark.anyio
class TestRunTask:
    async def _run(self, server: ControlServer) -> object:
        async with serving(server) as port:
            context = await connect_to_worker(port, config=PATIENT)
            try:
                return await context.invoke(Method.RUN_TASK)
            finally:
                await context.aclose()

    async def test_async_task(self):
        server = ControlServer()
        server.register(answer)

        payload = await self._run(server)

        assert payload == {"success": True, "data": {"answer": 42}, "benchmarkScoreKeys": []}
        assert server.finished

    async def test_sync_task_returning_result(self):
        server = ControlServer()
        server.register(lambda: TaskResult(succeeded=False, reason="no device"))

        payload = await self._run(server)

        assert TaskResult.parse(payload) == TaskResult.failure("no device")

    async def test_task_exception_is_reported(self):
        async def explode() -> dict[str, int]:
            raise RuntimeError("kaboom")

        server = ControlServer()
        server.register(explode)

        result = TaskResult.parse(await self._run(server))

        assert result.failed
        assert "kaboom" in result.reason

    async def test_task_timeout_is_reported(self):
        async def hang() -> dict[str, int]:
            await anyio.sleep(30)
            return {}

        server = ControlServer(config=WorkerConfig(task_timeout=timedelta(milliseconds=200)))
        server.register(hang)

        result = TaskResult.parse(await self._run(server))

        assert result.failed
        assert "timed out" in result.reason


@pytest.mark.anyio
class TestProtocolErrors:
    async def test_unknown_method(self):
        server = ControlServer()
        server.register(answer)

        async with serving(server) as port:
            context = await connect_to_worker(port, config=PATIENT)
            try:
                with pytest.raises(ProtocolError, match="Unknown method"):
                    await context.invoke("reboot")
            finally:
                await context.aclose()

    async def test_unknown_context(self):
        server = ControlServer()
        server.register(answer)

        async with serving(server) as port:
            context = await connect_to_worker(port, config=PATIENT)
            try:
                with pytest.raises(ProtocolError, match="Unknown context"):
                    await context.client.call(Method.RUN_TASK, contextId="elsewhere")
                assert not server.finished
            finally:
                await context.aclose()

    async def test_task_runs_once(self):
        server = ControlServer()
        server.register(answer)

        async with serving(server) as port:
            context = await connect_to_worker(port, config=PATIENT)
            try:
                await context.invoke(Method.RUN_TASK)
                with pytest.raises(ProtocolError):
                    await context.invoke(Method.RUN_TASK)
            finally:
                await context.aclose()

    async def test_unserializable_result_is_an_internal_error(self):
        async def opaque() -> dict[str, object]:
            return {"handle": object()}

        server = ControlServer()
        server.register(opaque)

        async with serving(server) as port:
            context = await connect_to_worker(port, config=PATIENT)
            try:
                with pytest.raises(ProtocolError, match="Unserializable result"):
                    await context.invoke(Method.RUN_TASK)
            finally:
                await context.aclose()


@pytest.mark.anyio
class TestPauseOnExit:
    async def _serve(self, server: ControlServer, port: int, returned: anyio.Event) -> None:
        await server.serve(port, pause_on_exit=True)
        returned.set()

    async def test_keeps_serving_until_peer_disconnects(self):
        server = ControlServer()
        server.register(answer)
        port = await find_available_port(21000)
        returned = anyio.Event()

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._serve, server, port, returned)
            context = await connect_to_worker(port, config=PATIENT)
            await context.invoke(Method.RUN_TASK)
            await anyio.sleep(0.2)

            assert server.finished
            assert not returned.is_set()
            listing = await context.client.call(Method.LIST_CONTEXTS)
            assert ContextList.model_validate(listing).contexts == [server.context]
            assert server.connections == 1

            await context.aclose()
            with anyio.fail_after(5):
                await returned.wait()

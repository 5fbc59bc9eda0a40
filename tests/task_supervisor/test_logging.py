from __future__ import annotations

from collections.abc import Iterator

import pytest
from loguru import logger

from task_supervisor.logging import setup_logging
from task_supervisor.logs import LogRelay


@pytest.fixture
def records() -> Iterator[list[str]]:
    setup_logging("DEBUG")
    messages: list[str] = []
    handler_id = logger.add(
        messages.append, format="{extra[task]} [{extra[source]}] {message}"
    )
    yield messages
    logger.remove(handler_id)
    logger.disable("task_supervisor")


class NullSink:
    async def upload_log_chunk(self, task_id: str, chunk: str) -> None:
        pass


@pytest.mark.anyio
async def test_relayed_output_is_tagged_with_task_and_source(records):
    relay = LogRelay("smoke", NullSink())

    await relay.emit("hello\n")

    assert "smoke [task runner] hello\n" in records


def test_unbound_records_get_defaults(records):
    logger.info("plain")

    assert "- [supervisor] plain\n" in records

from __future__ import annotations

import pytest


@pytest.fixture
def anyio_backend() -> str:
    # websockets runs on asyncio only
    return "asyncio"

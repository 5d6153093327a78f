from __future__ import annotations

import logging

import pytest_asyncio
from aiohttp.test_utils import TestServer

from fake_renderer import FakeRenderer


def pytest_configure(config):
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@pytest_asyncio.fixture
async def session():
    import dlnacast.utils

    yield dlnacast.utils.g.create_session()

    await dlnacast.utils.g.close()


@pytest_asyncio.fixture
async def renderer():
    fake = FakeRenderer()
    server = TestServer(fake.app())
    await server.start_server()
    fake.server = server

    yield fake

    await server.close()

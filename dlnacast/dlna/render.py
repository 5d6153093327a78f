from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator

import aiohttp

from .. import runtime
from ..exceptions import DeviceDescriptionError, NoControlServiceError
from ..settings import settings
from ..utils import AV_TRANSPORT, g
from . import transport
from .device import Device, Service, resolve_device
from .discover import ssdp_search
from .metadata import MediaSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Render:
    """A renderer's device together with its AVTransport service.

    Holds no session state, so one instance can be reused for any number of
    casts and polls, from any thread.
    """

    device: Device
    service: Service

    @classmethod
    def from_device(cls, device: Device, service_type: str = AV_TRANSPORT) -> Render:
        logger.debug("Looking up %s on %r", service_type, device)
        service = device.find_service(service_type)
        if service is None:
            raise NoControlServiceError(device, service_type)
        return cls(device=device, service=service)

    @property
    def udn(self) -> str:
        return self.device.udn

    def display_name(self) -> str:
        return settings.dlna_name_alias(
            self.device.udn, self.device.friendly_name, self.device.ip
        )

    def full_name(self) -> str:
        return (
            f"[{self.device.device_type}][{self.service.service_type}] "
            f"{self.device.friendly_name} @ {self.device.url}"
        )

    def play(self, media: MediaSource | str, timeout: float | None = None) -> Render:
        return runtime.run(transport.play(self, media), timeout=timeout)

    def is_stopped(self, timeout: float | None = None, **poll_options) -> bool:
        return runtime.run(transport.is_stopped(self, **poll_options), timeout=timeout)

    def __str__(self):
        return self.full_name()

    def __repr__(self):
        return f"<Render {self.device.friendly_name} {self.device.ip} {self.device.udn}>"

    def __eq__(self, other):
        if not isinstance(other, Render):
            return NotImplemented
        return self.udn == other.udn

    def __hash__(self):
        return hash(self.udn)


async def _locations(
    search_target: str,
    timeout: float,
    max_responses: int | None,
    ttl: int | None,
) -> AsyncIterator[str]:
    if settings.location_urls:
        for location in settings.location_urls[:max_responses]:
            yield location
        return

    async with aclosing(
        ssdp_search(search_target, timeout, max_responses=max_responses, ttl=ttl)
    ) as responses:
        async for response in responses:
            logger.debug("SSDP reply from %s: %s", response.addr, response.location)
            yield response.location


async def _resolve_render(
    location: str, search_target: str, client: aiohttp.ClientSession
) -> Render | None:
    try:
        device = await resolve_device(location, client=client)
    except DeviceDescriptionError as exc:
        logger.warning("Skipping %s: %s", location, exc)
        return None

    try:
        render = Render.from_device(device, search_target)
    except NoControlServiceError as exc:
        logger.warning("Skipping %s: no playback-control capability (%s)", location, exc)
        return None

    logger.info("Found renderer %s", render)
    return render


async def discover_renders(
    timeout: float | None = None,
    max_responses: int | None = None,
    ttl: int | None = None,
    search_target: str = AV_TRANSPORT,
    client: aiohttp.ClientSession | None = None,
) -> list[Render]:
    if timeout is None:
        timeout = settings.discover_timeout
    if max_responses is None:
        max_responses = settings.max_responses
    if client is None:
        client = g.get_session()

    logger.info("Searching for renderers, please wait %s seconds...", timeout)

    seen_locations: set[str] = set()
    tasks: list[asyncio.Task[Render | None]] = []
    try:
        async with aclosing(
            _locations(search_target, timeout, max_responses, ttl)
        ) as locations:
            async for location in locations:
                if location in seen_locations:
                    continue
                seen_locations.add(location)
                tasks.append(
                    asyncio.create_task(_resolve_render(location, search_target, client))
                )
        results = await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    renders: list[Render] = []
    seen_udns: set[str] = set()
    for render in results:
        if render is None:
            continue
        if render.udn in seen_udns:
            logger.debug("Duplicate reply from %s", render.udn)
            continue
        seen_udns.add(render.udn)
        renders.append(render)
    return renders

from __future__ import annotations

import asyncio
import logging
import socket
from asyncio.protocols import DatagramProtocol
from asyncio.transports import DatagramTransport
from dataclasses import dataclass, field
from typing import AsyncIterator

from ..exceptions import DiscoveryTransportError
from ..settings import settings

logger = logging.getLogger(__name__)

SSDP_BROADCAST_PORT = 1900
SSDP_BROADCAST_ADDR = "239.255.255.250"

SSDP_MX_MIN = 1
SSDP_MX_MAX = 5

SEND_COUNT = 2


def search_message(search_target: str, mx: int) -> bytes:
    params = [
        "M-SEARCH * HTTP/1.1",
        f"HOST: {SSDP_BROADCAST_ADDR}:{SSDP_BROADCAST_PORT}",
        'MAN: "ssdp:discover"',
        f"MX: {mx}",
        f"ST: {search_target}",
        "",
        "",
    ]
    return "\r\n".join(params).encode("UTF-8")


def mx_for_timeout(timeout: float) -> int:
    return max(SSDP_MX_MIN, min(SSDP_MX_MAX, int(timeout)))


@dataclass(frozen=True)
class SsdpResponse:
    location: str
    headers: dict[str, str]
    addr: tuple[str, int] | None = None

    @property
    def usn(self) -> str | None:
        return self.headers.get("usn")

    @property
    def st(self) -> str | None:
        return self.headers.get("st")

    @property
    def server(self) -> str | None:
        return self.headers.get("server")


def parse_ssdp_response(
    data: bytes, addr: tuple[str, int] | None = None
) -> SsdpResponse:
    """Raises ValueError for anything but a 200 search reply with a location."""
    lines = data.decode("UTF-8").split("\r\n")
    status = lines[0].split(None, 2)
    if len(status) < 2 or not status[0].upper().startswith("HTTP/") or status[1] != "200":
        raise ValueError(f"not a search response: {lines[0]!r}")

    info = [line.split(":", 1) for line in lines[1:]]
    headers = dict(
        [(a[0].strip().lower(), a[1].strip()) for a in info if len(a) >= 2]
    )
    location = headers.get("location")
    if not location:
        raise ValueError("response has no LOCATION header")
    return SsdpResponse(location=location, headers=headers, addr=addr)


@dataclass
class SsdpSearchProtocol(DatagramProtocol):
    queue: asyncio.Queue[SsdpResponse]
    transport: DatagramTransport | None = field(default=None, init=False)

    def connection_made(self, transport: DatagramTransport):
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple[str, int]):
        try:
            response = parse_ssdp_response(data, addr)
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("Dropping SSDP datagram from %s: %s", addr[0], exc)
            return
        self.queue.put_nowait(response)

    def error_received(self, exc: Exception):
        logger.warning("SSDP socket error: %s", exc)

    def connection_lost(self, exc: Exception | None):
        if exc:
            logger.warning("SSDP socket closed: %s", exc)
        self.transport = None


def init_socket(ttl: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
        sock.bind(("", 0))
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


async def ssdp_search(
    search_target: str,
    timeout: float,
    max_responses: int | None = None,
    ttl: int | None = None,
) -> AsyncIterator[SsdpResponse]:
    """Yield search replies until ``timeout`` elapses or ``max_responses`` arrive."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[SsdpResponse] = asyncio.Queue()
    try:
        sock = init_socket(settings.ssdp_ttl if ttl is None else ttl)
    except OSError as exc:
        raise DiscoveryTransportError(f"cannot open SSDP socket: {exc}") from exc
    try:
        transport, _ = await loop.create_datagram_endpoint(
            lambda: SsdpSearchProtocol(queue), sock=sock
        )
    except OSError as exc:
        sock.close()
        raise DiscoveryTransportError(f"cannot open SSDP endpoint: {exc}") from exc

    try:
        message = search_message(search_target, mx_for_timeout(timeout))
        for _ in range(SEND_COUNT):
            try:
                transport.sendto(message, (SSDP_BROADCAST_ADDR, SSDP_BROADCAST_PORT))
            except OSError as exc:
                raise DiscoveryTransportError(f"cannot send M-SEARCH: {exc}") from exc

        deadline = loop.time() + timeout
        count = 0
        while max_responses is None or count < max_responses:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                response = await asyncio.wait_for(queue.get(), remaining)
            except asyncio.TimeoutError:
                break
            count += 1
            yield response
    finally:
        transport.close()

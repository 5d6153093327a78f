from __future__ import annotations

import asyncio

import pytest

from dlnacast.dlna import discover, render
from dlnacast.dlna.discover import (
    SsdpResponse,
    SsdpSearchProtocol,
    mx_for_timeout,
    parse_ssdp_response,
    search_message,
)
from dlnacast.exceptions import DiscoveryTransportError
from dlnacast.settings import settings
from fake_renderer import AVT, RENDERER_UDN

SEARCH_REPLY = (
    b"HTTP/1.1 200 OK\r\n"
    b"CACHE-CONTROL: max-age=1800\r\n"
    b"EXT:\r\n"
    b"LOCATION: http://192.168.1.25:46047/desc.xml\r\n"
    b"SERVER: Linux/4.9 UPnP/1.0 Renderer/1.0\r\n"
    b"ST: urn:schemas-upnp-org:service:AVTransport:1\r\n"
    b"USN: uuid:abc::urn:schemas-upnp-org:service:AVTransport:1\r\n"
    b"\r\n"
)


def test_search_message():
    message = search_message(AVT, 3).decode()

    assert message.startswith("M-SEARCH * HTTP/1.1\r\n")
    assert "HOST: 239.255.255.250:1900\r\n" in message
    assert 'MAN: "ssdp:discover"\r\n' in message
    assert "MX: 3\r\n" in message
    assert f"ST: {AVT}\r\n" in message
    assert message.endswith("\r\n\r\n")


@pytest.mark.parametrize("timeout, mx", [(0.5, 1), (3, 3), (5, 5), (30, 5)])
def test_mx_for_timeout(timeout, mx):
    assert mx_for_timeout(timeout) == mx


def test_parse_ssdp_response():
    response = parse_ssdp_response(SEARCH_REPLY, ("192.168.1.25", 1900))

    assert response.location == "http://192.168.1.25:46047/desc.xml"
    assert response.st == AVT
    assert response.usn.startswith("uuid:abc")
    assert response.server == "Linux/4.9 UPnP/1.0 Renderer/1.0"
    assert response.headers["ext"] == ""


@pytest.mark.parametrize(
    "data",
    [
        b"NOTIFY * HTTP/1.1\r\nLOCATION: http://h/desc.xml\r\n\r\n",
        b"HTTP/1.1 404 Not Found\r\nLOCATION: http://h/desc.xml\r\n\r\n",
        b"HTTP/1.1 200 OK\r\nST: upnp:rootdevice\r\n\r\n",
        b"garbage",
    ],
)
def test_parse_ssdp_response_rejects(data):
    with pytest.raises(ValueError):
        parse_ssdp_response(data)


@pytest.mark.asyncio
async def test_protocol_drops_malformed_datagrams():
    queue = asyncio.Queue()
    protocol = SsdpSearchProtocol(queue)

    protocol.datagram_received(b"\xff\xfe junk", ("10.0.0.9", 1900))
    protocol.datagram_received(b"HTTP/1.1 200 OK\r\n\r\n", ("10.0.0.9", 1900))
    protocol.datagram_received(SEARCH_REPLY, ("192.168.1.25", 1900))

    assert queue.qsize() == 1
    assert (await queue.get()).addr == ("192.168.1.25", 1900)


def fake_search(locations, delay=0.0):
    async def ssdp_search(search_target, timeout, max_responses=None, ttl=None):
        for count, location in enumerate(locations):
            if max_responses is not None and count >= max_responses:
                return
            await asyncio.sleep(delay)
            yield SsdpResponse(location=location, headers={"st": search_target})

    return ssdp_search


@pytest.mark.asyncio
async def test_discover_renders(renderer, session, monkeypatch):
    paths = [
        "/renderer.xml",
        "/speaker.xml",
        "/broken.xml",
        "/renderer.xml",
        "/renderer-again.xml",
        "/missing.xml",
        "/nested.xml",
        "/renderer-v2.xml",
    ]
    monkeypatch.setattr(render, "ssdp_search", fake_search([renderer.url(p) for p in paths]))

    renders = await render.discover_renders(timeout=5, client=session)

    assert [r.device.friendly_name for r in renders] == ["Living Room TV", "Media Hub", "Bedroom TV"]
    assert renders[0].udn == RENDERER_UDN
    assert all(r.device.find_service(AVT) is not None for r in renders)


@pytest.mark.asyncio
async def test_discover_single_renderer_full_name(renderer, session, monkeypatch):
    monkeypatch.setattr(render, "ssdp_search", fake_search([renderer.url("/renderer.xml")]))

    renders = await render.discover_renders(timeout=5, client=session)

    assert len(renders) == 1
    assert "Living Room TV" in renders[0].full_name()
    assert AVT in renders[0].full_name()
    assert str(renders[0]) == renders[0].full_name()


@pytest.mark.asyncio
async def test_discover_respects_cap(renderer, session, monkeypatch):
    paths = ["/renderer.xml", "/nested.xml", "/renderer-v2.xml"]
    monkeypatch.setattr(render, "ssdp_search", fake_search([renderer.url(p) for p in paths]))

    renders = await render.discover_renders(timeout=5, max_responses=2, client=session)

    assert len(renders) <= 2
    assert [r.device.friendly_name for r in renders] == ["Living Room TV", "Media Hub"]


@pytest.mark.asyncio
async def test_discover_nothing(session, monkeypatch):
    monkeypatch.setattr(render, "ssdp_search", fake_search([]))

    assert await render.discover_renders(timeout=1, client=session) == []


@pytest.mark.asyncio
async def test_discover_from_configured_locations(renderer, session, monkeypatch):
    monkeypatch.setattr(
        settings,
        "location_url",
        f"{renderer.url('/speaker.xml')},{renderer.url('/renderer.xml')}",
    )

    async def no_multicast(*args, **kwargs):
        raise AssertionError("multicast search should be skipped")
        yield

    monkeypatch.setattr(render, "ssdp_search", no_multicast)

    renders = await render.discover_renders(timeout=1, client=session)

    assert [r.udn for r in renders] == [RENDERER_UDN]


@pytest.mark.asyncio
async def test_ssdp_search_times_out_without_replies(monkeypatch):
    sent = []

    class Transport:
        def sendto(self, data, addr):
            sent.append((data, addr))

        def close(self):
            sent.append("closed")

    async def create_datagram_endpoint(protocol_factory, sock):
        sock.close()
        return Transport(), protocol_factory()

    loop = asyncio.get_running_loop()
    monkeypatch.setattr(loop, "create_datagram_endpoint", create_datagram_endpoint)

    responses = [r async for r in discover.ssdp_search(AVT, timeout=0.1, ttl=2)]

    assert responses == []
    assert sent[0][1] == ("239.255.255.250", 1900)
    assert len(sent) == discover.SEND_COUNT + 1
    assert sent[-1] == "closed"


@pytest.mark.asyncio
async def test_ssdp_search_stops_at_max_responses(monkeypatch):
    closed = []

    class Transport:
        def sendto(self, data, addr):
            pass

        def close(self):
            closed.append(True)

    async def create_datagram_endpoint(protocol_factory, sock):
        sock.close()
        protocol = protocol_factory()
        for n in range(3):
            protocol.datagram_received(SEARCH_REPLY, (f"192.168.1.{25 + n}", 1900))
        return Transport(), protocol

    loop = asyncio.get_running_loop()
    monkeypatch.setattr(loop, "create_datagram_endpoint", create_datagram_endpoint)

    responses = [r async for r in discover.ssdp_search(AVT, timeout=1, max_responses=2)]

    assert [r.addr for r in responses] == [("192.168.1.25", 1900), ("192.168.1.26", 1900)]
    assert closed == [True]


@pytest.mark.asyncio
async def test_ssdp_search_endpoint_failure(monkeypatch):
    sockets = []

    async def create_datagram_endpoint(protocol_factory, sock):
        sockets.append(sock)
        raise OSError("Network is unreachable")

    loop = asyncio.get_running_loop()
    monkeypatch.setattr(loop, "create_datagram_endpoint", create_datagram_endpoint)

    with pytest.raises(DiscoveryTransportError):
        [r async for r in discover.ssdp_search(AVT, timeout=1)]

    assert sockets[0].fileno() == -1


@pytest.mark.asyncio
async def test_discover_skips_undecodable_description(renderer, session, monkeypatch):
    paths = ["/garbled.xml", "/renderer.xml"]
    monkeypatch.setattr(render, "ssdp_search", fake_search([renderer.url(p) for p in paths]))

    renders = await render.discover_renders(timeout=5, client=session)

    assert [r.device.friendly_name for r in renders] == ["Living Room TV"]

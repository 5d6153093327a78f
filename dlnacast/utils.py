from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import overload
from weakref import WeakKeyDictionary

import aiohttp
import xmltodict
from dotmap import DotMap

from .settings import settings

logger = logging.getLogger(__name__)

UPNP_AVT_SERVICE_TYPE_PREFIX = "urn:schemas-upnp-org:service:AVTransport"
UPNP_AVT_SERVICE_TYPE = UPNP_AVT_SERVICE_TYPE_PREFIX + ":{version}"
AV_TRANSPORT = UPNP_AVT_SERVICE_TYPE.format(version=1)

XML_NAMESPACES = {
    "urn:schemas-upnp-org:device-1-0": None,
    "urn:schemas-upnp-org:control-1-0": None,
    "http://schemas.xmlsoap.org/soap/envelope/": None,
    "urn:schemas-upnp-org:metadata-1-0/AVT/": None,
}


class ClientSession(aiohttp.ClientSession):
    verify_ssl: bool

    def __init__(self, *args, verify_ssl: bool, **kwargs):
        self.verify_ssl = verify_ssl
        super().__init__(*args, **kwargs)

    async def _request(self, *args, **kwargs):
        if "ssl" not in kwargs:
            kwargs["ssl"] = self.verify_ssl
        return await super()._request(*args, **kwargs)


@dataclass
class G:
    """One HTTP session per event loop; sessions can't cross loops."""

    sessions: WeakKeyDictionary[asyncio.AbstractEventLoop, aiohttp.ClientSession] = (
        field(default_factory=WeakKeyDictionary, init=False)
    )
    verify_ssl: bool = field(default=settings.verify_ssl, init=False)

    @property
    def http(self) -> aiohttp.ClientSession | None:
        return self.sessions.get(asyncio.get_running_loop())

    def create_session(self) -> aiohttp.ClientSession:
        session = ClientSession(
            verify_ssl=self.verify_ssl,
            timeout=aiohttp.ClientTimeout(total=settings.http_timeout),
            headers={"User-Agent": settings.user_agent},
        )
        self.sessions[asyncio.get_running_loop()] = session
        return session

    def get_session(self) -> aiohttp.ClientSession:
        session = self.http
        if session is None or session.closed:
            return self.create_session()
        return session

    async def close(self):
        session = self.sessions.pop(asyncio.get_running_loop(), None)
        if session is not None and not session.closed:
            await session.close()


g = G()


@overload
def xml2dict(
    xml: str | bytes,
    namespaces: dict[str, str | None] | None = ...,
    as_dotmap: bool = True,
) -> DotMap:
    ...


@overload
def xml2dict(
    xml: str | bytes,
    namespaces: dict[str, str | None] | None = ...,
    as_dotmap: bool = False,
) -> dict:
    ...


def xml2dict(
    xml: str | bytes,
    namespaces: dict[str, str | None] | None = None,
    as_dotmap: bool = True,
) -> DotMap | dict:
    if not isinstance(xml, str):
        xml = xml.decode()

    parsed = xmltodict.parse(
        xml,
        process_namespaces=True,
        namespaces={**XML_NAMESPACES, **(namespaces or {})},
    )
    if as_dotmap:
        return DotMap(parsed)
    else:
        return parsed


def as_list(value) -> list:
    """xmltodict yields a single child as a dict and repeated ones as a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def element_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return str(value.get("#text") or "")
    return str(value)


def child(node, *path: str):
    """Walk ``path`` through nested dicts; None as soon as a step is missing."""
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node

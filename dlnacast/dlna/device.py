from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlparse
from xml.parsers.expat import ExpatError

import aiohttp

from ..exceptions import DeviceDescriptionError
from ..utils import as_list, child, element_text, g, xml2dict

if TYPE_CHECKING:
    from .models.root import DiscoveredDevice, Root
    from .models.root import Service as ServiceDict

logger = logging.getLogger(__name__)


def split_service_type(service_type: str) -> tuple[str, int | None]:
    """Split ``urn:...:AVTransport:1`` into its prefix and numeric version."""
    prefix, _, suffix = service_type.rpartition(":")
    if not prefix or not suffix.isdigit():
        return service_type, None
    return prefix, int(suffix)


def service_type_matches(service_type: str, target: str) -> bool:
    prefix, version = split_service_type(service_type)
    target_prefix, target_version = split_service_type(target)
    if prefix != target_prefix:
        return False
    if version is None or target_version is None:
        return service_type == target
    return version >= target_version


@dataclass(frozen=True)
class Service:
    service_type: str
    control_url: str
    service_id: str = ""
    scpd_url: str = ""
    event_url: str = ""

    @classmethod
    def from_dict(cls, service_dict: ServiceDict, base_url: str, location: str):
        service_type = element_text(service_dict.get("serviceType")).strip()
        control_url = element_text(service_dict.get("controlURL")).strip()
        if not service_type or not control_url:
            raise DeviceDescriptionError(
                location, "service without serviceType or controlURL"
            )
        return cls(
            service_type=service_type,
            control_url=urljoin(base_url, control_url),
            service_id=element_text(service_dict.get("serviceId")).strip(),
            scpd_url=urljoin(base_url, element_text(service_dict.get("SCPDURL")).strip()),
            event_url=urljoin(
                base_url, element_text(service_dict.get("eventSubURL")).strip()
            ),
        )


@dataclass(frozen=True)
class Device:
    udn: str
    friendly_name: str
    device_type: str
    url: str
    manufacturer: str = ""
    model_name: str = ""
    services: tuple[Service, ...] = ()
    devices: tuple[Device, ...] = ()

    @property
    def ip(self) -> str | None:
        return urlparse(self.url).hostname

    @classmethod
    def from_dict(cls, info: DiscoveredDevice, base_url: str, location: str) -> Device:
        udn = element_text(info.get("UDN")).strip().removeprefix("uuid:")
        if not udn:
            raise DeviceDescriptionError(location, "device has no UDN")

        return cls(
            udn=udn,
            friendly_name=element_text(info.get("friendlyName")).strip() or udn,
            device_type=element_text(info.get("deviceType")).strip(),
            url=location,
            manufacturer=element_text(info.get("manufacturer")).strip(),
            model_name=element_text(info.get("modelName")).strip(),
            services=tuple(
                Service.from_dict(service, base_url, location)
                for service in as_list(child(info, "serviceList", "service"))
                if isinstance(service, dict)
            ),
            devices=tuple(
                cls.from_dict(device, base_url, location)
                for device in as_list(child(info, "deviceList", "device"))
                if isinstance(device, dict)
            ),
        )

    def find_service(self, service_type: str) -> Service | None:
        """Depth-first: own services first, then embedded devices in order."""
        for service in self.services:
            if service_type_matches(service.service_type, service_type):
                return service
        for device in self.devices:
            if (service := device.find_service(service_type)) is not None:
                return service
        return None

    def __str__(self):
        return self.friendly_name

    def __repr__(self):
        return f"<Device {self.friendly_name} {self.ip} {self.udn}>"


def parse_description(xml: str, location: str) -> Device:
    try:
        info: dict = xml2dict(xml, as_dotmap=False)
    except ExpatError as exc:
        raise DeviceDescriptionError(location, f"invalid XML: {exc}") from exc

    root: Root | None = info.get("root")
    if not isinstance(root, dict) or not isinstance(root.get("device"), dict):
        raise DeviceDescriptionError(location, "no root device element")

    base_url = element_text(root.get("URLBase")).strip() or location
    return Device.from_dict(root["device"], base_url, location)


async def resolve_device(
    location: str, client: aiohttp.ClientSession | None = None
) -> Device:
    if client is None:
        client = g.get_session()

    logger.debug("Fetching device description %s", location)
    try:
        async with client.get(location) as response:
            if not response.ok:
                raise DeviceDescriptionError(location, f"HTTP {response.status}")
            xml = await response.text()
    except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
        raise DeviceDescriptionError(
            location, f"{exc.__class__.__name__} {exc}"
        ) from exc

    return parse_description(xml, location)

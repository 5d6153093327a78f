from __future__ import annotations

from typing import TypedDict


class Service(TypedDict):
    serviceType: str
    serviceId: str
    SCPDURL: str
    controlURL: str
    eventSubURL: str


class ServiceList(TypedDict):
    service: Service | list[Service]


class DeviceList(TypedDict):
    device: DiscoveredDevice | list[DiscoveredDevice]


class DiscoveredDevice(TypedDict, total=False):
    deviceType: str
    friendlyName: str
    manufacturer: str
    modelName: str
    UDN: str
    serviceList: ServiceList | None
    deviceList: DeviceList | None


class Root(TypedDict, total=False):
    specVersion: dict
    URLBase: str
    device: DiscoveredDevice

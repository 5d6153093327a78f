from __future__ import annotations

from .device import Device, Service, resolve_device
from .discover import SsdpResponse, ssdp_search
from .metadata import MediaSource, build_metadata
from .render import Render, discover_renders

__all__ = [
    "Device",
    "MediaSource",
    "Render",
    "Service",
    "SsdpResponse",
    "build_metadata",
    "discover_renders",
    "resolve_device",
    "ssdp_search",
]

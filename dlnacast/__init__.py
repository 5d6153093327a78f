from __future__ import annotations

from . import runtime
from .dlna import MediaSource, Render, discover_renders
from .exceptions import (
    ActionFailureCause,
    ActionInvocationError,
    CastError,
    CastStep,
    DeviceDescriptionError,
    DiscoveryTransportError,
    DlnaCastError,
    NoControlServiceError,
    OperationTimeoutError,
    PollTimeoutError,
)
from .settings import settings

__all__ = [
    "ActionFailureCause",
    "ActionInvocationError",
    "CastError",
    "CastStep",
    "DeviceDescriptionError",
    "DiscoveryTransportError",
    "DlnaCastError",
    "MediaSource",
    "NoControlServiceError",
    "OperationTimeoutError",
    "PollTimeoutError",
    "Render",
    "discover",
    "settings",
]


def discover(
    timeout: float | None = None,
    max_responses: int | None = None,
    ttl: int | None = None,
) -> list[Render]:
    """Search the network for renderers for ``timeout`` seconds and block until done."""
    if timeout is None:
        timeout = settings.discover_timeout
    return runtime.run(
        discover_renders(timeout, max_responses=max_responses, ttl=ttl),
        timeout=timeout + settings.http_timeout,
    )

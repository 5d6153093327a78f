from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .dlna.device import Device


class DlnaCastError(Exception):
    pass


class DiscoveryTransportError(DlnaCastError):
    """The SSDP socket could not be set up; fatal to one discovery call."""


class DeviceDescriptionError(DlnaCastError):
    def __init__(self, location: str, reason: str):
        self.location = location
        self.reason = reason
        super().__init__(f"bad device description at {location}: {reason}")


class NoControlServiceError(DlnaCastError):
    def __init__(self, device: Device, service_type: str):
        self.device = device
        self.service_type = service_type
        super().__init__(
            f"{device.friendly_name} ({device.udn}) has no {service_type} service"
        )


class ActionFailureCause(str, Enum):
    NETWORK = "network"
    STATUS = "status"
    DEVICE_FAULT = "device_fault"
    MALFORMED = "malformed"


class ActionInvocationError(DlnaCastError):
    def __init__(
        self,
        action: str,
        cause: ActionFailureCause,
        detail: str = "",
        status: int | None = None,
        error_code: str | None = None,
    ):
        self.action = action
        self.cause = cause
        self.detail = detail
        self.status = status
        self.error_code = error_code
        message = f"{action} failed ({cause.value})"
        if error_code is not None:
            message += f" UPnP error {error_code}"
        if status is not None:
            message += f" HTTP {status}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class TransientPollError(DlnaCastError):
    """A failed GetTransportInfo attempt; retried by the poller, never raised."""

    def __init__(self, attempt: int, error: ActionInvocationError):
        self.attempt = attempt
        self.error = error
        super().__init__(f"transport state poll attempt {attempt} failed: {error}")


class PollTimeoutError(DlnaCastError):
    def __init__(self, attempts: int, last_error: ActionInvocationError | None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"transport state unavailable after {attempts} attempts: {last_error}"
        )


class CastStep(str, Enum):
    SET_AV_TRANSPORT_URI = "SetAVTransportURISource"
    PLAY = "PlaySource"


class CastError(DlnaCastError):
    def __init__(self, step: CastStep, error: ActionInvocationError):
        self.step = step
        self.error = error
        super().__init__(f"{step.value}: {error}")


class OperationTimeoutError(DlnaCastError, TimeoutError):
    pass

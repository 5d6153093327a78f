from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Mapping, TypeVar
from xml.parsers.expat import ExpatError
from xml.sax.saxutils import escape

import aiohttp
from pydantic import ValidationError

from ..exceptions import ActionFailureCause, ActionInvocationError
from ..settings import settings
from ..utils import child, element_text, g, xml2dict
from .models.action import ActionResponse, ActionResult, EmptyResponse, TransportInfo

if TYPE_CHECKING:
    from dotmap import DotMap

    from .device import Service

logger = logging.getLogger(__name__)

PAYLOAD_FMT = (
    '<?xml version="1.0" encoding="utf-8"?><s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
    's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/"><s:Body><u:{action} xmlns:u="{urn}">'
    "{fields}</u:{action}></s:Body></s:Envelope>"
)

INSTANCE_ID = 0
NORMAL_SPEED = "1"

R = TypeVar("R", bound=ActionResult)


def payload_from_template(
    service_type: str, action: str, data: Mapping[str, object]
) -> str:
    fields = ""
    for tag, value in data.items():
        fields += "<{tag}>{value}</{tag}>".format(
            tag=tag, value=escape(str(value), {'"': "&quot;"})
        )
    return PAYLOAD_FMT.format(action=action, urn=service_type, fields=fields)


def _fault(info: DotMap) -> tuple[str | None, str] | None:
    fault = child(info, "Envelope", "Body", "Fault")
    if not isinstance(fault, dict):
        return None
    code = element_text(child(fault, "detail", "UPnPError", "errorCode")) or None
    description = element_text(
        child(fault, "detail", "UPnPError", "errorDescription")
    ) or element_text(fault.get("faultstring"))
    return code, description


def _response_arguments(info: DotMap, action: str) -> ActionResponse:
    body = child(info, "Envelope", "Body")
    if not isinstance(body, dict):
        raise ValueError("no SOAP body")

    name = f"{action}Response"
    if name in body:
        response = body[name]
    else:
        # reply namespaced under a service type other than the one we called
        matches = [key for key in body if key.endswith(f":{name}")]
        if not matches:
            raise ValueError(f"no {name} element")
        response = body[matches[0]]

    if not isinstance(response, dict):
        return {}
    return {
        key: element_text(value)
        for key, value in response.items()
        if not key.startswith(("@", "#"))
    }


async def invoke(
    service: Service,
    action: str,
    arguments: Mapping[str, object],
    client: aiohttp.ClientSession | None = None,
) -> ActionResponse:
    headers = {
        "Content-Type": 'text/xml; charset="utf-8"',
        "SOAPACTION": f'"{service.service_type}#{action}"',
        "User-Agent": settings.user_agent,
    }
    if client is None:
        client = g.get_session()

    payload = payload_from_template(service.service_type, action, arguments)
    logger.debug("%s -> %s %s", action, service.control_url, payload)

    try:
        async with client.post(
            service.control_url, data=payload.encode(), headers=headers
        ) as response:
            status = response.status
            text = await response.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.error("DLNA %s connection error %s %s", action, exc.__class__.__name__, exc)
        raise ActionInvocationError(
            action, ActionFailureCause.NETWORK, f"{exc.__class__.__name__} {exc}"
        ) from exc
    except UnicodeDecodeError as exc:
        logger.error("DLNA %s undecodable reply %s", action, exc)
        raise ActionInvocationError(
            action, ActionFailureCause.MALFORMED, str(exc)
        ) from exc

    info: DotMap | None = None
    parse_error: ExpatError | None = None
    try:
        info = xml2dict(text, namespaces={service.service_type: None})
    except ExpatError as exc:
        parse_error = exc

    if info is not None and (fault := _fault(info)) is not None:
        code, description = fault
        logger.error("DLNA %s device fault %s %s", action, code, description)
        raise ActionInvocationError(
            action,
            ActionFailureCause.DEVICE_FAULT,
            description,
            status=status,
            error_code=code,
        )

    if not 200 <= status < 300:
        logger.error("DLNA %s HTTP status %s", action, status)
        raise ActionInvocationError(action, ActionFailureCause.STATUS, status=status)

    if parse_error is not None:
        logger.error("DLNA %s unparsable reply %s", action, parse_error)
        raise ActionInvocationError(
            action, ActionFailureCause.MALFORMED, str(parse_error)
        ) from parse_error

    try:
        result = _response_arguments(info, action)
    except ValueError as exc:
        logger.error("DLNA %s malformed reply %s", action, exc)
        raise ActionInvocationError(
            action, ActionFailureCause.MALFORMED, str(exc)
        ) from exc

    logger.debug("%s <- %s", action, result)
    return result


async def invoke_typed(
    service: Service,
    action: str,
    arguments: Mapping[str, object],
    result_type: type[R],
    client: aiohttp.ClientSession | None = None,
) -> R:
    response = await invoke(service, action, arguments, client=client)
    try:
        return result_type.model_validate(response)
    except ValidationError as exc:
        raise ActionInvocationError(
            action, ActionFailureCause.MALFORMED, str(exc)
        ) from exc


async def get_transport_info(
    service: Service, client: aiohttp.ClientSession | None = None
) -> TransportInfo:
    return await invoke_typed(
        service,
        "GetTransportInfo",
        {"InstanceID": INSTANCE_ID},
        TransportInfo,
        client=client,
    )


async def set_av_transport_uri(
    service: Service,
    uri: str,
    metadata: str = "",
    client: aiohttp.ClientSession | None = None,
) -> EmptyResponse:
    return await invoke_typed(
        service,
        "SetAVTransportURI",
        {"InstanceID": INSTANCE_ID, "CurrentURI": uri, "CurrentURIMetaData": metadata},
        EmptyResponse,
        client=client,
    )


async def play(
    service: Service,
    speed: str = NORMAL_SPEED,
    client: aiohttp.ClientSession | None = None,
) -> EmptyResponse:
    return await invoke_typed(
        service,
        "Play",
        {"InstanceID": INSTANCE_ID, "Speed": speed},
        EmptyResponse,
        client=client,
    )

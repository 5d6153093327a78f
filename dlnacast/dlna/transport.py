from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import aiohttp

from ..exceptions import (
    ActionFailureCause,
    ActionInvocationError,
    CastError,
    CastStep,
    PollTimeoutError,
    TransientPollError,
)
from ..settings import settings
from . import action
from .metadata import MediaSource, build_metadata

if TYPE_CHECKING:
    from .models.action import TransportInfo
    from .render import Render

logger = logging.getLogger(__name__)

STOPPED_STATES = frozenset({"STOPPED", "NO_MEDIA_PRESENT"})


def transport_state_is_stopped(info: TransportInfo) -> bool:
    if info.is_empty:
        # no information: assume the renderer is idle
        return True
    return info.current_transport_state in STOPPED_STATES


async def is_stopped(
    render: Render,
    max_attempts: int | None = None,
    retry_delay: float | None = None,
    deadline: float | None = None,
    client: aiohttp.ClientSession | None = None,
) -> bool:
    """Poll GetTransportInfo until one call succeeds, then reduce it to a verdict.

    Failed attempts are retried ``max_attempts`` times, ``retry_delay``
    seconds apart, or until ``deadline`` seconds have passed, whichever comes
    first. Then :class:`PollTimeoutError` is raised.
    """
    if max_attempts is None:
        max_attempts = settings.poll_max_attempts
    if retry_delay is None:
        retry_delay = settings.poll_retry_delay

    loop = asyncio.get_running_loop()
    give_up_at = None if deadline is None else loop.time() + deadline
    last_error: ActionInvocationError | None = None
    attempt = 0

    while attempt < max_attempts:
        attempt += 1
        query = action.get_transport_info(render.service, client=client)
        try:
            if give_up_at is None:
                info = await query
            else:
                info = await asyncio.wait_for(query, max(give_up_at - loop.time(), 0))
        except asyncio.TimeoutError:
            last_error = ActionInvocationError(
                "GetTransportInfo",
                ActionFailureCause.NETWORK,
                f"no reply within the {deadline}s poll deadline",
            )
            logger.warning("%s", TransientPollError(attempt, last_error))
            break
        except ActionInvocationError as exc:
            last_error = exc
            logger.warning("%s", TransientPollError(attempt, exc))
            if give_up_at is not None and loop.time() + retry_delay >= give_up_at:
                break
            if attempt < max_attempts:
                await asyncio.sleep(retry_delay)
            continue

        logger.debug("%s transport info %s", render.display_name(), info)
        return transport_state_is_stopped(info)

    raise PollTimeoutError(attempt, last_error)


class CastState(str, Enum):
    IDLE = "idle"
    METADATA_BUILT = "metadata_built"
    URI_SET = "uri_set"
    PLAYING = "playing"
    ERROR = "error"


@dataclass
class CastAttempt:
    """One SetAVTransportURI + Play sequence against a render."""

    render: Render
    media: MediaSource
    state: CastState = field(default=CastState.IDLE, init=False)
    metadata: str | None = field(default=None, init=False)
    failed_step: CastStep | None = field(default=None, init=False)

    def _advance(self, state: CastState):
        logger.debug(
            "%s cast %s -> %s", self.render.display_name(), self.state.value, state.value
        )
        self.state = state

    def _fail(self, step: CastStep, exc: ActionInvocationError) -> CastError:
        self._advance(CastState.ERROR)
        self.failed_step = step
        logger.error("Cast to %s failed at %s: %s", self.render.display_name(), step.value, exc)
        return CastError(step, exc)

    async def run(self, client: aiohttp.ClientSession | None = None) -> Render:
        logger.info("Casting %s to %s", self.media.url, self.render.display_name())

        self.metadata = build_metadata(self.media)
        self._advance(CastState.METADATA_BUILT)

        try:
            await action.set_av_transport_uri(
                self.render.service, self.media.url, self.metadata, client=client
            )
        except ActionInvocationError as exc:
            raise self._fail(CastStep.SET_AV_TRANSPORT_URI, exc) from exc
        self._advance(CastState.URI_SET)

        try:
            await action.play(self.render.service, client=client)
        except ActionInvocationError as exc:
            raise self._fail(CastStep.PLAY, exc) from exc
        self._advance(CastState.PLAYING)

        return self.render


async def play(
    render: Render,
    media: MediaSource | str,
    client: aiohttp.ClientSession | None = None,
) -> Render:
    if isinstance(media, str):
        media = MediaSource.from_url(media)
    return await CastAttempt(render, media).run(client=client)

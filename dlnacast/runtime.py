"""Process-wide event loop behind the synchronous API.

The loop runs on a daemon thread, started on first use. Every blocking call
(``discover``, ``Render.play``, ``Render.is_stopped``) is scheduled onto it, so
the HTTP session and its connection pool are shared between calls, and calls
made from different threads run concurrently.
"""
from __future__ import annotations

import asyncio
import atexit
import concurrent.futures
import logging
import threading
from typing import Coroutine, TypeVar

from .exceptions import OperationTimeoutError
from .utils import g

logger = logging.getLogger(__name__)

T = TypeVar("T")

SHUTDOWN_TIMEOUT_SECS = 5

_lock = threading.Lock()
_loop: asyncio.AbstractEventLoop | None = None
_thread: threading.Thread | None = None


def get_loop() -> asyncio.AbstractEventLoop:
    global _loop, _thread
    with _lock:
        if _loop is None or _loop.is_closed() or _thread is None or not _thread.is_alive():
            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def serve():
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                loop.run_forever()

            thread = threading.Thread(target=serve, name="dlnacast-loop", daemon=True)
            thread.start()
            ready.wait()
            _loop, _thread = loop, thread
            logger.debug("Started shared event loop")
        return _loop


def submit(coro: Coroutine[object, object, T]) -> concurrent.futures.Future[T]:
    """Schedule ``coro`` on the shared loop; cancelling the future cancels it."""
    return asyncio.run_coroutine_threadsafe(coro, get_loop())


def run(coro: Coroutine[object, object, T], timeout: float | None = None) -> T:
    if _thread is not None and threading.current_thread() is _thread:
        coro.close()
        raise RuntimeError("blocking call made from the dlnacast event loop")

    future = submit(coro)
    try:
        return future.result(timeout)
    except concurrent.futures.TimeoutError as exc:
        future.cancel()
        raise OperationTimeoutError(f"operation did not finish in {timeout}s") from exc
    except KeyboardInterrupt:
        future.cancel()
        raise


def shutdown():
    global _loop, _thread
    with _lock:
        loop, thread = _loop, _thread
        _loop = _thread = None
    if loop is None or loop.is_closed():
        return

    if thread is not None and thread.is_alive():
        try:
            asyncio.run_coroutine_threadsafe(g.close(), loop).result(
                SHUTDOWN_TIMEOUT_SECS
            )
        except concurrent.futures.TimeoutError:
            logger.warning("Timed out closing the HTTP session")
        loop.call_soon_threadsafe(loop.stop)
        thread.join(SHUTDOWN_TIMEOUT_SECS)
    if not loop.is_running():
        loop.close()


atexit.register(shutdown)

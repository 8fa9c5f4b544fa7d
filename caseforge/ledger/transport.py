"""Bounded, non-retrying wrapper around ledger calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, ParamSpec, TypeVar

from ..domain.exceptions import TransportFailure

P = ParamSpec("P")
T = TypeVar("T")

logger = logging.getLogger(__name__)

# Calls whose caller stopped waiting. Held here until the ledger answers.
_detached: set[asyncio.Future[Any]] = set()


async def ledger_call(
    label: str,
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    timeout: float | None = 15.0,
    **kwargs: P.kwargs,
) -> T:
    """Await one ledger call under ``timeout`` seconds.

    Money-moving calls are never retried here; timeouts and connection errors
    surface as :class:`TransportFailure`. A call that was sent is never
    cancelled: on timeout the caller gets the failure while the request runs
    to completion in the background.
    """
    call = asyncio.ensure_future(func(*args, **kwargs))
    try:
        return await asyncio.wait_for(asyncio.shield(call), timeout=timeout)
    except TransportFailure:
        logger.warning("Ledger call '%s' failed in transport.", label)
        raise
    except asyncio.TimeoutError as exc:
        logger.warning("Ledger call '%s' timed out after %ss.", label, timeout)
        _detach(label, call)
        raise TransportFailure(
            "The ledger did not answer in time", context={"operation": label}
        ) from exc
    except asyncio.CancelledError:
        _detach(label, call)
        raise
    except (ConnectionError, OSError) as exc:
        logger.warning("Ledger call '%s' could not reach the ledger: %s", label, exc)
        raise TransportFailure(
            "The ledger is unreachable", context={"operation": label}
        ) from exc


def pending_calls() -> int:
    """Number of sent calls still running after their caller gave up."""
    return len(_detached)


def _detach(label: str, call: asyncio.Future[Any]) -> None:
    if call.done():
        return
    _detached.add(call)
    call.add_done_callback(partial(_on_detached_done, label))


def _on_detached_done(label: str, call: asyncio.Future[Any]) -> None:
    _detached.discard(call)
    if call.cancelled():
        return
    error = call.exception()
    if error is not None:
        logger.warning("Late ledger call '%s' failed: %s", label, error)
    else:
        logger.info("Late ledger call '%s' completed after its caller timed out.", label)

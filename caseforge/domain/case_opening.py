"""Per-gesture state machine for a single case opening."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from .events import CASE_PHASE_CHANGED, EventBus
from .exceptions import InvalidTransition
from .idempotency import OneShotLatch, TrailingDebouncer
from .results import Err, ErrorKind, Result
from .rewards import CaseOpeningResult

if TYPE_CHECKING:
    from .coordinator import ActionCoordinator, OpenCaseRequest

logger = logging.getLogger(__name__)


class CasePhase(str, Enum):
    INIT = "init"
    SUBMITTING = "submitting"
    RESOLVING = "resolving"
    RESULT = "result"


class CaseOpeningStateMachine:
    """Init -> Submitting -> Resolving -> Result for one user gesture.

    A failed submission returns to Init with the error kept in :attr:`error`.
    Resolving only advances on :meth:`finish_animation`. Build a new instance
    for every new gesture.
    """

    def __init__(
        self,
        coordinator: "ActionCoordinator",
        request: "OpenCaseRequest",
        *,
        event_bus: EventBus | None = None,
        debounce_ms: float = 0,
    ) -> None:
        self._coordinator = coordinator
        self._request = request
        self._events = event_bus
        self._latch = OneShotLatch()
        self._debouncer: TrailingDebouncer[Result[CaseOpeningResult]] = TrailingDebouncer(
            self.submit, debounce_ms
        )
        self._phase = CasePhase.INIT
        self._result: CaseOpeningResult | None = None
        self._error: Err | None = None
        self._closed = False

    @property
    def phase(self) -> CasePhase:
        return self._phase

    @property
    def latch(self) -> OneShotLatch:
        return self._latch

    @property
    def result(self) -> CaseOpeningResult | None:
        return self._result

    @property
    def error(self) -> Err | None:
        return self._error

    async def submit(self) -> Result[CaseOpeningResult]:
        if self._phase is not CasePhase.INIT:
            logger.debug(
                "Ignoring submit for case %s in phase %s.", self._request.case_id, self._phase.value
            )
            return Err(ErrorKind.DUPLICATE, "Case opening already in progress")

        self._error = None
        await self._transition(CasePhase.SUBMITTING)
        result = await self._coordinator.open_case(self._request, latch=self._latch)
        if result.ok:
            self._result = result.value
            await self._transition(CasePhase.RESOLVING)
        else:
            self._error = result
            await self._transition(CasePhase.INIT)
        return result

    def trigger(self) -> None:
        """Debounced submit: only the last of several rapid triggers fires."""
        if self._closed:
            raise InvalidTransition("Case opening was torn down")
        self._debouncer.trigger()

    async def wait(self) -> Result[CaseOpeningResult] | None:
        return await self._debouncer.wait()

    async def finish_animation(self) -> bool:
        """Signal the end of the reveal. Returns False if already shown."""
        if self._phase is CasePhase.RESULT:
            return False
        if self._phase is not CasePhase.RESOLVING:
            raise InvalidTransition(f"Cannot finish animation in phase {self._phase.value}")
        await self._transition(CasePhase.RESULT)
        return True

    def teardown(self) -> None:
        """Cancel pending timers. A request already sent is never aborted."""
        self._closed = True
        self._debouncer.cancel()

    async def _transition(self, phase: CasePhase) -> None:
        previous = self._phase
        self._phase = phase
        if self._events is not None:
            await self._events.publish(
                CASE_PHASE_CHANGED,
                {
                    "user_id": self._request.user_id,
                    "case_id": self._request.case_id,
                    "previous": previous.value,
                    "phase": phase.value,
                },
            )

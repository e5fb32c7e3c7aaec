"""
Plan/step event emitter.

Progress notifications for UIs and logs. Listeners may be plain functions or
coroutines; a failing listener is logged and never affects the pipeline or
the other listeners.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable

from querypilot.models.plan import PlanEventType, PlanStep, PlanStepEvent

logger = logging.getLogger(__name__)

PlanEventListener = Callable[[PlanStepEvent], Awaitable[None] | None]


class PlanEventEmitter:
    """Fan-out of ``PlanStepEvent``s to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[PlanEventListener] = []
        # Plans with a plan_generated event and no plan_completed yet
        self._open_plans: set[str] = set()

    def subscribe(self, listener: PlanEventListener) -> Callable[[], None]:
        """Register ``listener``; the returned function unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear(self) -> None:
        self._listeners.clear()

    def was_generated(self, plan_id: str) -> bool:
        """True once ``plan_generated`` was emitted for a plan that has not completed."""
        return plan_id in self._open_plans

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def emit(self, event: PlanStepEvent) -> None:
        # Snapshot: listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Plan event listener failed",
                    extra={"event_type": event.type, "plan_id": event.plan_id},
                )

    async def emit_step(
        self,
        event_type: PlanEventType,
        plan_id: str,
        step: PlanStep,
        error: str | None = None,
    ) -> None:
        await self.emit(PlanStepEvent(type=event_type, plan_id=plan_id, step=step, error=error))

    async def emit_plan_generated(self, plan_id: str, steps: list[PlanStep]) -> None:
        self._open_plans.add(plan_id)
        await self.emit(PlanStepEvent(type="plan_generated", plan_id=plan_id, steps=steps))

    async def emit_plan_completed(self, plan_id: str, error: str | None = None) -> None:
        self._open_plans.discard(plan_id)
        await self.emit(PlanStepEvent(type="plan_completed", plan_id=plan_id, error=error))

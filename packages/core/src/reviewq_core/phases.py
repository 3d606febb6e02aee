"""Run phase state machine."""

from __future__ import annotations

import logging
from typing import Callable

from reviewq_core.errors import IllegalPhaseTransitionError
from reviewq_core.models import PhaseChanged, ReviewQueueEvent, ReviewQueuePhase

logger = logging.getLogger(__name__)

Phase = ReviewQueuePhase

TERMINAL_PHASES = frozenset({Phase.COMPLETED, Phase.FAILED, Phase.CANCELLED})

_FORWARD: dict[ReviewQueuePhase, frozenset[ReviewQueuePhase]] = {
    Phase.IDLE: frozenset({Phase.PREPARING}),
    Phase.PREPARING: frozenset({Phase.REVIEWING}),
    Phase.REVIEWING: frozenset({Phase.AGGREGATING, Phase.COMPLETED}),
    Phase.AGGREGATING: frozenset({Phase.FIXING, Phase.COMPLETED}),
    Phase.FIXING: frozenset({Phase.COMPLETED}),
}


def allowed_transitions(phase: ReviewQueuePhase) -> frozenset[ReviewQueuePhase]:
    """Every phase reachable from *phase* in one step."""
    if phase in TERMINAL_PHASES:
        return frozenset()
    return _FORWARD.get(phase, frozenset()) | {Phase.FAILED, Phase.CANCELLED}


def can_transition(current: ReviewQueuePhase, target: ReviewQueuePhase) -> bool:
    return target in allowed_transitions(current)


class PhaseTracker:
    """Holds one run's phase and emits PhaseChanged on every legal move."""

    def __init__(self, emit: Callable[[ReviewQueueEvent], None] | None = None):
        self.phase = Phase.IDLE
        self._emit = emit

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def advance(self, target: ReviewQueuePhase) -> None:
        if not can_transition(self.phase, target):
            raise IllegalPhaseTransitionError(f"Illegal phase transition: {self.phase.value} -> {target.value}")
        logger.debug("Phase %s -> %s", self.phase.value, target.value)
        self.phase = target
        if self._emit is not None:
            self._emit(PhaseChanged(target))

"""Explicit Idle/Analyzing/Complete state machine for batch runs."""
from __future__ import annotations

from typing import Dict, FrozenSet

from .types import PipelineState


class InvalidTransition(RuntimeError):
    """Raised when a transition is not allowed from the current state."""


_ALLOWED: Dict[str, FrozenSet[PipelineState]] = {
    "begin": frozenset({PipelineState.IDLE, PipelineState.COMPLETE}),
    "complete": frozenset({PipelineState.ANALYZING}),
    "abort": frozenset({PipelineState.ANALYZING}),
}


class PipelineStateMachine:
    def __init__(self) -> None:
        self._state = PipelineState.IDLE

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def analyzing(self) -> bool:
        return self._state is PipelineState.ANALYZING

    def begin(self) -> bool:
        """Enter Analyzing; returns False when a run is already active."""
        if self.analyzing:
            return False
        self._transition("begin", PipelineState.ANALYZING)
        return True

    def complete(self) -> None:
        self._transition("complete", PipelineState.COMPLETE)

    def abort(self) -> None:
        self._transition("abort", PipelineState.IDLE)

    def reset(self) -> None:
        self._state = PipelineState.IDLE

    def _transition(self, name: str, target: PipelineState) -> None:
        if self._state not in _ALLOWED[name]:
            raise InvalidTransition(f"Cannot {name} from {self._state.value}")
        self._state = target


__all__ = ["InvalidTransition", "PipelineStateMachine"]

"""
Pipeline State Machine

INIT -> ACQUIRED -> EXECUTED -> REPORTED -> UPLOADED -> DONE
Any state except DONE may move to FAILED, which is terminal.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from covpipe.errors import EXIT_OK, PipelineError


class PipelineState(str, Enum):
    INIT = "init"
    ACQUIRED = "acquired"
    EXECUTED = "executed"
    REPORTED = "reported"
    UPLOADED = "uploaded"
    DONE = "done"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    PipelineState.INIT: {PipelineState.ACQUIRED, PipelineState.FAILED},
    PipelineState.ACQUIRED: {PipelineState.EXECUTED, PipelineState.FAILED},
    PipelineState.EXECUTED: {PipelineState.REPORTED, PipelineState.FAILED},
    # REPORTED -> DONE is the dry-run path
    PipelineState.REPORTED: {
        PipelineState.UPLOADED,
        PipelineState.DONE,
        PipelineState.FAILED,
    },
    PipelineState.UPLOADED: {PipelineState.DONE, PipelineState.FAILED},
    PipelineState.DONE: set(),
    PipelineState.FAILED: set(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass
class Transition:
    source: PipelineState
    target: PipelineState
    at: datetime


@dataclass
class PipelineRun:
    """Record of one pipeline run"""

    state: PipelineState = PipelineState.INIT
    history: List[Transition] = field(default_factory=list)
    tool: Optional[object] = None
    artifact: Optional[object] = None
    summary: Optional[object] = None
    receipt: Optional[object] = None
    failed_step: Optional[str] = None
    error: Optional[PipelineError] = None

    def advance(self, target: PipelineState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        self.history.append(
            Transition(source=self.state, target=target, at=datetime.now(timezone.utc))
        )
        self.state = target

    def fail(self, error: PipelineError) -> None:
        self.failed_step = error.step
        self.error = error
        self.advance(PipelineState.FAILED)

    @property
    def states(self) -> List[PipelineState]:
        """Every state the run has been in, starting with INIT"""
        if not self.history:
            return [self.state]
        return [self.history[0].source] + [t.target for t in self.history]

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.DONE

    @property
    def exit_code(self) -> int:
        if self.succeeded:
            return EXIT_OK
        if self.error is not None:
            return self.error.exit_code
        return 1

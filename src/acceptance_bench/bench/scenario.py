from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from acceptance_bench.bench.errors import PhaseError
from acceptance_bench.bench.types import (
    Outcome,
    OutcomeKind,
    ProbeResponse,
    ScenarioPhase,
    ServiceHealthRecord,
    SessionToken,
    TestUser,
)

logger = logging.getLogger(__name__)

_STEP_PHASES = {
    "given": ScenarioPhase.GIVEN,
    "when": ScenarioPhase.WHEN,
    "then": ScenarioPhase.THEN,
}

_TERMINAL_PHASES = {
    OutcomeKind.OK: ScenarioPhase.COMPLETED,
    OutcomeKind.SKIP: ScenarioPhase.SKIPPED,
    OutcomeKind.FAIL: ScenarioPhase.FAILED,
}


@dataclass
class ScenarioContext:
    """Mutable state for exactly one scenario. A new instance is built before every scenario."""

    name: str = ""
    last_response: Optional[ProbeResponse] = None
    last_user: Optional[TestUser] = None
    admin_token: Optional[SessionToken] = None
    user_token: Optional[SessionToken] = None
    # token sent on the next authenticated call; "" means explicitly logged out
    bearer: Optional[str] = None
    health: Dict[str, ServiceHealthRecord] = field(default_factory=dict)
    global_health: Optional[ProbeResponse] = None
    log_backend: Optional[ProbeResponse] = None
    phase: ScenarioPhase = ScenarioPhase.NOT_STARTED
    outcome: Optional[Outcome] = None
    started_at: float = field(default_factory=time.monotonic)

    def advance(self, step_type: str) -> ScenarioPhase:
        if self.phase.terminal:
            raise PhaseError(f"Scenario '{self.name}' already finished as {self.phase.value}; cannot run a '{step_type}' step")
        target = _STEP_PHASES.get(step_type.lower())
        if target is None:
            raise PhaseError(f"Unknown step type '{step_type}'")
        if target is not self.phase:
            logger.debug("scenario '%s': %s -> %s", self.name, self.phase.value, target.value)
        self.phase = target
        return self.phase

    def finish(self, outcome: Outcome) -> ScenarioPhase:
        if self.phase.terminal:
            raise PhaseError(f"Scenario '{self.name}' already finished as {self.phase.value}")
        self.outcome = outcome
        self.phase = _TERMINAL_PHASES[outcome.kind]
        return self.phase

    def record(self, response: ProbeResponse) -> ProbeResponse:
        self.last_response = response
        return response

    def require_response(self) -> ProbeResponse:
        if self.last_response is None:
            raise AssertionError("No HTTP response has been recorded in this scenario yet")
        return self.last_response

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000.0

import json
import logging
import os
import time
import uuid
from typing import Any, Dict, List, Optional

from acceptance_bench.bench.metrics import Metrics
from acceptance_bench.bench.scenario import ScenarioContext
from acceptance_bench.bench.types import OutcomeKind, ProbeEvent, SUTContext

logger = logging.getLogger(__name__)

_STATUS_NAMES = {
    OutcomeKind.OK: "passed",
    OutcomeKind.SKIP: "skipped",
    OutcomeKind.FAIL: "failed",
}


class ResultSink:
    """Collects per-scenario outcomes and probe events, then writes one JSON report per run."""

    def __init__(self, sut: SUTContext, metrics: Optional[Metrics] = None) -> None:
        self.sut = sut
        self.metrics = metrics or Metrics()
        self.run_id = str(uuid.uuid4())
        self.created_at_ms = int(time.time() * 1000)
        self.events: List[ProbeEvent] = []
        self.scenarios: List[Dict[str, Any]] = []

    def record_event(self, event: ProbeEvent) -> None:
        self.events.append(event)

    def record_scenario(self, feature: str, ctx: ScenarioContext) -> None:
        outcome = ctx.outcome
        self.scenarios.append({
            "feature": feature,
            "scenario": ctx.name,
            "status": _STATUS_NAMES[outcome.kind] if outcome else "untested",
            "reason": outcome.reason if outcome else "",
            "phase": ctx.phase.value,
            "duration_ms": round(ctx.elapsed_ms, 1),
        })

    def build_report(self) -> Dict[str, Any]:
        counts = {"passed": 0, "failed": 0, "skipped": 0, "untested": 0}
        for s in self.scenarios:
            counts[s["status"]] += 1
        return {
            "ok": counts["failed"] == 0,
            "run_id": self.run_id,
            "created_at_ms": self.created_at_ms,
            "sut": self.sut.env,
            "summary": counts,
            "scenarios": self.scenarios,
            "metrics": self.metrics.aggregate(self.events),
        }

    def write(self) -> Dict[str, Any]:
        report = self.build_report()
        if self.sut.report_console:
            print(json.dumps(report, indent=2))

        path = self.sut.report_path
        if path:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(report, f, indent=2)
            logger.info("Acceptance report written to %s", path)
        return report

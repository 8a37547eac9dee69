import statistics
from collections import defaultdict
from typing import Dict, Iterable, List

from acceptance_bench.bench.types import ProbeEvent


def _percentile(sorted_values: List[float], pct: int) -> float:
    if len(sorted_values) == 1:
        return sorted_values[0]
    # quantiles(n=100) yields the 1st..99th percentiles
    return statistics.quantiles(sorted_values, n=100, method="inclusive")[pct - 1]


class Metrics:
    def aggregate(self, events: Iterable[ProbeEvent]) -> dict:
        # per endpoint: count, ok, unreachable, err, p50/p95 latency
        grouped: Dict[str, List[ProbeEvent]] = defaultdict(list)
        for ev in events:
            grouped[f"{ev.method} {ev.endpoint}"].append(ev)

        by_endpoint = {}
        total = ok = 0
        for key in sorted(grouped):
            evs = grouped[key]
            latencies = sorted(e.duration_ms for e in evs)
            n_ok = sum(1 for e in evs if e.ok)
            n_unreachable = sum(1 for e in evs if e.status_code is None)
            by_endpoint[key] = {
                "count": len(evs),
                "ok": n_ok,
                "unreachable": n_unreachable,
                "err": len(evs) - n_ok - n_unreachable,
                "p50_ms": round(_percentile(latencies, 50), 2),
                "p95_ms": round(_percentile(latencies, 95), 2),
            }
            total += len(evs)
            ok += n_ok

        return {
            "by_endpoint": by_endpoint,
            "summary": {"requests": total, "ok": ok, "failed": total - ok},
        }

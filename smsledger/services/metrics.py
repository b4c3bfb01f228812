"""
Metrics collection for the SMS ledger API.
"""
from typing import Dict, Any
from collections import defaultdict
from datetime import datetime, timezone

# In-memory metrics store (use Prometheus/StatsD in production)
_metrics: Dict[str, Any] = {
    "requests": defaultdict(int),
    "errors": defaultdict(int),
    "extractions": defaultdict(int),
    "transitions": defaultdict(int),
    "response_times": [],
    "start_time": datetime.now(timezone.utc).isoformat(),
}


def record_request(method: str, path: str, status_code: int, duration_ms: float):
    """Record HTTP request metrics."""
    _metrics["requests"][f"{method} {path}"] += 1
    _metrics["requests"][f"status_{status_code}"] += 1

    # Keep last 1000 response times
    _metrics["response_times"].append(duration_ms)
    if len(_metrics["response_times"]) > 1000:
        _metrics["response_times"] = _metrics["response_times"][-1000:]


def record_error(error_type: str, path: str = ""):
    """Record error metrics."""
    _metrics["errors"][error_type] += 1
    if path:
        _metrics["errors"][f"{error_type}:{path}"] += 1


def record_extraction(mode: str, outcome: str, count: int = 1):
    """Record extraction outcomes, e.g. ("bulk", "matched")."""
    _metrics["extractions"][f"{mode}:{outcome}"] += count


def record_transition(action: str, to_status: str):
    """Record a pattern lifecycle transition."""
    _metrics["transitions"][f"{action}:{to_status}"] += 1


def get_metrics() -> Dict[str, Any]:
    """Get current metrics."""
    response_times = _metrics["response_times"]
    avg_response_time = sum(response_times) / len(response_times) if response_times else 0
    p95_response_time = sorted(response_times)[int(len(response_times) * 0.95)] if len(response_times) >= 20 else 0

    total_requests = sum(v for k, v in _metrics["requests"].items() if not k.startswith("status_"))
    total_errors = sum(_metrics["errors"].values())

    uptime_seconds = (datetime.now(timezone.utc) - datetime.fromisoformat(_metrics["start_time"])).total_seconds()

    return {
        "uptime_seconds": int(uptime_seconds),
        "requests": {
            "total": total_requests,
            "by_endpoint": {k: v for k, v in _metrics["requests"].items() if not k.startswith("status_")},
            "by_status": {k: v for k, v in _metrics["requests"].items() if k.startswith("status_")},
        },
        "errors": {
            "total": total_errors,
            "by_type": dict(_metrics["errors"]),
        },
        "extractions": dict(_metrics["extractions"]),
        "transitions": dict(_metrics["transitions"]),
        "performance": {
            "avg_response_time_ms": round(avg_response_time, 2),
            "p95_response_time_ms": round(p95_response_time, 2),
        },
    }


def reset_metrics():
    """Reset all metrics (for testing)."""
    global _metrics
    _metrics = {
        "requests": defaultdict(int),
        "errors": defaultdict(int),
        "extractions": defaultdict(int),
        "transitions": defaultdict(int),
        "response_times": [],
        "start_time": datetime.now(timezone.utc).isoformat(),
    }

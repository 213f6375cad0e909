from __future__ import annotations

import csv
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

METRICS_DIR = Path(__file__).resolve().parent.parent / "metrics"
CSV_PATH = METRICS_DIR / "ai_usage.csv"
CSV_COLUMNS = [
    "timestamp",
    "component",
    "model_or_tool",
    "tokens_in",
    "tokens_out",
    "latency_ms",
    "cost_usd",
    "subject_id",
]

# Approximate per-1K token pricing in USD.
MODEL_PRICING_PER_1K = {
    "gemini-2.5-flash-lite": {"input": 0.0001, "output": 0.0004},
    "gemini-2.5-flash": {"input": 0.0003, "output": 0.0025},
    "gemini-2.5-pro": {"input": 0.00125, "output": 0.01},
    "gemini-2.0-flash": {"input": 0.0001, "output": 0.0004},
}

_csv_lock = threading.Lock()
# Optional second sink; set by the app factory to the active store.
_metrics_store: Any = None


def set_metrics_store(store: Any) -> None:
    """Register the store whose ``metrics`` table receives metric rows."""
    global _metrics_store
    _metrics_store = store


def _ensure_csv_header() -> None:
    METRICS_DIR.mkdir(parents=True, exist_ok=True)
    if CSV_PATH.exists():
        return
    with _csv_lock:
        if CSV_PATH.exists():
            return
        with CSV_PATH.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
            writer.writeheader()


def _coerce_number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def estimate_model_cost(model: Optional[str], tokens_in: Optional[int], tokens_out: Optional[int]) -> Optional[float]:
    """Rudimentary USD cost estimate using static per-1K token pricing."""
    if model is None:
        return None
    pricing = MODEL_PRICING_PER_1K.get(model.lower())
    if pricing is None:
        return None
    cost = 0.0
    if tokens_in:
        cost += (tokens_in / 1000.0) * pricing["input"]
    if tokens_out:
        cost += (tokens_out / 1000.0) * pricing["output"]
    return round(cost, 6)


def _usage_field(usage: Any, *names: str) -> Optional[int]:
    for name in names:
        value = usage.get(name) if isinstance(usage, dict) else getattr(usage, name, None)
        if value is not None:
            return value
    return None


def extract_usage_tokens(obj: Any) -> Tuple[Optional[int], Optional[int]]:
    """Pull token counts from chat completion responses or usage payloads."""
    usage = obj.get("usage") if isinstance(obj, dict) else getattr(obj, "usage", None)
    if usage is None:
        return None, None
    prompt = _usage_field(usage, "prompt_tokens", "input_tokens")
    completion = _usage_field(usage, "completion_tokens", "output_tokens")
    return prompt, completion


def log_metric(
    component: str,
    model_or_tool: Optional[str],
    *,
    tokens_in: Optional[int] = None,
    tokens_out: Optional[int] = None,
    latency_ms: Optional[float] = None,
    cost_usd: Optional[float] = None,
    subject_id: Optional[str] = None,
) -> None:
    """Persist a metric row to CSV and the registered store (best effort)."""
    computed_cost = cost_usd if cost_usd is not None else estimate_model_cost(model_or_tool, tokens_in, tokens_out)
    row = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "component": component,
        "model_or_tool": model_or_tool or "",
        "tokens_in": tokens_in,
        "tokens_out": tokens_out,
        "latency_ms": round(latency_ms, 3) if latency_ms is not None else None,
        "cost_usd": computed_cost,
        "subject_id": subject_id,
    }
    csv_row = {k: ("" if v is None else v) for k, v in row.items()}

    try:
        _ensure_csv_header()
        with _csv_lock:
            with CSV_PATH.open("a", newline="", encoding="utf-8") as f:
                csv.DictWriter(f, fieldnames=CSV_COLUMNS).writerow(csv_row)
    except OSError as exc:
        logger.warning("metric_csv_write_failed", extra={"error": str(exc)})

    if _metrics_store is not None:
        try:
            _metrics_store.insert("metrics", row)
        except Exception as exc:  # metrics must never fail a request
            logger.warning("metric_store_write_failed", extra={"error": str(exc)})


@dataclass
class MetricTimer:
    component: str
    model_or_tool: Optional[str]
    subject_id: Optional[str]
    _start: float = field(default_factory=time.perf_counter)

    def done(
        self,
        *,
        tokens_in: Optional[int] = None,
        tokens_out: Optional[int] = None,
        cost_usd: Optional[float] = None,
    ) -> None:
        latency_ms = (time.perf_counter() - self._start) * 1000
        log_metric(
            self.component,
            self.model_or_tool,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            latency_ms=latency_ms,
            cost_usd=cost_usd,
            subject_id=self.subject_id,
        )


def start_timer(component: str, model_or_tool: Optional[str], subject_id: Optional[str] = None) -> MetricTimer:
    return MetricTimer(component=component, model_or_tool=model_or_tool, subject_id=subject_id)


def fetch_metrics(limit: int = 500) -> List[Dict[str, Any]]:
    """Most recent metric rows, newest first: registered store, else the local CSV."""
    if _metrics_store is not None:
        try:
            rows = _metrics_store.select("metrics", order="timestamp", desc=True, limit=limit)
            if rows:
                return rows
        except Exception as exc:
            logger.warning("metric_store_read_failed", extra={"error": str(exc)})
    if not CSV_PATH.exists() or limit <= 0:
        return []
    with CSV_PATH.open("r", newline="", encoding="utf-8") as f:
        tail = deque(csv.DictReader(f), maxlen=limit)
    return list(reversed(tail))


def summarize_metrics(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Total cost plus call count, cost, tokens and mean latency per component."""
    total_cost = 0.0
    components: Dict[str, Dict[str, Any]] = {}
    latencies: Dict[str, List[float]] = defaultdict(list)
    for row in records:
        name = row.get("component") or "unknown"
        bucket = components.setdefault(name, {"calls": 0, "cost_usd": 0.0, "tokens_in": 0, "tokens_out": 0})
        bucket["calls"] += 1
        cost = _coerce_number(row.get("cost_usd"))
        if cost:
            total_cost += cost
            bucket["cost_usd"] += cost
        for key in ("tokens_in", "tokens_out"):
            tokens = _coerce_number(row.get(key))
            if tokens:
                bucket[key] += int(tokens)
        latency = _coerce_number(row.get("latency_ms"))
        if latency is not None:
            latencies[name].append(latency)

    avg_latency = {name: round(sum(vals) / len(vals), 3) for name, vals in latencies.items()}
    for name, bucket in components.items():
        bucket["cost_usd"] = round(bucket["cost_usd"], 6)
        bucket["average_latency_ms"] = avg_latency.get(name)
    return {
        "total_cost_usd": round(total_cost, 6),
        "average_latency_ms": avg_latency,
        "components": components,
        "sample_size": len(records),
    }

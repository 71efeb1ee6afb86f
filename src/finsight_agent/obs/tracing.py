"""Turn tracing, cost accounting, and summary metrics."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from finsight_agent.types import ToolTrace


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    user_id: str
    message: str
    intent: str
    tool_traces: list[ToolTrace]
    knowledge_titles: list[str]
    tokens: int
    estimated_cost_usd: float
    latency_ms: float
    confidence: float
    degraded: bool


@dataclass(slots=True)
class CostModel:
    """Blended token pricing model (USD per 1K tokens)."""

    per_1k_tokens: float = 0.03

    def estimate_cost(self, tokens: int) -> float:
        return (tokens / 1000.0) * self.per_1k_tokens


class TraceStore:
    """In-memory trace storage for API-level observability.

    Keeps at most `max_records` traces; the oldest are dropped first.
    """

    def __init__(
        self,
        *,
        cost_model: CostModel | None = None,
        max_records: int = 1000,
    ) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._cost_model = cost_model or CostModel()
        self._max_records = max_records

    def create_record(
        self,
        *,
        user_id: str,
        message: str,
        intent: str,
        tool_traces: list[ToolTrace],
        knowledge_titles: list[str],
        tokens: int,
        latency_ms: float,
        confidence: float,
        degraded: bool,
    ) -> TraceRecord:
        trace_id = str(uuid.uuid4())
        record = TraceRecord(
            trace_id=trace_id,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            user_id=user_id,
            message=message,
            intent=intent,
            tool_traces=tool_traces,
            knowledge_titles=knowledge_titles,
            tokens=tokens,
            estimated_cost_usd=self._cost_model.estimate_cost(tokens),
            latency_ms=latency_ms,
            confidence=confidence,
            degraded=degraded,
        )
        self._records[trace_id] = record
        while len(self._records) > self._max_records:
            del self._records[next(iter(self._records))]
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        if limit <= 0:
            return []
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate core observability metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "degraded_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "avg_confidence": 0.0,
                "total_tokens": 0,
                "total_estimated_cost_usd": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))

        return {
            "total_requests": total,
            "degraded_requests": sum(1 for record in records if record.degraded),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "avg_confidence": sum(record.confidence for record in records) / total,
            "total_tokens": sum(record.tokens for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
        }


class Timer:
    """Simple context timer used by the assistant."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = self.current_ms()

    def current_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000.0

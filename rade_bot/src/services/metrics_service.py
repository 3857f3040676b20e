import logging
import time
from collections import Counter, defaultdict
from typing import Any, Dict, List

from sqlmodel import Field, SQLModel

from rade_bot.src.core.cache import ExpiringCache

logger = logging.getLogger(__name__)

METRICS_KEY = "chat_metrics"
METRICS_TTL_MS = 24 * 60 * 60 * 1000
MAX_STORED_METRICS = 1000

# USD per 1M tokens (input, output)
RATE_TABLE = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "llama-3.3-70b-versatile": (0.59, 0.79),
}
DEFAULT_RATE = RATE_TABLE["gpt-4o-mini"]


def estimate_tokens(text: str) -> int:
    return -(-len(text or "") // 4)


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    input_rate, output_rate = RATE_TABLE.get(model, DEFAULT_RATE)
    return (input_tokens * input_rate + output_tokens * output_rate) / 1_000_000


class ChatMetric(SQLModel):
    timestamp: float = Field(default_factory=time.time)
    user_id: str
    user_type: str
    message: str
    model: str
    response_time_ms: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    estimated_cost: float
    tools_used: List[str] = Field(default_factory=list)
    cache_hits: int = 0
    fallback_used: bool = False
    model_runs: int = 1


class MetricsService:
    def __init__(self, cache: ExpiringCache):
        self.cache = cache

    def record(self, metric: ChatMetric) -> None:
        metrics = self.stored_metrics() + [metric]
        metrics = metrics[-MAX_STORED_METRICS:]
        self.cache.set(METRICS_KEY, metrics, METRICS_TTL_MS)
        logger.info(f"Recorded metric: {metric.total_tokens} tokens, ${metric.estimated_cost:.6f}")

    def stored_metrics(self) -> List[ChatMetric]:
        return list(self.cache.get(METRICS_KEY) or [])

    def summary(self) -> Dict[str, Any]:
        metrics = self.stored_metrics()
        if not metrics:
            return {
                "total_requests": 0,
                "total_tokens": 0,
                "total_cost": 0.0,
                "avg_response_time_ms": 0.0,
                "fallback_rate": 0.0,
                "cache_hit_rate": 0.0,
                "top_users": [],
                "tool_usage": {},
                "recent_activity": [],
            }

        users = defaultdict(lambda: {"count": 0, "cost": 0.0})
        for m in metrics:
            users[m.user_id]["count"] += 1
            users[m.user_id]["cost"] += m.estimated_cost
        top_users = sorted(
            ({"user_id": user_id, **stats} for user_id, stats in users.items()),
            key=lambda u: u["cost"],
            reverse=True,
        )[:5]

        tool_usage = Counter(tool for m in metrics for tool in m.tools_used)
        total_tool_calls = sum(len(m.tools_used) for m in metrics)
        cache_hits = sum(m.cache_hits for m in metrics)

        return {
            "total_requests": len(metrics),
            "total_tokens": sum(m.total_tokens for m in metrics),
            "total_cost": sum(m.estimated_cost for m in metrics),
            "avg_response_time_ms": sum(m.response_time_ms for m in metrics) / len(metrics),
            "fallback_rate": sum(1 for m in metrics if m.fallback_used) / len(metrics) * 100,
            "cache_hit_rate": cache_hits / total_tool_calls * 100 if total_tool_calls else 0.0,
            "top_users": top_users,
            "tool_usage": dict(tool_usage),
            "recent_activity": [m.model_dump() for m in reversed(metrics[-10:])],
        }

    def clear(self) -> None:
        self.cache.delete(METRICS_KEY)
        logger.info("All metrics cleared")


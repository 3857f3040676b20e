import pytest

from rade_bot.src.services.metrics_service import (
    MAX_STORED_METRICS,
    ChatMetric,
    estimate_cost,
    estimate_tokens,
)


def metric(user_id="98765432100", cost=0.001, tools=None, cache_hits=0, fallback=False, elapsed=100):
    return ChatMetric(
        user_id=user_id,
        user_type="student",
        message="oi",
        model="gpt-4o-mini",
        response_time_ms=elapsed,
        input_tokens=100,
        output_tokens=50,
        total_tokens=150,
        estimated_cost=cost,
        tools_used=tools or [],
        cache_hits=cache_hits,
        fallback_used=fallback,
    )


def test_token_estimate_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcde") == 2


def test_cost_uses_rate_table_with_default():
    assert estimate_cost("gpt-4o", 1_000_000, 1_000_000) == pytest.approx(12.5)
    assert estimate_cost("unknown-model", 1_000_000, 0) == pytest.approx(0.15)


def test_summary(metrics):
    metrics.record(metric(tools=["get_student_info", "get_students_professionals"], cache_hits=1, elapsed=100))
    metrics.record(metric(user_id="11111111111", cost=0.005, tools=["get_student_info"], fallback=True, elapsed=300))

    summary = metrics.summary()

    assert summary["total_requests"] == 2
    assert summary["total_tokens"] == 300
    assert summary["avg_response_time_ms"] == 200
    assert summary["fallback_rate"] == 50
    assert summary["cache_hit_rate"] == pytest.approx(100 / 3)
    assert summary["top_users"][0]["user_id"] == "11111111111"
    assert summary["tool_usage"] == {"get_student_info": 2, "get_students_professionals": 1}
    assert summary["recent_activity"][0]["user_id"] == "11111111111"


def test_empty_summary_and_clear(metrics):
    metrics.record(metric())
    metrics.clear()

    assert metrics.summary()["total_requests"] == 0


def test_store_is_bounded(metrics):
    for _ in range(MAX_STORED_METRICS + 5):
        metrics.record(metric())

    assert len(metrics.stored_metrics()) == MAX_STORED_METRICS

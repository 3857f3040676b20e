"""
Bounded retry/fallback policy for model calls.

`AttemptPolicy` runs a fixed list of calls in order, feeding each one the
outcome of the previous call, and stops as soon as `should_fallback` rejects
an outcome. It never runs more than ``max_extra + 1`` calls, whatever the
calls return.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

OVERLOAD_STATUS_CODES = {503, 529}
OVERLOAD_MARKERS = ("overloaded", "503", "UNAVAILABLE")


def _status_code(error: Exception):
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status


def _serialize(error: Exception) -> str:
    body = getattr(error, "body", None)
    try:
        body_text = json.dumps(body, default=str) if body is not None else ""
    except (TypeError, ValueError):
        body_text = repr(body)
    return f"{type(error).__name__}: {error} {body_text}"


def is_overload_error(error: BaseException) -> bool:
    """True when the provider signals overload/unavailability rather than a real failure."""
    if _status_code(error) in OVERLOAD_STATUS_CODES:
        return True

    body = getattr(error, "body", None)
    if isinstance(body, dict):
        detail = body.get("error", body)
        if isinstance(detail, dict):
            if detail.get("code") in OVERLOAD_STATUS_CODES or detail.get("status") == "UNAVAILABLE":
                return True
            if str(detail.get("type", "")).lower() == "overloaded_error":
                return True

    serialized = _serialize(error)
    return "overloaded" in serialized.lower() or any(m in serialized for m in OVERLOAD_MARKERS[1:])


class AttemptPolicy:
    def __init__(self, max_extra: int):
        if max_extra < 0:
            raise ValueError("max_extra must be >= 0")
        self.max_extra = max_extra

    async def attempt(
        self,
        calls: Sequence[Callable[[Any], Awaitable[Any]]],
        should_fallback: Callable[[Any], bool],
    ) -> Any:
        """
        Runs the calls in order until one produces an acceptable outcome.

        Args:
            calls: Async callables; each receives the previous outcome (None for
                the first one, the raised exception when the previous call failed).
            should_fallback: Decides whether an outcome (a value or an exception)
                must be handed to the next call.

        Returns:
            The first accepted outcome, or the last value when every call was
            rejected.

        Raises:
            The exception of a call when it is not accepted for fallback, or the
            last exception when the calls ran out.
        """
        budget = list(calls)[: self.max_extra + 1]
        if not budget:
            raise ValueError("attempt() needs at least one call")

        previous: Any = None
        for index, call in enumerate(budget):
            is_last = index == len(budget) - 1
            try:
                outcome = await call(previous)
            except Exception as e:
                if is_last or not should_fallback(e):
                    raise
                logger.warning(f"Attempt {index + 1} failed ({type(e).__name__}), trying the next one")
                previous = e
                continue

            if is_last or not should_fallback(outcome):
                return outcome
            logger.info(f"Attempt {index + 1} rejected, trying the next one")
            previous = outcome

from __future__ import annotations


def resolve_timeout_s(
    *,
    call_timeout_s: float | None,
    deadline: float | None,
    now: float,
) -> float | None:
    """Return the effective timeout for one attempt, in seconds.

    The tighter of the per-call timeout and the time left until the parent's
    absolute ``deadline`` (a ``time.monotonic()`` value) wins. None means no
    bound. The result may be <= 0 when the deadline has already passed.
    """
    if deadline is None:
        return call_timeout_s
    remaining = deadline - now
    if call_timeout_s is None:
        return remaining
    return min(call_timeout_s, remaining)

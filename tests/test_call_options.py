from __future__ import annotations

import pytest

from msa_gateway.client.call_options import resolve_timeout_s


@pytest.mark.parametrize(
    ("call_timeout_s", "deadline", "expected"),
    [
        (None, None, None),
        (1.0, None, 1.0),
        (None, 102.5, 2.5),
        (1.0, 102.5, 1.0),
        (5.0, 100.25, 0.25),
        (1.0, 99.0, -1.0),
    ],
)
def test_resolve_timeout_picks_tightest_bound(
    call_timeout_s: float | None, deadline: float | None, expected: float | None
) -> None:
    assert resolve_timeout_s(call_timeout_s=call_timeout_s, deadline=deadline, now=100.0) == expected

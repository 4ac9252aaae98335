from __future__ import annotations

import anyio
import pytest

from prism.infra.rate_limit import DispatchPacer


def test_pacer_rejects_negative_interval() -> None:
    with pytest.raises(ValueError):
        DispatchPacer(min_interval_s=-0.1)


@pytest.mark.anyio
async def test_pacer_spaces_out_dispatches() -> None:
    pacer = DispatchPacer(min_interval_s=0.05)
    stamps: list[float] = []

    async def dispatch() -> None:
        await pacer.wait_turn()
        stamps.append(anyio.current_time())

    async with anyio.create_task_group() as tg:
        for _ in range(3):
            tg.start_soon(dispatch)

    stamps.sort()
    gaps = [b - a for a, b in zip(stamps, stamps[1:])]
    assert len(gaps) == 2
    assert all(gap >= 0.045 for gap in gaps)


@pytest.mark.anyio
async def test_pacer_with_zero_interval_does_not_wait() -> None:
    pacer = DispatchPacer(min_interval_s=0)
    with anyio.fail_after(1):
        for _ in range(5):
            await pacer.wait_turn()

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from ageless.workers import auction_status_worker


async def test_run_once_reports_counts():
    with patch(
        "ageless.workers.auction_status_worker.update_auction_statuses",
        new=AsyncMock(return_value={"activated": 2, "ended": 1}),
    ):
        result = await auction_status_worker.run_auction_status_once()

    assert result["status"] == "ok"
    assert result["activated"] == 2
    assert result["ended"] == 1
    assert "timestamp" in result


async def test_loop_survives_failed_cycle():
    cycle = AsyncMock(side_effect=[RuntimeError("db down"), {"status": "ok"}])
    sleep = AsyncMock(side_effect=[None, asyncio.CancelledError()])

    with patch("ageless.workers.auction_status_worker.run_auction_status_once", new=cycle), \
            patch("ageless.workers.auction_status_worker.asyncio.sleep", new=sleep):
        with pytest.raises(asyncio.CancelledError):
            await auction_status_worker.run_auction_status_loop(interval_sec=5)

    assert cycle.await_count == 2
    sleep.assert_awaited_with(5)

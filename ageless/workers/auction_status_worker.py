"""Auction status worker.

Periodically moves upcoming auctions to active once their start date passes
and ends active auctions whose end date has passed (winner selection, reserve
check, winner notification).
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict

from ageless.services.auctions import update_auction_statuses
from ageless.utils.logger import logger


async def run_auction_status_once() -> Dict[str, Any]:
    started = datetime.utcnow()
    result = await update_auction_statuses()
    if result["activated"] or result["ended"]:
        logger.info(
            "[auction-worker] activated=%s ended=%s",
            result["activated"],
            result["ended"],
        )
    return {"status": "ok", **result, "timestamp": started.isoformat()}


async def run_auction_status_loop(interval_sec: int = 60) -> None:
    """Run the auction status worker in a simple interval loop."""
    logger.info("[auction-worker] Auction status loop started (interval=%s seconds)", interval_sec)

    while True:
        try:
            await run_auction_status_once()
        except Exception as exc:
            logger.error("[auction-worker] Auction status cycle failed: %s", exc, exc_info=True)

        await asyncio.sleep(interval_sec)

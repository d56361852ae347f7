"""
Background workers for the marketplace.

Workers:
- auction_status_worker: activates scheduled auctions and ends expired ones
"""

from ageless.workers.auction_status_worker import run_auction_status_loop, run_auction_status_once

__all__ = [
    "run_auction_status_loop",
    "run_auction_status_once",
]

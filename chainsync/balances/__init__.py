"""
Module for caching ETH balance snapshots.

One row per ``(user_id, address)`` holds the most recently observed
balance. Fetching a balance again replaces the snapshot.

Example:
    ::

        from chainsync.backfill import BackfillService

        service = BackfillService.create(cache_path="chainsync.db")
        data = service.get_balance("0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045")
        # => {"balance": "...", "blockNumber": ..., "formattedBalance": "..."}
        service.store_balance(
            "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045",
            int(data["balance"]),
            data["blockNumber"],
            user_id="alice",
        )
"""

from chainsync.balances.balance import AddressBalance
from chainsync.balances.repo import BalancesRepo

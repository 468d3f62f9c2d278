"""
Module for on-demand backfills of an address history.

:class:`BackfillService` infers where the history of an address starts
(block ``0`` for an EOA, the deployment block for a contract), then scans
full blocks for transactions sent from or to it. Only transactions that
aren't stored yet are saved and returned.

Example:
    ::

        from chainsync.backfill import BackfillService

        service = BackfillService.create(
            rpc="https://ethereum-sepolia-rpc.publicnode.com",
            cache_path="chainsync.db",
        )
        service.determine_start_block("0x7b79995e5f793A07Bc00c21412e50Ecae098E7f9")
        txs = service.fetch_transactions(
            "0x7b79995e5f793A07Bc00c21412e50Ecae098E7f9", user_id="alice"
        )
        service.get_user_transactions("alice", page=1, limit=50)
"""

from chainsync.backfill.service import CONTRACT, EOA, BackfillService

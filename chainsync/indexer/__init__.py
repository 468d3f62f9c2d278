"""
Module for tailing the event log of a contract.

:class:`IndexerService` repeatedly queries the logs of the next chunk of
blocks after a durable cursor, decodes them against a human-readable event
declaration and upserts them as :class:`chainsync.events.Event`.

Example:
    ::

        from chainsync.indexer import IndexerService

        indexer = IndexerService.create(
            rpc="https://ethereum-sepolia-rpc.publicnode.com",
            cache_path="chainsync.db",
        )
        indexer.start(
            "0x7b79995e5f793A07Bc00c21412e50Ecae098E7f9",
            "Transfer(address indexed from, address indexed to, uint256 value)",
            start_block=5_000_000,
        )
        indexer.status()
        # => {"isRunning": True, "state": "running", "persistedCursor": {...}, ...}
        indexer.stop()
"""

from chainsync.indexer.service import IndexerService, IndexerState

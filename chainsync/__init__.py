"""
Chainsync turns a rate-limited Ethereum JSON-RPC feed into ordered,
deduplicated rows of a sqlite database.

There are two sync engines and a read service:

+------------------------------------------------+------------------------------+
| Service                                        | Description                  |
+================================================+==============================+
| :class:`chainsync.indexer.IndexerService`      | Tailing the event log of a   |
|                                                | contract behind a durable    |
|                                                | cursor                       |
+------------------------------------------------+------------------------------+
| :class:`chainsync.backfill.BackfillService`    | On-demand transaction        |
|                                                | history and balances of an   |
|                                                | address                      |
+------------------------------------------------+------------------------------+
| :class:`chainsync.events.EventsService`        | Querying indexed events      |
+------------------------------------------------+------------------------------+

The services read the RPC endpoint from ``WEB3_PROVIDER_URI`` and the
database path from ``CHAINSYNC_DB_PATH`` unless ``rpc`` and ``cache_path``
are passed explicitly. Call :func:`chainsync.log.configure_logging` once
at startup to set up structured logs.
"""

"""
Module for storing and querying indexed contract events.

:class:`EventsRepo` upserts events by their ``(transaction_hash, log_index)``
identity, so re-processing a block range never duplicates rows.
:class:`EventsService` serves paginated searches and volume aggregations
over the stored events.

Example:
    ::

        from chainsync.events import EventsService

        service = EventsService.create(cache_path="chainsync.db")
        page = service.get_events(
            contract_address="0x7b79995e5f793A07Bc00c21412e50Ecae098E7f9",
            sender="0x5777d92f208679db4b9778590fa3cab3ac9e2168",
        )
        volume = service.aggregate_volume(
            "0x7b79995e5f793A07Bc00c21412e50Ecae098E7f9", interval="daily"
        )
"""

from chainsync.events.event import Event
from chainsync.events.repo import EventsRepo
from chainsync.events.service import EventsService

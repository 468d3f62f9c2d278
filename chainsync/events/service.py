from __future__ import annotations
from typing import Any, Dict, List

from chainsync.core import Core
from chainsync.events.event import Event
from chainsync.events.repo import EventsRepo


class EventsService(Core):
    """
    Read access to the events materialized by
    :class:`chainsync.indexer.IndexerService`.

    Args:
        events_repo: An instance of :class:`EventsRepo`
        kwargs: Args for the :class:`chainsync.core.Core`
    """

    _events_repo: EventsRepo

    def __init__(self, events_repo: EventsRepo, **kwargs):
        super().__init__(**kwargs)
        self._events_repo = events_repo

    @staticmethod
    def create(**kwargs) -> EventsService:
        """
        Create an instance of :class:`EventsService`

        Args:
            kwargs: Args for the :class:`chainsync.core.Core`

        Returns:
            An instance of :class:`EventsService`
        """
        return EventsService(EventsRepo(**kwargs), **kwargs)

    def get_events(
        self,
        contract_address: str | None = None,
        event_name: str | None = None,
        from_block: int | None = None,
        to_block: int | None = None,
        sender: str | None = None,
        recipient: str | None = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "block_number",
        sort_order: str = "DESC",
    ) -> Dict[str, Any]:
        """
        Page of stored events.

        Args:
            contract_address: Contract address
            event_name: Event name
            from_block: starting from this block (inclusive)
            to_block: ending with this block (inclusive)
            sender: Sender argument
            recipient: Recipient argument
            page: 1-based page number
            limit: page size
            sort_by: see :meth:`EventsRepo.find`
            sort_order: ``ASC`` or ``DESC``

        Returns:
            ``{"events": [...], "pagination": {"page", "limit", "total", "pages"}}``
        """
        page = max(int(page), 1)
        filters = {
            "contract_address": contract_address,
            "event_name": event_name,
            "from_block": from_block,
            "to_block": to_block,
            "sender": sender,
            "recipient": recipient,
        }
        events: List[Event] = list(
            self._events_repo.find(
                filters,
                limit=limit,
                offset=(page - 1) * limit,
                sort_by=sort_by,
                sort_order=sort_order,
            )
        )
        total = self._events_repo.count(filters)
        return {
            "events": [e.to_dict() for e in events],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": -(-total // limit) if limit > 0 else 0,
            },
        }

    def aggregate_volume(
        self,
        contract_address: str,
        interval: str = "daily",
        from_timestamp: int | None = None,
        to_timestamp: int | None = None,
    ) -> List[Dict[str, Any]]:
        """
        See :meth:`EventsRepo.aggregate_volume`
        """
        return self._events_repo.aggregate_volume(
            contract_address, interval, from_timestamp, to_timestamp
        )

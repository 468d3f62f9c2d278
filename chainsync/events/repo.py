from __future__ import annotations
from typing import Any, Dict, Iterator, List, Sequence, Tuple

from chainsync.core import Repo
from chainsync.events.event import COLUMNS, Event
from chainsync.errors import ConfigurationError
from chainsync.utils import utc_now

#: Identity of an event row
EVENT_CONFLICT_FIELDS = ("transaction_hash", "log_index")
#: Columns refreshed when an already known event is seen again
EVENT_REFRESH_FIELDS = (
    "block_number",
    "timestamp",
    "raw_args",
    "sender_address",
    "recipient_address",
    "value",
)

SORT_COLUMNS = ("block_number", "timestamp", "log_index", "value", "event_name")

#: sqlite ``strftime`` formats of the volume aggregation buckets
INTERVALS = {
    "hourly": "%Y-%m-%dT%H:00:00Z",
    "daily": "%Y-%m-%dT00:00:00Z",
    "monthly": "%Y-%m-01T00:00:00Z",
}

FILTERS = {
    "contract_address": "contract_address = ?",
    "from_block": "block_number >= ?",
    "to_block": "block_number <= ?",
    "event_name": "event_name = ?",
    "sender": "sender_address = ?",
    "recipient": "recipient_address = ?",
}


class EventsRepo(Repo):
    """
    Reading and writing :class:`Event` to database.
    """

    def upsert(
        self,
        events: List[Event],
        conflict_fields: Sequence[str] = EVENT_CONFLICT_FIELDS,
        refresh_fields: Sequence[str] = EVENT_REFRESH_FIELDS,
    ):
        """
        Insert events, or refresh ``refresh_fields`` of events already
        stored under the same ``conflict_fields``.

        Saving the same events twice leaves the table unchanged,
        the identity columns are never rewritten.

        Args:
            events: List of events to save
            conflict_fields: Unique key of the table
            refresh_fields: Columns updated on conflict
        """
        if len(events) == 0:
            return
        _check_columns(conflict_fields)
        _check_columns(refresh_fields)
        if set(conflict_fields) & set(refresh_fields):
            raise ConfigurationError("Identity columns can't be refreshed")

        updates = ", ".join(f"{c} = excluded.{c}" for c in refresh_fields)
        on_conflict = (
            f"DO UPDATE SET {updates}" if refresh_fields else "DO NOTHING"
        )
        statement = (
            f"INSERT INTO events ({', '.join(COLUMNS)}, indexed_at) "
            f"VALUES ({', '.join('?' * (len(COLUMNS) + 1))}) "
            f"ON CONFLICT ({', '.join(conflict_fields)}) {on_conflict}"
        )
        now = utc_now()
        self._executemany(statement, [(*e.to_row(), now) for e in events])

    def get(self, transaction_hash: str, log_index: int) -> Event | None:
        """
        Find an event by its identity.
        """
        row = self._execute(
            f"SELECT {', '.join(COLUMNS)} FROM events WHERE transaction_hash = ? AND log_index = ?",
            (transaction_hash.lower(), log_index),
        ).fetchone()
        if not row:
            return None
        return Event.from_row(row)

    def find(
        self,
        filters: Dict[str, Any] | None = None,
        limit: int = 10,
        offset: int = 0,
        sort_by: str = "block_number",
        sort_order: str = "DESC",
    ) -> Iterator[Event]:
        """
        Find events in the database.

        Args:
            filters: any of ``contract_address``, ``from_block``, ``to_block``
                     (both inclusive), ``event_name``, ``sender``, ``recipient``
            limit: max number of events
            offset: number of events to skip
            sort_by: one of :const:`SORT_COLUMNS`
            sort_order: ``ASC`` or ``DESC``

        Returns:
            Iterator over found events
        """
        if not sort_by in SORT_COLUMNS:
            raise ConfigurationError(f"Can't sort events by {sort_by!r}")
        sort_order = sort_order.upper()
        if not sort_order in ("ASC", "DESC"):
            raise ConfigurationError(f"Invalid sort order {sort_order!r}")

        where, values = self._convert_filters_to_sql(filters)
        order = f"{sort_by} {sort_order}"
        if sort_by == "value":
            order = f"CAST(value AS REAL) {sort_order}"
        statement = (
            f"SELECT {', '.join(COLUMNS)} FROM events{where} "
            f"ORDER BY {order}, log_index {sort_order} LIMIT ? OFFSET ?"
        )
        rows = self._execute(statement, (*values, limit, offset)).fetchall()
        return (Event.from_row(r) for r in rows)

    def count(self, filters: Dict[str, Any] | None = None) -> int:
        where, values = self._convert_filters_to_sql(filters)
        return self._execute(f"SELECT COUNT(*) FROM events{where}", values).fetchone()[0]

    def aggregate_volume(
        self,
        contract_address: str,
        interval: str = "daily",
        from_timestamp: int | None = None,
        to_timestamp: int | None = None,
    ) -> List[Dict[str, Any]]:
        """
        Number of events and sum of their values per time bucket.

        Args:
            contract_address: Contract address
            interval: ``hourly``, ``daily`` or ``monthly``
            from_timestamp: UNIX timestamp (inclusive)
            to_timestamp: UNIX timestamp (inclusive)

        Returns:
            Buckets ordered by time: ``{"interval_start", "total_events", "total_value"}``
        """
        if not interval in INTERVALS:
            raise ConfigurationError(
                f"Invalid interval {interval!r}. Supported: {', '.join(INTERVALS)}."
            )
        conditions = ["contract_address = ?"]
        values: List[Any] = [contract_address.lower()]
        if from_timestamp is not None:
            conditions.append("timestamp >= ?")
            values.append(from_timestamp)
        if to_timestamp is not None:
            conditions.append("timestamp <= ?")
            values.append(to_timestamp)

        rows = self._execute(
            f"SELECT strftime('{INTERVALS[interval]}', timestamp, 'unixepoch') AS bucket, value "
            f"FROM events WHERE {' AND '.join(conditions)} ORDER BY bucket",
            values,
        ).fetchall()

        # uint256 sums don't fit sqlite integers
        buckets: Dict[str, Dict[str, Any]] = {}
        for bucket, value in rows:
            agg = buckets.setdefault(
                bucket, {"interval_start": bucket, "total_events": 0, "total_value": 0}
            )
            agg["total_events"] += 1
            agg["total_value"] += int(value or 0)
        return list(buckets.values())

    def purge(self):
        """
        Clean all database entries
        """
        self._execute("DELETE FROM events")

    def _convert_filters_to_sql(
        self, filters: Dict[str, Any] | None
    ) -> Tuple[str, List[Any]]:
        if not filters:
            return ("", [])
        conditions = []
        values = []
        for k, v in filters.items():
            if v is None:
                continue
            if not k in FILTERS:
                raise ConfigurationError(f"Unknown event filter {k!r}")
            if k in ("contract_address", "sender", "recipient"):
                v = v.lower()
            conditions.append(FILTERS[k])
            values.append(v)
        if len(conditions) == 0:
            return ("", [])
        return (" WHERE " + " AND ".join(conditions), values)


def _check_columns(columns: Sequence[str]):
    for c in columns:
        if not c in COLUMNS:
            raise ConfigurationError(f"Unknown events column {c!r}")

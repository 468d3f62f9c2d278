from __future__ import annotations
from typing import Any, Dict, Tuple
import json

#: Column order of the ``events`` table used by :meth:`Event.to_row`
COLUMNS = (
    "contract_address",
    "event_name",
    "block_number",
    "transaction_hash",
    "log_index",
    "block_hash",
    "timestamp",
    "sender_address",
    "recipient_address",
    "value",
    "raw_args",
)


class Event:
    """
    Event represents a decoded event log of the indexed contract.
    The identity of an event is ``(transaction_hash, log_index)``.
    """

    #: The contract address this event appeared in (always stored lowercase)
    contract_address: str
    #: Event name
    event_name: str
    #: The block this event appeared in
    block_number: int
    #: The hash of the transaction this event appeared in
    transaction_hash: str
    #: The log number for this event inside the block
    log_index: int
    #: Hash of the block this event appeared in
    block_hash: str
    #: UNIX timestamp of the block
    timestamp: int
    #: Sender argument, if the event has one
    sender_address: str | None
    #: Recipient argument, if the event has one
    recipient_address: str | None
    #: Value argument, if the event has one
    value: int | None
    #: All decoded arguments
    raw_args: Dict[str, Any]

    def __init__(
        self,
        contract_address: str,
        event_name: str,
        block_number: int,
        transaction_hash: str,
        log_index: int,
        block_hash: str,
        timestamp: int,
        sender_address: str | None,
        recipient_address: str | None,
        value: int | None,
        raw_args: Dict[str, Any],
    ):
        self.contract_address = contract_address.lower()
        self.event_name = event_name
        self.block_number = block_number
        self.transaction_hash = transaction_hash.lower()
        self.log_index = log_index
        self.block_hash = block_hash.lower()
        self.timestamp = timestamp
        self.sender_address = _lower(sender_address)
        self.recipient_address = _lower(recipient_address)
        self.value = value
        self.raw_args = raw_args

    @property
    def key(self) -> Tuple[str, int]:
        """
        Identity of the event
        """
        return (self.transaction_hash, self.log_index)

    @staticmethod
    def from_row(row: Tuple[Any, ...]) -> Event:
        """
        Deserialize from database row

        Args:
            row: database row (see :const:`COLUMNS`)
        """
        values = list(row[: len(COLUMNS)])
        values[9] = None if values[9] is None else int(values[9])
        values[10] = json.loads(values[10]) if values[10] else {}
        return Event(*values)

    def to_row(self) -> Tuple[Any, ...]:
        """
        Serialize to database row

        Returns:
            database row
        """
        return (
            self.contract_address,
            self.event_name,
            self.block_number,
            self.transaction_hash,
            self.log_index,
            self.block_hash,
            self.timestamp,
            self.sender_address,
            self.recipient_address,
            None if self.value is None else str(self.value),
            json.dumps(self.raw_args),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert :class:`Event` to dict
        """
        return {
            "contractAddress": self.contract_address,
            "eventName": self.event_name,
            "blockNumber": self.block_number,
            "transactionHash": self.transaction_hash,
            "logIndex": self.log_index,
            "blockHash": self.block_hash,
            "timestamp": self.timestamp,
            "senderAddress": self.sender_address,
            "recipientAddress": self.recipient_address,
            "value": None if self.value is None else str(self.value),
            "rawArgs": self.raw_args,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> Event:
        """
        Create :class:`Event` from dict
        """
        return Event(
            contract_address=d["contractAddress"],
            event_name=d["eventName"],
            block_number=d["blockNumber"],
            transaction_hash=d["transactionHash"],
            log_index=d["logIndex"],
            block_hash=d["blockHash"],
            timestamp=d["timestamp"],
            sender_address=d.get("senderAddress"),
            recipient_address=d.get("recipientAddress"),
            value=None if d.get("value") is None else int(d["value"]),
            raw_args=d.get("rawArgs") or {},
        )

    def __eq__(self, other):
        if type(other) is type(self):
            return self.__dict__ == other.__dict__
        return False

    def __repr__(self):
        return f"Event({json.dumps(self.to_dict())})"


def _lower(address: str | None) -> str | None:
    if address is None:
        return None
    return str(address).lower()

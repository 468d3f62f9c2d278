from __future__ import annotations
from typing import Any, Dict
import json

from chainsync.constants import CURSOR_ID


class Cursor:
    """
    Durable read position of the event indexer.

    There's a single cursor per process, stored as a document under
    :const:`chainsync.constants.CURSOR_ID`. ``last_processed_block`` only
    moves forward, after every event of the processed range is saved.
    """

    #: Document id
    id: str
    #: Last block whose events are fully saved
    last_processed_block: int
    #: ``True`` while the indexer is running
    is_running: bool
    #: Number of failed poll iterations
    error_count: int
    #: Indexed contract (always stored lowercase)
    contract_address: str | None
    #: Indexed event declaration
    event_signature: str | None
    #: First block requested by the operator
    start_block: int
    #: Message of the latest failure
    last_error: str | None
    created_at: str | None
    updated_at: str | None

    def __init__(
        self,
        last_processed_block: int,
        is_running: bool = False,
        error_count: int = 0,
        contract_address: str | None = None,
        event_signature: str | None = None,
        start_block: int = 0,
        last_error: str | None = None,
        created_at: str | None = None,
        updated_at: str | None = None,
        id: str = CURSOR_ID,
    ):
        self.id = id
        self.last_processed_block = last_processed_block
        self.is_running = is_running
        self.error_count = error_count
        self.contract_address = (
            None if contract_address is None else contract_address.lower()
        )
        self.event_signature = event_signature
        self.start_block = start_block
        self.last_error = last_error
        self.created_at = created_at
        self.updated_at = updated_at

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert :class:`Cursor` to the stored document
        """
        return {
            "_id": self.id,
            "lastProcessedBlock": self.last_processed_block,
            "isRunning": self.is_running,
            "errorCount": self.error_count,
            "contractAddress": self.contract_address,
            "eventSignature": self.event_signature,
            "startBlock": self.start_block,
            "lastError": self.last_error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> Cursor:
        """
        Create :class:`Cursor` from the stored document
        """
        return Cursor(
            id=d.get("_id", CURSOR_ID),
            last_processed_block=d["lastProcessedBlock"],
            is_running=bool(d.get("isRunning", False)),
            error_count=d.get("errorCount", 0),
            contract_address=d.get("contractAddress"),
            event_signature=d.get("eventSignature"),
            start_block=d.get("startBlock", 0),
            last_error=d.get("lastError"),
            created_at=d.get("createdAt"),
            updated_at=d.get("updatedAt"),
        )

    def __eq__(self, other):
        if type(other) is type(self):
            return self.__dict__ == other.__dict__
        return False

    def __repr__(self):
        return f"Cursor({json.dumps(self.to_dict())})"

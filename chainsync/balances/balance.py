from __future__ import annotations
from typing import Any, Dict, Tuple
import json

from chainsync.utils import format_ether


class AddressBalance:
    """
    AddressBalance is the most recently observed ETH balance of an
    address, per owner. It is a point-in-time snapshot, not a history:
    storing a new one replaces the previous snapshot.
    """

    #: Owner of the snapshot, ``None`` for anonymous requests
    user_id: str | None
    #: The address for the ETH balance (always stored lowercase)
    address: str
    #: ETH balance in wei
    balance: int
    #: The block number of the balance snapshot
    block_number: int
    #: ISO timestamp of the last refresh
    last_updated: str | None

    def __init__(
        self,
        user_id: str | None,
        address: str,
        balance: int,
        block_number: int,
        last_updated: str | None = None,
    ):
        self.user_id = user_id or None
        self.address = address.lower()
        self.balance = balance
        self.block_number = block_number
        self.last_updated = last_updated

    @property
    def formatted_balance(self) -> str:
        """
        Balance in ether
        """
        return format_ether(self.balance)

    @staticmethod
    def from_row(row: Tuple[str, str, str, int, str]) -> AddressBalance:
        """
        Deserialize from database row

        Args:
            row: database row
        """
        user_id, address, balance, block_number, last_updated = row
        return AddressBalance(user_id, address, int(balance), block_number, last_updated)

    def to_row(self) -> Tuple[str, str, str, int, str | None]:
        """
        Serialize to database row. A missing owner is stored as ``""``
        so that ``(user_id, address)`` stays unique.

        Returns:
            database row
        """
        return (
            self.user_id or "",
            self.address,
            str(self.balance),
            self.block_number,
            self.last_updated,
        )

    @staticmethod
    def from_dict(dct: Dict[str, Any]) -> AddressBalance:
        """
        Create :class:`AddressBalance` from dict
        """
        return AddressBalance(
            user_id=dct.get("userId"),
            address=dct["address"],
            balance=int(dct["balance"]),
            block_number=dct["blockNumber"],
            last_updated=dct.get("lastUpdated"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert :class:`AddressBalance` to dict
        """
        return {
            "userId": self.user_id,
            "address": self.address,
            "balance": str(self.balance),
            "blockNumber": self.block_number,
            "lastUpdated": self.last_updated,
            "formattedBalance": self.formatted_balance,
        }

    def __eq__(self, other):
        if type(other) is type(self):
            return self.__dict__ == other.__dict__
        return False

    def __repr__(self):
        return f"AddressBalance({json.dumps(self.to_dict())})"

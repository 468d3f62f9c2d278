from __future__ import annotations
from typing import Any, Dict, Tuple
import json

from chainsync.errors import DecodeError

#: Column order of the ``transactions`` table used by :meth:`Transaction.to_row`
COLUMNS = (
    "user_id",
    "hash",
    "from_address",
    "to_address",
    "value",
    "gas_used",
    "gas_price",
    "block_number",
    "block_hash",
    "transaction_index",
    "nonce",
    "input",
    "status",
)


class Transaction:
    """
    Transaction touching a backfilled address.

    ``from_address``, ``to_address``, ``nonce`` and ``block_number`` are
    immutable chain facts. Only ``gas_used`` and ``status`` are refreshed
    when the same hash is stored again.
    """

    #: Owner of the backfill request, if any
    user_id: str | None
    #: Transaction hash (always stored lowercase)
    hash: str
    #: Sender (always stored lowercase)
    from_address: str
    #: Recipient, ``None`` for contract creations
    to_address: str | None
    #: Value in wei
    value: int
    #: Gas used, known only from the receipt
    gas_used: int | None
    #: Gas price in wei
    gas_price: int | None
    block_number: int
    block_hash: str
    transaction_index: int
    nonce: int
    #: Calldata
    input: str
    #: Receipt status (1 success, 0 failure)
    status: int | None

    def __init__(
        self,
        user_id: str | None,
        hash: str,
        from_address: str,
        to_address: str | None,
        value: int,
        gas_used: int | None,
        gas_price: int | None,
        block_number: int,
        block_hash: str,
        transaction_index: int,
        nonce: int,
        input: str,
        status: int | None,
    ):
        self.user_id = user_id
        self.hash = hash.lower()
        self.from_address = from_address.lower()
        self.to_address = None if to_address is None else to_address.lower()
        self.value = value
        self.gas_used = gas_used
        self.gas_price = gas_price
        self.block_number = block_number
        self.block_hash = block_hash.lower()
        self.transaction_index = transaction_index
        self.nonce = nonce
        self.input = input
        self.status = status

    @staticmethod
    def from_rpc(
        tx: Dict[str, Any],
        receipt: Dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> Transaction:
        """
        Build a transaction from a normalized RPC transaction object
        and, optionally, its receipt.

        Raises:
            DecodeError: if mandatory fields are missing
        """
        receipt = receipt or {}
        try:
            return Transaction(
                user_id=user_id,
                hash=tx["hash"],
                from_address=tx["from"],
                to_address=tx.get("to"),
                value=_int(tx.get("value")) or 0,
                gas_used=_int(receipt.get("gasUsed")),
                gas_price=_int(tx.get("gasPrice")),
                block_number=_int(tx["blockNumber"]),
                block_hash=tx["blockHash"],
                transaction_index=_int(tx["transactionIndex"]),
                nonce=_int(tx["nonce"]),
                input=tx.get("input") or "0x",
                status=_int(receipt.get("status")),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(f"Malformed transaction {tx.get('hash')}: {e!r}") from e

    @staticmethod
    def from_row(row: Tuple[Any, ...]) -> Transaction:
        """
        Deserialize from database row

        Args:
            row: database row (see :const:`COLUMNS`)
        """
        values = list(row[: len(COLUMNS)])
        for i in (4, 5, 6):
            values[i] = _int(values[i])
        return Transaction(*values)

    def to_row(self) -> Tuple[Any, ...]:
        """
        Serialize to database row. Wei amounts are stored as text.

        Returns:
            database row
        """
        return (
            self.user_id,
            self.hash,
            self.from_address,
            self.to_address,
            str(self.value),
            _str(self.gas_used),
            _str(self.gas_price),
            self.block_number,
            self.block_hash,
            self.transaction_index,
            self.nonce,
            self.input,
            self.status,
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert :class:`Transaction` to dict
        """
        return {
            "userId": self.user_id,
            "hash": self.hash,
            "fromAddress": self.from_address,
            "toAddress": self.to_address,
            "value": str(self.value),
            "gasUsed": _str(self.gas_used),
            "gasPrice": _str(self.gas_price),
            "blockNumber": self.block_number,
            "blockHash": self.block_hash,
            "transactionIndex": self.transaction_index,
            "nonce": self.nonce,
            "input": self.input,
            "status": self.status,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> Transaction:
        """
        Create :class:`Transaction` from dict
        """
        return Transaction(
            user_id=d.get("userId"),
            hash=d["hash"],
            from_address=d["fromAddress"],
            to_address=d.get("toAddress"),
            value=int(d["value"]),
            gas_used=_int(d.get("gasUsed")),
            gas_price=_int(d.get("gasPrice")),
            block_number=d["blockNumber"],
            block_hash=d["blockHash"],
            transaction_index=d["transactionIndex"],
            nonce=d["nonce"],
            input=d["input"],
            status=d.get("status"),
        )

    def __eq__(self, other):
        if type(other) is type(self):
            return self.__dict__ == other.__dict__
        return False

    def __repr__(self):
        return f"Transaction({json.dumps(self.to_dict())})"


def _int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _str(value: int | None) -> str | None:
    return None if value is None else str(value)

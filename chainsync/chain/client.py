from __future__ import annotations
from typing import Any, Callable, Dict, List, TypeVar
import structlog
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception

from chainsync.core import Core
from chainsync.chain.signature import DecodedLog, EventSignature
from chainsync.errors import ChainSyncError, TransientRPCError
from chainsync.utils import normalize_response

logger = structlog.get_logger(__name__)

T = TypeVar("T")

#: Failures of the remote node that are worth retrying
TRANSIENT_ERRORS = (
    RequestException,
    Web3Exception,
    TimeoutError,
    ConnectionError,
    ValueError,
)


class ChainClient(Core):
    """
    Thin capability layer over :class:`web3.Web3` used by both engines.

    Every request carries the bounded timeout of :attr:`Core.rpc_timeout`.
    Any network failure, timeout or RPC error response is raised as
    :class:`chainsync.errors.TransientRPCError`, so that callers have
    a single exception to retry on.

    Responses are normalized to plain python values: bytes become
    ``0x...`` strings (see :func:`chainsync.utils.json_response`).

    Args:
        kwargs: Args for the :class:`chainsync.core.Core`
    """

    @staticmethod
    def create(**kwargs) -> ChainClient:
        """
        Create an instance of :class:`ChainClient`

        Args:
            kwargs: Args for the :class:`chainsync.core.Core`
        """
        return ChainClient(**kwargs)

    def current_block_height(self) -> int:
        """
        Number of the latest block
        """
        return int(self._call("eth_blockNumber", lambda: self.w3.eth.block_number))

    def get_code(self, address: str, block_height: int | None = None) -> bytes:
        """
        Contract bytecode at ``address``.

        Args:
            address: Contract / EOA address
            block_height: Block to read the code at (latest if ``None``)

        Returns:
            Bytecode, empty for externally-owned accounts
        """
        block_identifier = "latest" if block_height is None else block_height
        code = self._call(
            "eth_getCode",
            lambda: self.w3.eth.get_code(
                Web3.to_checksum_address(address), block_identifier=block_identifier
            ),
        )
        if isinstance(code, str):
            return bytes.fromhex(code[2:] if code.startswith("0x") else code)
        return bytes(code or b"")

    def get_block(self, number: int, full_transactions: bool = False) -> Dict[str, Any]:
        """
        Block by number.

        Args:
            number: Block number
            full_transactions: return transaction objects instead of hashes

        Returns:
            Normalized block
        """
        raw = self._call(
            "eth_getBlockByNumber",
            lambda: self.w3.eth.get_block(number, full_transactions=full_transactions),
        )
        if raw is None:
            raise TransientRPCError(f"Block {number} is not available yet")
        return normalize_response(raw)

    def query_logs(
        self, address: str, topic: str, from_block: int, to_block: int
    ) -> List[Dict[str, Any]]:
        """
        Historical logs emitted by ``address`` with topic0 equal to ``topic``.

        Args:
            address: Contract address
            topic: topic0 (see :attr:`chainsync.chain.EventSignature.topic`)
            from_block: first block (inclusive)
            to_block: last block (inclusive)

        Returns:
            Normalized logs ordered by block number and log index
        """
        params = {
            "address": Web3.to_checksum_address(address),
            "topics": [topic],
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        raw = self._call("eth_getLogs", lambda: self.w3.eth.get_logs(params))
        logs = normalize_response(list(raw or []))
        return sorted(logs, key=lambda l: (l["blockNumber"], l["logIndex"]))

    def decode_log(self, log: Dict[str, Any], signature: EventSignature) -> DecodedLog:
        """
        Decode a log returned by :meth:`query_logs`.

        Raises:
            DecodeError: if the log doesn't match ``signature``
        """
        return signature.decode(log)

    def get_balance(self, address: str, block_height: int | None = None) -> int:
        """
        ETH balance in wei.
        """
        block_identifier = "latest" if block_height is None else block_height
        balance = self._call(
            "eth_getBalance",
            lambda: self.w3.eth.get_balance(
                Web3.to_checksum_address(address), block_identifier=block_identifier
            ),
        )
        return int(balance)

    def get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """
        Receipt of a mined transaction (``gasUsed``, ``status``, ...).
        """
        raw = self._call(
            "eth_getTransactionReceipt",
            lambda: self.w3.eth.get_transaction_receipt(tx_hash),
        )
        return normalize_response(raw)

    def _call(self, method: str, request: Callable[[], T]) -> T:
        try:
            return request()
        except ChainSyncError:
            raise
        except TRANSIENT_ERRORS as e:
            logger.debug("RPC request failed", method=method, error=repr(e))
            raise TransientRPCError(f"{method} failed: {e!r}") from e

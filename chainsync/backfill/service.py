from __future__ import annotations
import time
from functools import cached_property
from typing import Any, Callable, Dict, List
import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from chainsync.balances import AddressBalance, BalancesRepo
from chainsync.chain import ChainClient
from chainsync.constants import (
    DEFAULT_BACKFILL_MAX_RETRIES,
    DEFAULT_BACKFILL_RETRY_BASE_DELAY,
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_BLOCKS,
    DEFAULT_TARGET_COUNT,
    DEFAULT_THROTTLE_DELAY,
)
from chainsync.core import Core, env_setting
from chainsync.errors import ConfigurationError, DecodeError, TransientRPCError
from chainsync.transactions import Transaction, TransactionsRepo
from chainsync.utils import short_address, validate_address

logger = structlog.get_logger(__name__)

EOA = "EOA"
CONTRACT = "CONTRACT"


class BackfillService(Core):
    """
    Service for collecting the transaction history of one address.

    **Start block inference**

    An externally-owned account is scanned from the genesis block. For a
    contract the scan starts at its deployment block, found by a binary
    search over the block heights with ``eth_getCode``. That takes
    ``O(log chain_tip)`` requests.

    **Scanning**

    The ``[start_block, end_block]`` window is walked in batches of
    ``batch_size`` blocks, one full block per request, with a
    ``throttle_delay`` pause between two requests. Transactions sent from
    or to the address are stored unless their hash is already known.
    The scan returns as soon as ``target_count`` new transactions are
    collected, and never looks at more than ``max_blocks`` blocks per call.

    **Request/Response flow**

    ::

                     +-----------------+            +-------------+ +------------------+
                     | BackfillService |            | ChainClient | | TransactionsRepo |
                     +-----------------+            +-------------+ +------------------+
                              |                            |                  |
                              | Code at chain tip          |                  |
                              |--------------------------->|                  |
                              |                            |                  |
                              | Code at mid (binary search)|                  |
                              |--------------------------->|                  |
                              |                            |                  |
                              | Full block (throttled)     |                  |
                              |--------------------------->|                  |
                              |                            |                  |
                              | Known hash?                |                  |
                              |---------------------------------------------->|
                              |                            |                  |
                              | Receipt of a new tx        |                  |
                              |--------------------------->|                  |
                              |                            |                  |
                              | Upsert and commit          |                  |
                              |---------------------------------------------->|
                              |                            |                  |

    Args:
        chain: Chain client
        transactions_repo: Repo of transactions
        balances_repo: Repo of balance snapshots
        batch_size: Blocks per batch
        target_count: New transactions collected before returning
        throttle_delay: Seconds between two block requests
        max_blocks: Max blocks scanned per call (``None`` for no limit)
        max_retries: Attempts to fetch one block
        retry_base_delay: Backoff base of block fetches in seconds
        sleep: Function used for throttling and backoff
        kwargs: Args for the :class:`chainsync.core.Core`
    """

    _chain: ChainClient
    _transactions_repo: TransactionsRepo
    _balances_repo: BalancesRepo

    def __init__(
        self,
        chain: ChainClient,
        transactions_repo: TransactionsRepo,
        balances_repo: BalancesRepo,
        batch_size: int = DEFAULT_BATCH_SIZE,
        target_count: int = DEFAULT_TARGET_COUNT,
        throttle_delay: float = DEFAULT_THROTTLE_DELAY,
        max_blocks: int | None = DEFAULT_MAX_BLOCKS,
        max_retries: int = DEFAULT_BACKFILL_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_BACKFILL_RETRY_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._chain = chain
        self._transactions_repo = transactions_repo
        self._balances_repo = balances_repo
        self._batch_size = batch_size
        self._target_count = target_count
        self._throttle_delay = throttle_delay
        self._max_blocks = max_blocks
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep

    @staticmethod
    def create(**kwargs) -> BackfillService:
        """
        Create an instance of :class:`BackfillService`

        Args:
            kwargs: Args for the :class:`chainsync.core.Core`

        Returns:
            An instance of :class:`BackfillService`
        """
        return BackfillService(
            ChainClient(**kwargs),
            TransactionsRepo(**kwargs),
            BalancesRepo(**kwargs),
            **kwargs,
        )

    @cached_property
    def batch_size(self) -> int:
        value = env_setting("CHAINSYNC_BATCH_SIZE", self._batch_size)
        if value < 1:
            raise ConfigurationError("Batch size must be positive")
        return value

    @cached_property
    def target_count(self) -> int:
        return env_setting("CHAINSYNC_TARGET_COUNT", self._target_count)

    @cached_property
    def throttle_delay(self) -> float:
        return env_setting("CHAINSYNC_THROTTLE_DELAY", self._throttle_delay, float)

    @cached_property
    def max_blocks(self) -> int | None:
        """
        Max blocks scanned per call, ``None`` for no limit
        """
        return env_setting("CHAINSYNC_MAX_BLOCKS", self._max_blocks)

    @cached_property
    def block_retrying(self) -> Retrying:
        """
        Retries of a single block fetch. The n-th failed attempt waits
        ``retry_base_delay * 2 ** (n - 1)`` seconds, the ``max_retries``-th
        one gives up and re-raises.
        """
        return Retrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_base_delay),
            retry=retry_if_exception_type(TransientRPCError),
            sleep=self._sleep,
            reraise=True,
        )

    def get_address_type(self, address: str, chain_tip: int | None = None) -> str:
        """
        Classify an address by its code at the chain tip.

        Returns:
            ``"EOA"`` or ``"CONTRACT"``
        """
        address = validate_address(address)
        code = self._chain.get_code(address, chain_tip)
        return EOA if len(code) == 0 else CONTRACT

    def find_deployment_block(self, address: str, chain_tip: int | None = None) -> int:
        """
        Binary search of the first block where ``address`` has code.

        Deployed code is assumed to never disappear. A failed probe is
        treated as "no code yet" and the search moves down, so the
        result may be earlier than the real deployment but never later.

        Args:
            address: Contract address
            chain_tip: Upper bound of the search (current chain tip if ``None``)

        Returns:
            Deployment block, ``0`` if no probe found code
        """
        address = validate_address(address)
        if chain_tip is None:
            chain_tip = self._chain.current_block_height()

        low, high = 0, chain_tip
        creation_block = 0
        while low <= high:
            mid = (low + high) // 2
            try:
                code = self._chain.get_code(address, mid)
            except TransientRPCError as e:
                logger.debug("Code probe failed", block=mid, error=str(e))
                high = mid - 1
                continue
            if len(code) == 0:
                low = mid + 1
            else:
                creation_block = mid
                high = mid - 1
        logger.debug(
            "Found deployment block",
            address=short_address(address),
            block=creation_block,
        )
        return creation_block

    def determine_start_block(
        self, address: str, from_block: int | None = None
    ) -> int:
        """
        First block worth scanning for ``address``.

        Args:
            address: Contract / EOA address
            from_block: Explicit start block, used as is

        Returns:
            ``from_block`` if set, ``0`` for an EOA,
            the deployment block for a contract
        """
        if from_block is not None:
            return int(from_block)
        chain_tip = self._chain.current_block_height()
        if self.get_address_type(address, chain_tip) == EOA:
            return 0
        return self.find_deployment_block(address, chain_tip)

    def fetch_transactions(
        self,
        address: str,
        from_block: int | None = None,
        to_block: int | None = None,
        target_count: int | None = None,
        user_id: str | None = None,
    ) -> List[Transaction]:
        """
        Collect and store transactions sent from or to ``address``
        that aren't stored yet.

        Args:
            address: Contract / EOA address
            from_block: First block (see :meth:`determine_start_block`)
            to_block: Last block (current chain tip if ``None``)
            target_count: New transactions to collect before returning
            user_id: Owner of the request, saved with the transactions

        Returns:
            Newly stored transactions in chain order, at most ``target_count``
        """
        address = validate_address(address)
        target_count = self.target_count if target_count is None else target_count
        if target_count < 1:
            raise ConfigurationError("Target count must be positive")

        start_block = self.determine_start_block(address, from_block)
        if start_block < 0 or (to_block is not None and int(to_block) < 0):
            raise ConfigurationError("Block numbers must be non-negative")
        chain_tip = self._chain.current_block_height()
        end_block = chain_tip if to_block is None else min(int(to_block), chain_tip)
        if self.max_blocks is not None:
            end_block = min(end_block, start_block + self.max_blocks - 1)

        log = logger.bind(address=short_address(address))
        log.info(
            "Fetching transactions", from_block=start_block, to_block=end_block
        )

        collected: List[Transaction] = []
        first_request = True
        for batch_start in range(start_block, end_block + 1, self.batch_size):
            batch_end = min(batch_start + self.batch_size - 1, end_block)
            for number in range(batch_start, batch_end + 1):
                if not first_request:
                    self._sleep(self.throttle_delay)
                first_request = False

                block = self._fetch_block(number)
                if block is None:
                    continue
                for tx in block.get("transactions") or []:
                    if not _touches(tx, address):
                        continue
                    stored = self._store_new(tx, user_id)
                    if stored is None:
                        continue
                    collected.append(stored)
                    if len(collected) >= target_count:
                        log.info(
                            "Collected enough transactions",
                            count=len(collected),
                            last_block=number,
                        )
                        return collected
            log.debug("Scanned batch", from_block=batch_start, to_block=batch_end)

        log.info("Scanned the whole window", count=len(collected))
        return collected

    def get_balance(self, address: str) -> Dict[str, Any]:
        """
        Current ETH balance of ``address``.

        Returns:
            ``{"balance": <wei as str>, "blockNumber", "formattedBalance": <ether as str>}``
        """
        address = validate_address(address)
        block_number = self._chain.current_block_height()
        balance = self._chain.get_balance(address, block_number)
        snapshot = AddressBalance(None, address, balance, block_number)
        return {
            "balance": str(balance),
            "blockNumber": block_number,
            "formattedBalance": snapshot.formatted_balance,
        }

    def store_balance(
        self,
        address: str,
        balance: int,
        block_number: int,
        user_id: str | None = None,
    ) -> AddressBalance:
        """
        Replace the balance snapshot of ``address`` for ``user_id``.
        """
        address = validate_address(address)
        with self._balances_repo.transaction():
            saved = self._balances_repo.upsert(
                AddressBalance(user_id, address, int(balance), int(block_number))
            )
        return saved

    def get_user_transactions(
        self, user_id: str, page: int = 1, limit: int = 50
    ) -> Dict[str, Any]:
        """
        Page of transactions collected for ``user_id``, newest first.

        Returns:
            ``{"transactions": [...], "pagination": {"page", "limit", "total", "pages"}}``
        """
        result = self._transactions_repo.find_by_user(user_id, page, limit)
        return {
            "transactions": [t.to_dict() for t in result["transactions"]],
            "pagination": result["pagination"],
        }

    def get_user_balances(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Balance snapshots of ``user_id``, each with a ``formattedBalance``.
        """
        return [b.to_dict() for b in self._balances_repo.find_by_user(user_id)]

    def _fetch_block(self, number: int) -> Dict[str, Any] | None:
        retrying = self.block_retrying
        try:
            return retrying(self._chain.get_block, number, full_transactions=True)
        except TransientRPCError as e:
            logger.warning(
                "Skipping block after failed attempts",
                block=number,
                attempts=retrying.statistics.get("attempt_number"),
                error=str(e),
            )
            return None

    def _store_new(self, tx: Dict[str, Any], user_id: str | None) -> Transaction | None:
        tx_hash = tx["hash"]
        if self._transactions_repo.exists(tx_hash):
            logger.debug("Transaction is already stored", tx_hash=tx_hash)
            return None

        try:
            receipt = self._chain.get_transaction_receipt(tx_hash)
        except TransientRPCError as e:
            logger.warning("Receipt is not available", tx_hash=tx_hash, error=str(e))
            receipt = None

        try:
            transaction = Transaction.from_rpc(tx, receipt, user_id)
        except DecodeError as e:
            logger.warning("Skipping malformed transaction", tx_hash=tx_hash, error=str(e))
            return None

        with self._transactions_repo.transaction():
            if self._transactions_repo.exists(transaction.hash):
                return None
            self._transactions_repo.upsert([transaction])
            return self._transactions_repo.find(transaction.hash)


def _touches(tx: Any, address: str) -> bool:
    if not isinstance(tx, dict) or not tx.get("hash"):
        return False
    sender = tx.get("from")
    recipient = tx.get("to")
    return (sender is not None and sender.lower() == address) or (
        recipient is not None and recipient.lower() == address
    )

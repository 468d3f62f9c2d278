from __future__ import annotations
import threading
from enum import Enum
from functools import cached_property
from typing import Any, Dict, List, Tuple
import structlog

from chainsync.chain import ChainClient, DecodedLog, EventSignature
from chainsync.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RETRY_BASE_DELAY,
)
from chainsync.core import Core, env_setting
from chainsync.cursors import Cursor, CursorsRepo
from chainsync.errors import (
    ChainSyncError,
    ConfigurationError,
    DecodeError,
    PersistenceError,
    TransientRPCError,
)
from chainsync.events import Event, EventsRepo
from chainsync.retry import RetryPolicy
from chainsync.utils import short_address, utc_now, validate_address

logger = structlog.get_logger(__name__)


class IndexerState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class IndexerService(Core):
    """
    Service tailing the event log of a single contract.

    The indexer keeps a durable :class:`chainsync.cursors.Cursor` and, on
    every iteration, materializes the events of the next chunk of blocks
    after it. The cursor is advanced in the same transaction as the
    events, and only after all of them are saved.

    **Lifecycle**

    ::

        stopped --start()--> starting --> running --stop()--> stopping --> stopped
                                             |
                                             +-- retry ceiling reached --> stopped

    **Scheduling**

    A single worker thread runs the iterations one after another. Each
    iteration is queued only after the previous one (persistence included)
    has finished, so two iterations never race on the cursor. After a
    success the next iteration is queued in ``poll_interval`` seconds,
    after the n-th consecutive failure in ``retry_base_delay * 2 ** (n - 1)``
    seconds. ``stop()`` cancels a queued iteration and waits for an
    in-flight one to finish.

    **Request/Response flow of one iteration**

    ::

                   +----------------+          +-------------+ +------------+ +-------------+
                   | IndexerService |          | ChainClient | | EventsRepo | | CursorsRepo |
                   +----------------+          +-------------+ +------------+ +-------------+
                           |                          |               |              |
                           | Chain tip                |               |              |
                           |------------------------->|               |              |
                           |                          |               |              |
                           | Read cursor              |               |              |
                           |------------------------------------------------------->|
                           |                          |               |              |
                           | Logs of the next chunk   |               |              |
                           |------------------------->|               |              |
                           |                          |               |              |
                           | Blocks (timestamps)      |               |              |
                           |------------------------->|               |              |
                           |                          |               |              |
                           | Upsert events            |               |              |
                           |----------------------------------------->|              |
                           |                          |               |              |
                           | Advance cursor, commit   |               |              |
                           |------------------------------------------------------->|
                           |                          |               |              |

    Args:
        chain: Chain client
        events_repo: Repo of events
        cursors_repo: Repo of the cursor document
        chunk_size: Blocks per iteration
        poll_interval: Seconds between two successful iterations
        max_retries: Consecutive failures that stop the indexer
        retry_base_delay: Backoff base in seconds
        kwargs: Args for the :class:`chainsync.core.Core`
    """

    _chain: ChainClient
    _events_repo: EventsRepo
    _cursors_repo: CursorsRepo

    def __init__(
        self,
        chain: ChainClient,
        events_repo: EventsRepo,
        cursors_repo: CursorsRepo,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._chain = chain
        self._events_repo = events_repo
        self._cursors_repo = cursors_repo
        self._chunk_size = chunk_size
        self._poll_interval = poll_interval
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

        self._state = IndexerState.STOPPED
        self._state_lock = threading.Lock()
        # held for a whole iteration, start and stop
        self._lease = threading.RLock()
        self._stop_event = threading.Event()
        self._worker: threading.Thread | None = None
        self._retry_count = 0
        self._pending_delay: float | None = None

        self._contract_address: str | None = None
        self._signature: EventSignature | None = None
        self._start_block = 0

    @staticmethod
    def create(
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        **kwargs,
    ) -> IndexerService:
        """
        Create an instance of :class:`IndexerService`

        Args:
            chunk_size: Blocks per iteration
            poll_interval: Seconds between two successful iterations
            max_retries: Consecutive failures that stop the indexer
            retry_base_delay: Backoff base in seconds
            kwargs: Args for the :class:`chainsync.core.Core`

        Returns:
            An instance of :class:`IndexerService`
        """
        return IndexerService(
            ChainClient(**kwargs),
            EventsRepo(**kwargs),
            CursorsRepo(**kwargs),
            chunk_size=chunk_size,
            poll_interval=poll_interval,
            max_retries=max_retries,
            retry_base_delay=retry_base_delay,
            **kwargs,
        )

    @cached_property
    def chunk_size(self) -> int:
        """
        Blocks per iteration
        """
        value = env_setting("CHAINSYNC_CHUNK_SIZE", self._chunk_size)
        if value < 1:
            raise ConfigurationError("Chunk size must be positive")
        return value

    @cached_property
    def poll_interval(self) -> float:
        """
        Seconds between two successful iterations
        """
        return env_setting("CHAINSYNC_POLL_INTERVAL", self._poll_interval, float)

    @cached_property
    def retry_policy(self) -> RetryPolicy:
        """
        Retry ceiling and backoff of failed iterations
        """
        return RetryPolicy(
            env_setting("CHAINSYNC_MAX_RETRIES", self._max_retries),
            env_setting("CHAINSYNC_RETRY_BASE_DELAY", self._retry_base_delay, float),
        )

    @property
    def state(self) -> IndexerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state in (IndexerState.STARTING, IndexerState.RUNNING)

    @property
    def pending_delay(self) -> float | None:
        """
        Seconds the worker waits before the next iteration,
        ``None`` when nothing is scheduled.
        """
        return self._pending_delay

    def start(
        self,
        contract_address: str,
        event_signature: str | EventSignature,
        start_block: int | None = None,
    ) -> Dict[str, Any]:
        """
        Start indexing ``event_signature`` events of ``contract_address``.

        The first run seeds the cursor right before ``start_block``
        (the current chain tip if ``None``). Subsequent runs for the same
        contract and event resume from the stored cursor. One iteration runs
        synchronously before this method returns, the following ones on the
        worker thread.

        Calling it while the indexer is running does nothing.

        Args:
            contract_address: Contract address
            event_signature: Event declaration,
                             e.g. ``Transfer(address indexed from, address indexed to, uint256 value)``
            start_block: First block to index

        Returns:
            ``{"status", "contractAddress", "eventSignature", "startBlock"}``

        Raises:
            ConfigurationError: if the address or the declaration is malformed,
                or there's no contract deployed at the address
            TransientRPCError: if the contract code can't be checked
        """
        with self._state_lock:
            if self._state is not IndexerState.STOPPED:
                logger.warning("Indexer is already running", state=self._state.value)
                return self._start_payload()
            self._state = IndexerState.STARTING

        # the worker of a run stopped by the retry ceiling may still be exiting
        stale = self._worker
        if stale is not None and stale is not threading.current_thread():
            stale.join()
        self._worker = None

        with self._lease:
            try:
                address, signature = self._configure(
                    contract_address, event_signature, start_block
                )
                cursor = self._seed_cursor(address, signature, start_block)
            except Exception:
                with self._state_lock:
                    self._state = IndexerState.STOPPED
                raise

            with self._state_lock:
                if self._state is not IndexerState.STARTING:
                    # stop() was called meanwhile
                    return self._start_payload()
                self._state = IndexerState.RUNNING
            self._stop_event.clear()
            self._retry_count = 0
            self._pending_delay = self.poll_interval

            try:
                logger.info(
                    "Indexer started",
                    contract=short_address(address),
                    event_name=signature.name,
                    last_processed_block=cursor.last_processed_block,
                )
                self.poll()
                if self._state is IndexerState.RUNNING:
                    self._worker = threading.Thread(
                        target=self._run_worker, name="chainsync-indexer", daemon=True
                    )
                    self._worker.start()
            except Exception:
                self._worker = None
                self._halt()
                raise

        return self._start_payload()

    def stop(self):
        """
        Stop indexing.

        A queued iteration is cancelled. An in-flight iteration is allowed
        to finish before the cursor is persisted with ``isRunning=false``.
        Calling it while the indexer is stopped does nothing.
        """
        with self._state_lock:
            if self._state in (IndexerState.STOPPED, IndexerState.STOPPING):
                logger.warning("Indexer is not running", state=self._state.value)
                return
            self._state = IndexerState.STOPPING
        self._stop_event.set()

        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join()

        with self._lease:
            self._worker = None
            self._pending_delay = None
            try:
                cursor = self._mark_stopped()
            finally:
                with self._state_lock:
                    self._state = IndexerState.STOPPED
        logger.info(
            "Indexer stopped",
            last_processed_block=None if cursor is None else cursor.last_processed_block,
        )

    def status(self) -> Dict[str, Any]:
        """
        Current state of the indexer. Never changes anything, and
        reports ``chainTip`` as ``None`` if the chain is unreachable.

        Returns:
            ``{"isRunning", "state", "persistedCursor", "chainTip",
            "contractAddress", "errorCount", "errors", "lastUpdated"}``
        """
        try:
            cursor = self._cursors_repo.read()
        except PersistenceError as e:
            logger.warning("Could not read the cursor", error=str(e))
            cursor = None
        try:
            chain_tip = self._chain.current_block_height()
        except (TransientRPCError, ConfigurationError) as e:
            logger.warning("Could not get the chain tip", error=str(e))
            chain_tip = None

        error_count = 0 if cursor is None else cursor.error_count
        return {
            "isRunning": self.is_running,
            "state": self._state.value,
            "persistedCursor": None if cursor is None else cursor.to_dict(),
            "chainTip": chain_tip,
            "contractAddress": (
                self._contract_address if cursor is None else cursor.contract_address
            ),
            "errorCount": error_count,
            "errors": error_count,
            "lastUpdated": None if cursor is None else cursor.updated_at,
        }

    def poll(self) -> bool:
        """
        Run one iteration now, in the calling thread.

        Waits for an in-flight iteration of the worker to finish first.
        Does nothing if the indexer isn't running. Failures are counted
        against the retry policy, never raised.

        Returns:
            ``True`` if the cursor advanced
        """
        with self._lease:
            if self._state is not IndexerState.RUNNING:
                return False
            try:
                advanced = self._process_next_range()
            except Exception as e:
                self._handle_failure(e)
                return False
            self._retry_count = 0
            self._pending_delay = self.poll_interval
            return advanced

    def _run_worker(self):
        while True:
            delay = self._pending_delay
            if delay is None or self._stop_event.wait(delay):
                break
            self.poll()
        logger.debug("Indexer worker exited")

    def _configure(
        self,
        contract_address: str,
        event_signature: str | EventSignature,
        start_block: int | None,
    ) -> Tuple[str, EventSignature]:
        address = validate_address(contract_address)
        signature = (
            event_signature
            if isinstance(event_signature, EventSignature)
            else EventSignature(event_signature)
        )
        if start_block is not None and start_block < 0:
            raise ConfigurationError(f"Invalid start block {start_block}")
        if len(self._chain.get_code(address)) == 0:
            raise ConfigurationError(f"No contract deployed at {address}")
        return address, signature

    def _seed_cursor(
        self, address: str, signature: EventSignature, start_block: int | None
    ) -> Cursor:
        cursor = self._cursors_repo.read()
        now = utc_now()
        if cursor is None or not _same_target(cursor, address, signature):
            if start_block is None:
                start_block = self._chain.current_block_height()
            if cursor is not None:
                logger.info(
                    "Indexing target changed, reseeding the cursor",
                    previous_contract=cursor.contract_address,
                    previous_event=cursor.event_signature,
                )
            cursor = Cursor(
                last_processed_block=start_block - 1,
                contract_address=address,
                event_signature=signature.text,
                start_block=start_block,
                created_at=now if cursor is None else cursor.created_at,
            )
        elif start_block is not None:
            cursor.start_block = start_block
        cursor.is_running = True
        cursor.updated_at = now
        with self._cursors_repo.transaction():
            self._cursors_repo.upsert(cursor)

        self._contract_address = address
        self._signature = signature
        self._start_block = cursor.start_block
        return cursor

    def _process_next_range(self) -> bool:
        chain_tip = self._chain.current_block_height()
        cursor = self._cursors_repo.read()
        if cursor is None:
            raise PersistenceError("The cursor document is missing")

        from_block = max(self._start_block, cursor.last_processed_block + 1)
        if from_block > chain_tip:
            logger.debug(
                "Indexer is caught up",
                chain_tip=chain_tip,
                last_processed_block=cursor.last_processed_block,
            )
            return False

        to_block = min(from_block + self.chunk_size - 1, chain_tip)
        log = logger.bind(from_block=from_block, to_block=to_block, chain_tip=chain_tip)
        log.info("Indexing block range")

        logs = self._chain.query_logs(
            self._contract_address, self._signature.topic, from_block, to_block
        )
        events = self._events_from_logs(logs)

        cursor.last_processed_block = to_block
        cursor.updated_at = utc_now()
        with self._events_repo.transaction(), self._cursors_repo.transaction():
            self._events_repo.upsert(events)
            self._cursors_repo.upsert(cursor)
        log.info("Indexed block range", events=len(events))
        return True

    def _events_from_logs(self, logs: List[Dict[str, Any]]) -> List[Event]:
        blocks: Dict[int, Dict[str, Any]] = {}
        events = []
        for entry in logs:
            try:
                decoded = self._chain.decode_log(entry, self._signature)
            except DecodeError as e:
                logger.warning(
                    "Skipping undecodable log",
                    tx_hash=entry.get("transactionHash"),
                    log_index=entry.get("logIndex"),
                    error=str(e),
                )
                continue

            number = entry["blockNumber"]
            if not number in blocks:
                blocks[number] = self._chain.get_block(number)

            try:
                events.append(self._to_event(entry, decoded, blocks[number]))
            except DecodeError as e:
                logger.warning(
                    "Skipping malformed log",
                    tx_hash=entry.get("transactionHash"),
                    log_index=entry.get("logIndex"),
                    error=str(e),
                )
        return events

    def _to_event(
        self, entry: Dict[str, Any], decoded: DecodedLog, block: Dict[str, Any]
    ) -> Event:
        signature = self._signature
        args = decoded.args
        try:
            value = None
            if signature.value_field is not None:
                value = int(args[signature.value_field])
            return Event(
                contract_address=entry.get("address") or self._contract_address,
                event_name=decoded.name,
                block_number=int(entry["blockNumber"]),
                transaction_hash=entry["transactionHash"],
                log_index=int(entry["logIndex"]),
                block_hash=entry.get("blockHash") or block["hash"],
                timestamp=int(block["timestamp"]),
                sender_address=_arg(args, signature.sender_field),
                recipient_address=_arg(args, signature.recipient_field),
                value=value,
                raw_args=args,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(f"Incomplete log: {e!r}") from e

    def _handle_failure(self, error: Exception):
        self._retry_count += 1
        policy = self.retry_policy
        exhausted = policy.exhausted(self._retry_count)
        log = logger.bind(
            attempt=self._retry_count,
            max_retries=policy.max_retries,
            error=str(error) or repr(error),
        )
        if exhausted:
            with self._state_lock:
                self._state = IndexerState.STOPPED
            self._stop_event.set()
            self._pending_delay = None
            log.error("Max retries reached, indexer stopping")
        else:
            self._pending_delay = policy.delay(self._retry_count)
            log.warning(
                "Indexer iteration failed, retrying",
                delay=self._pending_delay,
                exc_info=not isinstance(error, ChainSyncError),
            )
        self._record_failure(error, exhausted)

    def _record_failure(self, error: Exception, stopped: bool):
        try:
            with self._cursors_repo.transaction():
                cursor = self._cursors_repo.read()
                if cursor is None:
                    return
                cursor.error_count += 1
                cursor.last_error = str(error) or repr(error)
                if stopped:
                    cursor.is_running = False
                cursor.updated_at = utc_now()
                self._cursors_repo.upsert(cursor)
        except PersistenceError as e:
            logger.error("Could not record the indexer failure", error=str(e))

    def _mark_stopped(self) -> Cursor | None:
        with self._cursors_repo.transaction():
            cursor = self._cursors_repo.read()
            if cursor is not None:
                cursor.is_running = False
                cursor.updated_at = utc_now()
                self._cursors_repo.upsert(cursor)
        return cursor

    def _halt(self):
        self._stop_event.set()
        self._pending_delay = None
        with self._state_lock:
            self._state = IndexerState.STOPPED
        try:
            self._mark_stopped()
        except PersistenceError as e:
            logger.error("Could not persist the stopped state", error=str(e))

    def _start_payload(self) -> Dict[str, Any]:
        return {
            "status": self._state.value,
            "contractAddress": self._contract_address,
            "eventSignature": None if self._signature is None else self._signature.text,
            "startBlock": self._start_block,
        }


def _same_target(cursor: Cursor, address: str, signature: EventSignature) -> bool:
    if cursor.contract_address != address or cursor.event_signature is None:
        return False
    try:
        return EventSignature(cursor.event_signature) == signature
    except ConfigurationError:
        return False


def _arg(args: Dict[str, Any], field: str | None) -> str | None:
    if field is None:
        return None
    value = args.get(field)
    return None if value is None else str(value)

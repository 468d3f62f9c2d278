"""
Implements :class:`Core` and :class:`Repo` that are used in other modules.
"""

from __future__ import annotations
import os
import threading
from contextlib import contextmanager
from os.path import exists
from sqlite3 import Connection, Cursor, Error, connect
from functools import cached_property
from typing import Any, Callable, Iterable, Iterator, Sequence
from web3 import Web3

from chainsync.constants import DEFAULT_RPC_TIMEOUT
from chainsync.errors import ConfigurationError, PersistenceError

web3_cache = {}
db_cache = {}
db_locks = {}
_db_locks_guard = threading.Lock()


def env_setting(name: str, value: Any, cast: Callable[[str], Any] = int) -> Any:
    """
    Read a tuning value from the environment.

    Args:
        name: environment variable name
        value: value to use if the variable is not set
        cast: converter for the raw string

    Returns:
        Converted environment value, or ``value``
    """
    env_value = os.environ.get(name)
    if env_value is None or env_value == "":
        return value
    try:
        return cast(env_value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for `{name}`: {env_value}") from e


class Core:
    """
    A base class for any class that wants to use
    an Ethereum RPC or the Sqlite3 database.

    When deriving this class, you're providing arguments like rpc url
    or OS path to the database. The resources are instantiated
    on demand though. It means that if you're just using the Ethereum
    RPC it's sufficient to supply only the rpc endpoint and skip OS path
    to the database in the constructor.

    **Caching**

    The web3 instance is cached by the rpc url and timeout.
    The sqlite3 connection is cached by the OS path of the database,
    so repos created from the same path share one connection and
    one transaction.

    Args:
        rpc: An https Ethereum RPC endpoint uri
        cache_path: OS path to the database
        rpc_timeout: Seconds before an RPC request times out
        w3: an instance of web3 (overrides rpc)
        conn: an instance of database connection (overrides cache_path)
    """

    #: An https Ethereum RPC endpoint uri.
    #: Can be ``None`` if :class:`web3.Web3` is injected directly.
    rpc: str | None
    #: OS path to the database.
    #: Can be ``None`` if :class:`sqlite3.Connection` is injected directly.
    cache_path: str | None

    def __init__(
        self,
        rpc: str | None = None,
        cache_path: str | None = None,
        rpc_timeout: float = DEFAULT_RPC_TIMEOUT,
        w3: Web3 | None = None,
        conn: Connection | None = None,
    ):
        self.rpc = rpc
        self.cache_path = cache_path
        self._rpc_timeout = rpc_timeout
        self._w3 = w3
        self._conn = conn

    @cached_property
    def rpc_timeout(self) -> float:
        """
        Seconds before an RPC request times out
        """
        return env_setting("CHAINSYNC_RPC_TIMEOUT", self._rpc_timeout, float)

    @cached_property
    def w3(self) -> Web3:
        """
        :class:`web3.Web3` instance for working with Ethereum RPC
        """
        if not self._w3 is None:
            return self._w3

        if self.rpc is None:
            self.rpc = os.environ.get("WEB3_PROVIDER_URI")

        if self.rpc is None:
            raise ConfigurationError(
                "Ethereum RPC is not set. "
                "Use `WEB3_PROVIDER_URI` env variable or pass rpc explicitly"
            )

        key = (self.rpc, self.rpc_timeout)
        if not key in web3_cache:
            web3_cache[key] = Web3(
                Web3.HTTPProvider(
                    self.rpc, request_kwargs={"timeout": self.rpc_timeout}
                )
            )

        return web3_cache[key]

    @cached_property
    def conn(self) -> Connection:
        """
        :class:`sqlite3.Connection` to the database
        """
        if not self._conn is None:
            return self._conn

        if self.cache_path is None:
            self.cache_path = os.environ.get("CHAINSYNC_DB_PATH")

        if self.cache_path is None:
            raise ConfigurationError(
                "Database path is not set. "
                "Use `CHAINSYNC_DB_PATH` env variable or pass cache_path explicitly"
            )

        if not self.cache_path in db_cache:
            db_cache[self.cache_path] = connection_from_path(self.cache_path)

        return db_cache[self.cache_path]


class Repo(Core):
    """
    Base class for any repo in :mod:`chainsync`.

    Every statement goes through :meth:`_execute`, which rolls back
    the pending transaction and raises
    :class:`chainsync.errors.PersistenceError` on any sqlite failure.

    **Transactions**

    Repos created from the same database share one connection, and so
    one pending transaction. Writes are grouped with :meth:`transaction`,
    which holds the lock of the connection until the group is committed
    or rolled back. Single statements, commits and rollbacks take the same
    lock, so a writer on another thread never commits or rolls back
    half of the group.

    ::

        with events_repo.transaction():
            events_repo.upsert(events)
            cursors_repo.upsert(cursor)

    Important:
        All the changes happening at the repo must be committed using
        :meth:`commit` method or rolled back using :meth:`rollback` method. Otherwise
        there's no guarantee that changes will be saved.
    """

    @cached_property
    def lock(self) -> threading.RLock:
        """
        Lock of the database connection, shared by every repo using it
        """
        return connection_lock(self.conn)

    @contextmanager
    def transaction(self) -> Iterator[Repo]:
        """
        Group the statements of the ``with`` block in one transaction.

        Commits when the block exits normally, rolls back and re-raises
        otherwise. Nested groups on the same connection join the outer one.
        """
        with self.lock:
            try:
                yield self
            except BaseException:
                self.rollback()
                raise
            self.commit()

    def commit(self):
        """
        Commits all changes pending on the database connection.
        """
        with self.lock:
            try:
                self.conn.commit()
            except Error as e:
                self.conn.rollback()
                raise PersistenceError(f"Commit failed: {e}") from e

    def rollback(self):
        """
        Rollbacks all changes pending on the database connection.
        """
        with self.lock:
            self.conn.rollback()

    def _execute(self, statement: str, params: Sequence[Any] = ()) -> Cursor:
        with self.lock:
            try:
                return self.conn.execute(statement, params)
            except Error as e:
                self.conn.rollback()
                raise PersistenceError(str(e)) from e

    def _executemany(self, statement: str, rows: Iterable[Sequence[Any]]) -> Cursor:
        with self.lock:
            try:
                return self.conn.executemany(statement, rows)
            except Error as e:
                self.conn.rollback()
                raise PersistenceError(str(e)) from e


def connection_lock(conn: Connection) -> threading.RLock:
    """
    Lock guarding the transaction of ``conn``.

    Args:
        conn: Connection to the database

    Returns:
        The same reentrant lock for every call with the same connection
    """
    with _db_locks_guard:
        if not conn in db_locks:
            db_locks[conn] = threading.RLock()
        return db_locks[conn]


def connection_from_path(path: str) -> Connection:
    """
    Creates a connection to a database at ``path``.
    If the file at ``path`` doesn't exist, creates a new one and
    initializes a database schema.

    The connection may be shared with the indexer worker thread.

    Args:
        path: The absolute path to the database (or ``:memory:``)

    Returns:
        An instance of sqlite3 Connection

    Note:
        The schema migrations are currently not supported.
    """

    is_fresh = path == ":memory:" or not exists(path)
    conn = connect(path, check_same_thread=False)
    if is_fresh:
        _init_db(conn)

    return conn


def _init_db(conn: Connection):
    """
    Initialize db schema

    Args:
        conn: Connection to the database
    """
    cursor = conn.cursor()
    # Events table
    cursor.execute(
        """CREATE TABLE IF NOT EXISTS events
            (contract_address text, event_name text, block_number integer, \
            transaction_hash text, log_index integer, block_hash text, \
            timestamp integer, sender_address text, recipient_address text, \
            value text, raw_args text, indexed_at text)"""
    )
    cursor.execute(
        """CREATE UNIQUE INDEX IF NOT EXISTS idx_events_id \
        ON events(transaction_hash,log_index)
    """
    )
    cursor.execute(
        """CREATE INDEX IF NOT EXISTS idx_events_search \
        ON events(contract_address,event_name,block_number)
    """
    )
    cursor.execute(
        """CREATE INDEX IF NOT EXISTS idx_events_sender ON events(sender_address)"""
    )
    cursor.execute(
        """CREATE INDEX IF NOT EXISTS idx_events_recipient \
        ON events(recipient_address)"""
    )

    # Transactions table
    cursor.execute(
        """CREATE TABLE IF NOT EXISTS transactions
            (user_id text, hash text, from_address text, to_address text, \
            value text, gas_used text, gas_price text, block_number integer, \
            block_hash text, transaction_index integer, nonce integer, \
            input text, status integer, created_at text, updated_at text)"""
    )
    cursor.execute(
        """CREATE UNIQUE INDEX IF NOT EXISTS idx_transactions_id \
        ON transactions(hash)"""
    )
    cursor.execute(
        """CREATE INDEX IF NOT EXISTS idx_transactions_user \
        ON transactions(user_id,block_number)"""
    )

    # Address balances table
    cursor.execute(
        """CREATE TABLE IF NOT EXISTS address_balances
            (user_id text not null default '', address text, balance text, \
            block_number integer, last_updated text)"""
    )
    cursor.execute(
        """CREATE UNIQUE INDEX IF NOT EXISTS idx_address_balances_id \
        ON address_balances(user_id,address)"""
    )

    # Cursors (one json document per id)
    cursor.execute(
        """CREATE TABLE IF NOT EXISTS cursors
            (id text primary key, document text)"""
    )

    conn.commit()

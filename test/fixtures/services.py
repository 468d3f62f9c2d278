from sqlite3 import Connection
import pytest

from chainsync.backfill import BackfillService
from chainsync.balances import BalancesRepo
from chainsync.chain import ChainClient
from chainsync.cursors import CursorsRepo
from chainsync.events import EventsRepo, EventsService
from chainsync.indexer import IndexerService
from chainsync.transactions import TransactionsRepo
from fixtures.chain import ChainMock


@pytest.fixture
def chain(chain_mock: ChainMock) -> ChainClient:
    return ChainClient(w3=chain_mock)


@pytest.fixture
def events_repo(conn: Connection) -> EventsRepo:
    return EventsRepo(conn=conn)


@pytest.fixture
def cursors_repo(conn: Connection) -> CursorsRepo:
    return CursorsRepo(conn=conn)


@pytest.fixture
def transactions_repo(conn: Connection) -> TransactionsRepo:
    return TransactionsRepo(conn=conn)


@pytest.fixture
def balances_repo(conn: Connection) -> BalancesRepo:
    return BalancesRepo(conn=conn)


@pytest.fixture
def events_service(events_repo: EventsRepo) -> EventsService:
    return EventsService(events_repo)


@pytest.fixture
def indexer(
    chain: ChainClient, events_repo: EventsRepo, cursors_repo: CursorsRepo
) -> IndexerService:
    """
    Indexer with a one hour poll interval, so that iterations
    only run when a test calls ``poll()``
    """
    service = IndexerService(
        chain,
        events_repo,
        cursors_repo,
        chunk_size=10,
        poll_interval=3600,
        retry_base_delay=5,
    )
    try:
        yield service
    finally:
        service.stop()


@pytest.fixture
def sleeps():
    """
    Delays passed to the backfill ``sleep``
    """
    return []


@pytest.fixture
def backfill(
    chain: ChainClient,
    transactions_repo: TransactionsRepo,
    balances_repo: BalancesRepo,
    sleeps,
) -> BackfillService:
    return BackfillService(
        chain, transactions_repo, balances_repo, sleep=sleeps.append
    )

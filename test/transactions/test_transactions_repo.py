from typing import List
from hypothesis import given, settings, HealthCheck
from hypothesis.strategies import lists

from transactions.strategies import transaction
from chainsync.transactions import Transaction, TransactionsRepo


def make_transaction(block: int, index: int, user_id: str | None = "alice", **kwargs):
    values = {
        "user_id": user_id,
        "hash": "0x%064x" % (block * 1000 + index),
        "from_address": "0x5777d92f208679db4b9778590fa3cab3ac9e2168",
        "to_address": "0xd8da6bf26964af9d7eed9e03e53415d37aa96045",
        "value": 10**18,
        "gas_used": None,
        "gas_price": 30 * 10**9,
        "block_number": block,
        "block_hash": "0x%064x" % block,
        "transaction_index": index,
        "nonce": block,
        "input": "0x",
        "status": None,
    }
    values.update(kwargs)
    return Transaction(**values)


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(transactions=lists(transaction(), max_size=10, unique_by=lambda t: t.hash))
def test_upsert_is_idempotent(
    transactions: List[Transaction], transactions_repo: TransactionsRepo
):
    try:
        transactions_repo.upsert(transactions)
        transactions_repo.upsert(transactions)
        assert transactions_repo.count() == len(transactions)
        for t in transactions:
            assert transactions_repo.exists(t.hash)
            assert transactions_repo.find(t.hash) == t
    finally:
        transactions_repo.rollback()


def test_upsert_refreshes_only_receipt_fields(transactions_repo: TransactionsRepo):
    t1 = make_transaction(10, 0)
    transactions_repo.upsert([t1])
    t2 = make_transaction(10, 0, nonce=999, value=1, gas_used=21000, status=1)
    transactions_repo.upsert([t2])
    transactions_repo.commit()

    stored = transactions_repo.find(t1.hash)
    assert stored.gas_used == 21000
    assert stored.status == 1
    assert stored.nonce == 10
    assert stored.value == 10**18
    assert transactions_repo.count() == 1


def test_upsert_without_receipt_keeps_receipt_fields(transactions_repo: TransactionsRepo):
    transactions_repo.upsert([make_transaction(10, 0, gas_used=21000, status=1)])
    transactions_repo.upsert([make_transaction(10, 0)])
    transactions_repo.commit()

    stored = transactions_repo.find(make_transaction(10, 0).hash)
    assert stored.gas_used == 21000
    assert stored.status == 1

    transactions_repo.upsert([make_transaction(10, 0, gas_used=50000, status=0)])
    transactions_repo.commit()
    stored = transactions_repo.find(stored.hash)
    assert stored.gas_used == 50000
    assert stored.status == 0


def test_exists_ignores_case(transactions_repo: TransactionsRepo):
    t = make_transaction(1, 0)
    assert not transactions_repo.exists(t.hash)
    transactions_repo.upsert([t])
    assert transactions_repo.exists(t.hash.upper().replace("0X", "0x"))
    assert transactions_repo.find("0x1234") is None


def test_find_by_user(transactions_repo: TransactionsRepo):
    transactions_repo.upsert(
        [make_transaction(b, i) for b in range(1, 6) for i in range(2)]
        + [make_transaction(3, 5, user_id="bob")]
    )

    page = transactions_repo.find_by_user("alice", page=1, limit=4)
    assert [(t.block_number, t.transaction_index) for t in page["transactions"]] == [
        (5, 1),
        (5, 0),
        (4, 1),
        (4, 0),
    ]
    assert page["pagination"] == {"page": 1, "limit": 4, "total": 10, "pages": 3}

    page = transactions_repo.find_by_user("alice", page=3, limit=4)
    assert len(page["transactions"]) == 2

    page = transactions_repo.find_by_user("bob")
    assert [t.transaction_index for t in page["transactions"]] == [5]
    assert page["pagination"]["total"] == 1
    assert transactions_repo.count("carol") == 0

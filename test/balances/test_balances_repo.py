from chainsync.balances import AddressBalance, BalancesRepo

ALICE = "0x5777d92f208679db4b9778590fa3cab3ac9e2168"
BOB = "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"


def test_upsert_replaces_snapshot(balances_repo: BalancesRepo):
    balances_repo.upsert(AddressBalance("alice", ALICE, 100, 10))
    balances_repo.upsert(AddressBalance("alice", ALICE.upper().replace("0X", "0x"), 50, 20))
    balances_repo.commit()

    stored = balances_repo.find(ALICE, "alice")
    assert stored.balance == 50
    assert stored.block_number == 20
    assert stored.last_updated is not None
    assert len(balances_repo.find_by_user("alice")) == 1


def test_snapshots_are_per_user(balances_repo: BalancesRepo):
    balances_repo.upsert(AddressBalance("alice", ALICE, 100, 10))
    balances_repo.upsert(AddressBalance("bob", ALICE, 200, 10))
    balances_repo.upsert(AddressBalance(None, ALICE, 300, 10))
    balances_repo.upsert(AddressBalance(None, ALICE, 400, 11))

    assert balances_repo.find(ALICE, "alice").balance == 100
    assert balances_repo.find(ALICE, "bob").balance == 200
    assert balances_repo.find(ALICE).balance == 400
    assert balances_repo.find(ALICE).user_id is None
    assert balances_repo.find(BOB) is None


def test_find_by_user(balances_repo: BalancesRepo):
    balances_repo.upsert(AddressBalance("alice", ALICE, 2**200, 10))
    balances_repo.upsert(AddressBalance("alice", BOB, 1, 10))
    balances_repo.upsert(AddressBalance("bob", BOB, 1, 10))

    balances = balances_repo.find_by_user("alice")
    assert {b.address for b in balances} == {ALICE, BOB}
    assert [b.balance for b in balances if b.address == ALICE] == [2**200]
    assert balances_repo.find_by_user("carol") == []

from hypothesis import given
from hypothesis.strategies import builds, from_regex, integers, none, one_of, sampled_from

from chainsync.balances import AddressBalance


def balance():
    return builds(
        AddressBalance,
        user_id=one_of(none(), sampled_from(["alice", "bob"])),
        address=from_regex(r"\A0x[0-9a-f]{40}\Z"),
        balance=integers(0, 2**256 - 1),
        block_number=integers(0, 10**8),
        last_updated=one_of(none(), sampled_from(["2024-01-01T00:00:00+00:00"])),
    )


@given(balance())
def test_balance_rows(balance: AddressBalance):
    assert AddressBalance.from_row(balance.to_row()) == balance


@given(balance())
def test_balance_to_from_dict(balance: AddressBalance):
    assert AddressBalance.from_dict(balance.to_dict()) == balance


def test_formatted_balance():
    b = AddressBalance(None, "0xABC", 15 * 10**17, 1)
    assert b.address == "0xabc"
    assert b.formatted_balance == "1.5"
    assert b.to_row()[0] == ""
    assert AddressBalance("", "0xabc", 0, 1).user_id is None
    assert AddressBalance(None, "0xabc", 0, 1).formatted_balance == "0.0"
    assert AddressBalance(None, "0xabc", 1, 1).formatted_balance == "0.000000000000000001"

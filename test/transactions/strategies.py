from hypothesis.strategies import (
    SearchStrategy,
    builds,
    from_regex,
    integers,
    none,
    one_of,
    sampled_from,
)
from chainsync.transactions import Transaction

addresses = from_regex(r"\A0x[0-9a-f]{40}\Z")
hashes = from_regex(r"\A0x[0-9a-f]{64}\Z")


def transaction() -> SearchStrategy[Transaction]:
    return builds(
        Transaction,
        user_id=one_of(none(), sampled_from(["alice", "bob"])),
        hash=hashes,
        from_address=addresses,
        to_address=one_of(none(), addresses),
        value=integers(0, 2**256 - 1),
        gas_used=one_of(none(), integers(21000, 30_000_000)),
        gas_price=one_of(none(), integers(0, 10**12)),
        block_number=integers(0, 10**8),
        block_hash=hashes,
        transaction_index=integers(0, 500),
        nonce=integers(0, 10**6),
        input=from_regex(r"\A0x([0-9a-f]{2}){0,8}\Z"),
        status=one_of(none(), sampled_from([0, 1])),
    )

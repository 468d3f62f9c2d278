import pytest
from web3.exceptions import Web3Exception

from chainsync.chain import ChainClient, EventSignature
from chainsync.errors import ConfigurationError, TransientRPCError
from fixtures.chain import (
    ALICE,
    BOB,
    CONTRACT,
    INITIAL_TIME,
    TRANSFER_SIGNATURE,
    TRANSFER_TOPIC,
    ChainMock,
    transaction,
    transfer_log,
)


def test_reads(chain: ChainClient, chain_mock: ChainMock):
    chain_mock.deploy(ALICE, 500)
    chain_mock.balances[BOB] = 42
    chain_mock.add_transaction(transaction(7, 0))

    assert chain.current_block_height() == 1000
    assert chain.get_code(ALICE) != b""
    assert chain.get_code(ALICE, 499) == b""
    assert chain.get_code(BOB) == b""
    assert chain.get_balance(BOB) == 42

    block = chain.get_block(7)
    assert block["timestamp"] == INITIAL_TIME + 7 * 12
    assert block["transactions"] == [transaction(7, 0)["hash"]]
    block = chain.get_block(7, full_transactions=True)
    assert block["transactions"][0]["from"].lower() == ALICE

    receipt = chain.get_transaction_receipt(transaction(7, 0)["hash"])
    assert receipt["status"] == 1


def test_query_logs(chain: ChainClient, chain_mock: ChainMock):
    chain_mock.logs = [
        transfer_log(12, 3),
        transfer_log(12, 1),
        transfer_log(10, 0),
        transfer_log(30, 0),
        transfer_log(11, 0, contract=BOB),
    ]
    logs = chain.query_logs(CONTRACT, TRANSFER_TOPIC, 10, 20)
    assert [(l["blockNumber"], l["logIndex"]) for l in logs] == [(10, 0), (12, 1), (12, 3)]

    decoded = chain.decode_log(logs[0], EventSignature(TRANSFER_SIGNATURE))
    assert decoded.args["value"] == 10**18


@pytest.mark.parametrize(
    "error", [ConnectionError("reset"), TimeoutError("slow"), Web3Exception("bad response")]
)
def test_failures_are_transient(chain: ChainClient, chain_mock: ChainMock, error: Exception):
    chain_mock.fail("block_number", error=error)
    with pytest.raises(TransientRPCError):
        chain.current_block_height()
    assert chain.current_block_height() == 1000


def test_missing_block_is_transient(chain: ChainClient):
    with pytest.raises(TransientRPCError):
        chain.get_block(1001)


def test_rpc_is_required():
    with pytest.raises(ConfigurationError):
        ChainClient().current_block_height()


def test_rpc_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("WEB3_PROVIDER_URI", "http://localhost:8545")
    monkeypatch.setenv("CHAINSYNC_RPC_TIMEOUT", "3")
    client = ChainClient()
    assert client.rpc_timeout == 3.0
    assert client.w3.provider.endpoint_uri == "http://localhost:8545"
    assert client.rpc == "http://localhost:8545"

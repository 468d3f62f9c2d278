"""
Module for talking to the Ethereum JSON-RPC.

The main class of this module is :class:`ChainClient`. It exposes
exactly the capabilities the engines need (chain tip, bytecode, blocks,
logs, balances, receipts) with bounded timeouts and a single
:class:`chainsync.errors.TransientRPCError` for every remote failure.

:class:`EventSignature` parses and validates an event declaration once,
and decodes matching logs into :class:`DecodedLog`.

Example:
    ::

        from chainsync.chain import ChainClient, EventSignature

        client = ChainClient.create(rpc="https://rpc.sepolia.org")
        transfer = EventSignature(
            "Transfer(address indexed from, address indexed to, uint256 value)"
        )
        tip = client.current_block_height()
        logs = client.query_logs(
            "0x7b79995e5f793A07Bc00c21412e50Ecae098E7f9",
            transfer.topic,
            tip - 100,
            tip,
        )
        decoded = [client.decode_log(l, transfer) for l in logs]
"""

from chainsync.chain.signature import DecodedLog, EventField, EventSignature
from chainsync.chain.client import ChainClient

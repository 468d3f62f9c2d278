"""
Module for storing transactions collected by the backfill fetcher.

Transactions are keyed by hash. Storing a known hash again only
refreshes ``gas_used`` and ``status``, never the immutable chain facts.
"""

from chainsync.transactions.transaction import Transaction
from chainsync.transactions.repo import TransactionsRepo

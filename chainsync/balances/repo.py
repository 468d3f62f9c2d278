from __future__ import annotations
from typing import List

from chainsync.balances.balance import AddressBalance
from chainsync.core import Repo
from chainsync.utils import utc_now


class BalancesRepo(Repo):
    """
    Reading and writing :class:`AddressBalance` to database.
    """

    def upsert(self, balance: AddressBalance) -> AddressBalance:
        """
        Replace the snapshot stored for ``(balance.user_id, balance.address)``.
        Last write wins.

        Args:
            balance: Balance to save

        Returns:
            The saved balance with ``last_updated`` set
        """
        balance.last_updated = utc_now()
        self._execute(
            "INSERT INTO address_balances (user_id, address, balance, block_number, last_updated) "
            "VALUES (?,?,?,?,?) "
            "ON CONFLICT (user_id, address) DO UPDATE SET "
            "balance = excluded.balance, block_number = excluded.block_number, "
            "last_updated = excluded.last_updated",
            balance.to_row(),
        )
        return balance

    def find(self, address: str, user_id: str | None = None) -> AddressBalance | None:
        """
        Snapshot of ``address`` for ``user_id``.
        """
        row = self._execute(
            "SELECT user_id, address, balance, block_number, last_updated "
            "FROM address_balances WHERE user_id = ? AND address = ?",
            (user_id or "", address.lower()),
        ).fetchone()
        if not row:
            return None
        return AddressBalance.from_row(row)

    def find_by_user(self, user_id: str | None) -> List[AddressBalance]:
        """
        All snapshots of a user, most recently refreshed first.
        """
        rows = self._execute(
            "SELECT user_id, address, balance, block_number, last_updated "
            "FROM address_balances WHERE user_id = ? ORDER BY last_updated DESC, address",
            (user_id or "",),
        ).fetchall()
        return [AddressBalance.from_row(r) for r in rows]

    def purge(self):
        """
        Clean all balances entries from the database.
        """
        self._execute("DELETE FROM address_balances")

from __future__ import annotations
from typing import Any, Dict, List

from chainsync.core import Repo
from chainsync.transactions.transaction import COLUMNS, Transaction
from chainsync.utils import utc_now


class TransactionsRepo(Repo):
    """
    Reading and writing :class:`Transaction` to database.
    """

    def exists(self, hash: str) -> bool:
        """
        Check if a transaction with ``hash`` is already stored.
        """
        row = self._execute(
            "SELECT 1 FROM transactions WHERE hash = ? LIMIT 1", (hash.lower(),)
        ).fetchone()
        return row is not None

    def find(self, hash: str) -> Transaction | None:
        """
        Find a transaction by hash.
        """
        row = self._execute(
            f"SELECT {', '.join(COLUMNS)} FROM transactions WHERE hash = ?",
            (hash.lower(),),
        ).fetchone()
        if not row:
            return None
        return Transaction.from_row(row)

    def upsert(self, transactions: List[Transaction]):
        """
        Insert transactions. A transaction already stored under the same
        hash only gets ``gas_used`` and ``status`` refreshed, and keeps
        them when the new write carries none.

        Args:
            transactions: List of transactions to save
        """
        if len(transactions) == 0:
            return
        now = utc_now()
        rows = [(*t.to_row(), now, now) for t in transactions]
        self._executemany(
            f"INSERT INTO transactions ({', '.join(COLUMNS)}, created_at, updated_at) "
            f"VALUES ({', '.join('?' * (len(COLUMNS) + 2))}) "
            "ON CONFLICT (hash) DO UPDATE SET "
            "gas_used = COALESCE(excluded.gas_used, gas_used), "
            "status = COALESCE(excluded.status, status), "
            "updated_at = excluded.updated_at",
            rows,
        )

    def find_by_user(
        self, user_id: str, page: int = 1, limit: int = 50
    ) -> Dict[str, Any]:
        """
        Page of transactions collected for a user, newest first.

        Args:
            user_id: Owner of the backfill requests
            page: 1-based page number
            limit: page size

        Returns:
            ``{"transactions": [...], "pagination": {"page", "limit", "total", "pages"}}``
        """
        page = max(int(page), 1)
        rows = self._execute(
            f"SELECT {', '.join(COLUMNS)} FROM transactions WHERE user_id = ? "
            "ORDER BY block_number DESC, transaction_index DESC LIMIT ? OFFSET ?",
            (user_id, limit, (page - 1) * limit),
        ).fetchall()
        total = self.count(user_id)
        return {
            "transactions": [Transaction.from_row(r) for r in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": -(-total // limit) if limit > 0 else 0,
            },
        }

    def count(self, user_id: str | None = None) -> int:
        if user_id is None:
            return self._execute("SELECT COUNT(*) FROM transactions").fetchone()[0]
        return self._execute(
            "SELECT COUNT(*) FROM transactions WHERE user_id = ?", (user_id,)
        ).fetchone()[0]

    def purge(self):
        """
        Clean all database entries
        """
        self._execute("DELETE FROM transactions")

from __future__ import annotations
import json

from chainsync.constants import CURSOR_ID
from chainsync.core import Repo
from chainsync.cursors.cursor import Cursor


class CursorsRepo(Repo):
    """
    Document store for :class:`Cursor`. Each cursor is kept as one
    json document keyed by its id.
    """

    def read(self, id: str = CURSOR_ID) -> Cursor | None:
        """
        Read the cursor document.

        Returns:
            The cursor, ``None`` if it was never written
        """
        row = self._execute(
            "SELECT document FROM cursors WHERE id = ?", (id,)
        ).fetchone()
        if not row:
            return None
        return Cursor.from_dict(json.loads(row[0]))

    def upsert(self, cursor: Cursor):
        """
        Replace the cursor document.
        """
        self._execute(
            "INSERT INTO cursors (id, document) VALUES (?, ?) "
            "ON CONFLICT (id) DO UPDATE SET document = excluded.document",
            (cursor.id, json.dumps(cursor.to_dict())),
        )

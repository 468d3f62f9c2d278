"""
Module for the durable indexer cursor.

The cursor is the only state shared between indexer iterations. It is
created on the first start, rewritten after every processed range and
every start/stop transition, and never deleted.
"""

from chainsync.cursors.cursor import Cursor
from chainsync.cursors.repo import CursorsRepo

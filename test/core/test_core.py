import threading
import pytest

from chainsync.core import Core, Repo, connection_from_path, env_setting
from chainsync.errors import ConfigurationError, PersistenceError


def test_env_setting(monkeypatch: pytest.MonkeyPatch):
    assert env_setting("CHAINSYNC_CHUNK_SIZE", 2000) == 2000
    monkeypatch.setenv("CHAINSYNC_CHUNK_SIZE", "50")
    assert env_setting("CHAINSYNC_CHUNK_SIZE", 2000) == 50
    monkeypatch.setenv("CHAINSYNC_POLL_INTERVAL", "0.5")
    assert env_setting("CHAINSYNC_POLL_INTERVAL", 5.0, float) == 0.5
    monkeypatch.setenv("CHAINSYNC_CHUNK_SIZE", "")
    assert env_setting("CHAINSYNC_CHUNK_SIZE", 2000) == 2000
    monkeypatch.setenv("CHAINSYNC_CHUNK_SIZE", "lots")
    with pytest.raises(ConfigurationError):
        env_setting("CHAINSYNC_CHUNK_SIZE", 2000)


def test_database_is_required():
    with pytest.raises(ConfigurationError):
        Core().conn


def test_database_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    path = f"{tmp_path}/chainsync.db"
    monkeypatch.setenv("CHAINSYNC_DB_PATH", path)
    r1 = Repo()
    r2 = Repo(cache_path=path)
    assert r1.conn is r2.conn
    tables = {
        row[0]
        for row in r1.conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    }
    assert tables >= {"events", "transactions", "address_balances", "cursors"}


def test_schema_survives_reopen(tmp_path):
    path = f"{tmp_path}/reopen.db"
    conn = connection_from_path(path)
    conn.execute("INSERT INTO cursors (id, document) VALUES ('a', '{}')")
    conn.commit()
    conn.close()

    conn = connection_from_path(path)
    assert conn.execute("SELECT COUNT(*) FROM cursors").fetchone()[0] == 1


def test_sqlite_errors_are_persistence_errors(conn):
    repo = Repo(conn=conn)
    with pytest.raises(PersistenceError):
        repo._execute("INSERT INTO missing_table VALUES (1)")
    with pytest.raises(PersistenceError):
        repo._executemany("INSERT INTO cursors (id, document) VALUES (?, ?)", [("a", "{}"), ("a", "{}")])


def stored_cursor_ids(conn):
    return [row[0] for row in conn.execute("SELECT id FROM cursors ORDER BY id")]


def test_transaction(conn):
    repo = Repo(conn=conn)
    other = Repo(conn=conn)
    assert repo.lock is other.lock

    with pytest.raises(RuntimeError):
        with repo.transaction():
            repo._execute("INSERT INTO cursors (id, document) VALUES ('a', '{}')")
            raise RuntimeError("interrupted")
    assert stored_cursor_ids(conn) == []

    with repo.transaction():
        with other.transaction():
            other._execute("INSERT INTO cursors (id, document) VALUES ('b', '{}')")
        repo._execute("INSERT INTO cursors (id, document) VALUES ('c', '{}')")
    assert stored_cursor_ids(conn) == ["b", "c"]


def test_transaction_blocks_other_threads(conn):
    repo = Repo(conn=conn)
    other = Repo(conn=conn)

    with repo.transaction():
        repo._execute("INSERT INTO cursors (id, document) VALUES ('d', '{}')")
        rollback = threading.Thread(target=other.rollback)
        rollback.start()
        rollback.join(0.2)
        assert rollback.is_alive()
    rollback.join(10)

    assert not rollback.is_alive()
    assert stored_cursor_ids(conn) == ["d"]

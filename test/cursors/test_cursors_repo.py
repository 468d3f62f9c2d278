from chainsync.cursors import Cursor, CursorsRepo


def test_read_empty(cursors_repo: CursorsRepo):
    assert cursors_repo.read() is None


def test_upsert_replaces_document(cursors_repo: CursorsRepo):
    cursors_repo.upsert(Cursor(99, is_running=True, start_block=100))
    cursors_repo.upsert(Cursor(109, is_running=True, start_block=100, error_count=2))
    cursors_repo.commit()

    assert cursors_repo.read() == Cursor(
        109, is_running=True, start_block=100, error_count=2
    )
    assert cursors_repo.read("other") is None
    count = cursors_repo.conn.execute("SELECT COUNT(*) FROM cursors").fetchone()[0]
    assert count == 1

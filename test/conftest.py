import pytest

pytest_plugins = ["fixtures.general", "fixtures.services"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """
    Auto use fixture that hides tuning overrides of the host environment
    """
    for name in (
        "CHAINSYNC_CHUNK_SIZE",
        "CHAINSYNC_POLL_INTERVAL",
        "CHAINSYNC_MAX_RETRIES",
        "CHAINSYNC_RETRY_BASE_DELAY",
        "CHAINSYNC_BATCH_SIZE",
        "CHAINSYNC_TARGET_COUNT",
        "CHAINSYNC_THROTTLE_DELAY",
        "CHAINSYNC_MAX_BLOCKS",
        "CHAINSYNC_RPC_TIMEOUT",
        "CHAINSYNC_DB_PATH",
        "WEB3_PROVIDER_URI",
    ):
        monkeypatch.delenv(name, raising=False)

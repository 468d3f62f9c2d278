"""
Default tuning values. Each of them can be overridden with a constructor
argument or an environment variable (see :func:`chainsync.core.env_setting`).
"""

#: Blocks per indexer poll iteration
DEFAULT_CHUNK_SIZE = 2000
#: Seconds between two indexer iterations when nothing failed
DEFAULT_POLL_INTERVAL = 5.0
#: Consecutive failed iterations after which the indexer stops itself
DEFAULT_MAX_RETRIES = 5
#: Backoff base in seconds, the n-th retry waits ``base * 2 ** (n - 1)``
DEFAULT_RETRY_BASE_DELAY = 5.0

#: Blocks per backfill sub-batch
DEFAULT_BATCH_SIZE = 16
#: New transactions a backfill collects before it stops scanning
DEFAULT_TARGET_COUNT = 5
#: Seconds to wait between two block fetches of a backfill
DEFAULT_THROTTLE_DELAY = 0.3
#: Upper bound of blocks scanned by a single backfill (``None`` is unbounded)
DEFAULT_MAX_BLOCKS = None
#: Attempts per block before a backfill gives up on it
DEFAULT_BACKFILL_MAX_RETRIES = 3
#: Backoff base in seconds for backfill block fetches
DEFAULT_BACKFILL_RETRY_BASE_DELAY = 1.0

#: Seconds before an RPC request times out
DEFAULT_RPC_TIMEOUT = 10

#: Id of the singleton cursor document
CURSOR_ID = "globalIndexer"

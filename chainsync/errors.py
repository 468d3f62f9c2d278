"""
Exceptions raised by the chainsync engines.

* :class:`ConfigurationError`: bad input or an absent contract.
  Surfaced to the caller, never retried.
* :class:`TransientRPCError`: network failure or timeout.
  Retried with exponential backoff.
* :class:`DecodeError`: a malformed log or transaction.
  Logged and skipped, the surrounding batch continues.
* :class:`PersistenceError`: a store write failed.
  Fails the current iteration, the cursor is never advanced past it.
"""


class ChainSyncError(Exception):
    """
    Base class for every chainsync error.
    """


class ConfigurationError(ChainSyncError, ValueError):
    pass


class TransientRPCError(ChainSyncError):
    pass


class DecodeError(ChainSyncError):
    pass


class PersistenceError(ChainSyncError):
    pass

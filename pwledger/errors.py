"""
PWLedger - Error Types

Every failure a ledger operation can raise:
- ValidationError: malformed input, rejected before any state is touched
- AuthenticationError: password or inclusion proof did not verify
- ConcurrencyError: the caller's root is stale (refetch and retry)
- ConsistencyFault: the mirror diverged from the authoritative root (fatal)
"""


class LedgerError(Exception):
    """Base class for recoverable ledger errors."""


class ValidationError(LedgerError, ValueError):
    """Input is malformed (oversized secret, wrong field width, bad slot...)."""


class AuthenticationError(LedgerError):
    """Password or inclusion proof rejected.

    The message never says which check failed.
    """

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class ConcurrencyError(LedgerError):
    """Authoritative root changed since the caller read it."""


class ConsistencyFault(RuntimeError):
    """
    Local mirror and authoritative commitment have diverged.

    Not a LedgerError: callers catching LedgerError must never swallow it.
    """

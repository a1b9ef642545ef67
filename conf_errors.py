"""
Error taxonomy for the confidential ledger.

Mutating operations raise these; verification and view functions catch them
and report False / None instead.
"""


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""


class PermissionDenied(LedgerError):
    """Self-update attempted on a ledger whose policy forbids it."""


class NotFound(LedgerError):
    """The targeted holder has no entry in the ledger."""


class DecryptionFailure(LedgerError):
    """An encrypted opening failed authentication or is structurally malformed."""


class MalformedData(LedgerError, ValueError):
    """Hex / base64 decoding, point decoding or document shape is invalid."""

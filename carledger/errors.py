"""
Ledger error taxonomy.

Every failure raised by the ownership core is a ``LedgerError`` subclass with
a stable ``code`` so hosts can map failures to transport status without
parsing messages. All of them are terminal for the invoking call.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


# =============================================================================
# BASE
# =============================================================================

class LedgerError(Exception):
    """Base exception for ledger operation failures."""

    code = "ledger_error"

    def __init__(self, message: str, key: str = ""):
        self.message = message
        self.key = key
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.key:
            d["key"] = self.key
        return d


# =============================================================================
# INPUT ERRORS
# =============================================================================

class InvalidKey(LedgerError):
    """Asset key failed a format rule."""

    code = "invalid_key"

    def __init__(self, key: str, rule: str, message: str):
        self.rule = rule
        super().__init__(message, key)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["rule"] = self.rule
        return d


class EmptyField(LedgerError):
    """A required parameter was empty."""

    code = "empty_field"

    def __init__(self, key: str, field: str, message: str):
        self.field = field
        super().__init__(message, key)


class NoOpRejected(LedgerError):
    """New value equals the current one (case-insensitive)."""

    code = "noop_rejected"

    def __init__(self, key: str, field: str, current: str, message: str):
        self.field = field
        self.current = current
        super().__init__(message, key)


# =============================================================================
# STATE ERRORS
# =============================================================================

class NotFound(LedgerError):
    """No store entry exists for the key."""

    code = "not_found"

    def __init__(self, key: str, message: Optional[str] = None):
        super().__init__(message or f"The car {key} does not exist.", key)


class AlreadyExists(LedgerError):
    """A store entry already exists for the key."""

    code = "already_exists"

    def __init__(self, key: str, message: Optional[str] = None):
        super().__init__(message or f"The car {key} already exists.", key)


class CorruptHistory(LedgerError):
    """A stored or historical snapshot is not a valid car record."""

    code = "corrupt_history"

    def __init__(self, key: str, raw: str, message: Optional[str] = None):
        self.raw = raw
        super().__init__(message or f"The car {key} has an invalid JSON record {raw}.", key)


# =============================================================================
# POLICY ERRORS
# =============================================================================

class Unauthorized(LedgerError):
    """Caller is neither custodian, name-matched owner, nor administrator."""

    code = "unauthorized"

    def __init__(self, key: str, caller_name: str, custodian_name: str, message: str):
        self.caller_name = caller_name
        self.custodian_name = custodian_name
        super().__init__(message, key)


class QuotaExceeded(LedgerError):
    """Caller already holds the maximum number of cars."""

    code = "quota_exceeded"

    def __init__(self, key: str, caller_name: str, limit: int, is_claim: bool):
        self.caller_name = caller_name
        self.limit = limit
        self.is_claim = is_claim
        if is_claim:
            message = (
                f"The car transfer of car {key} cannot be accepted. "
                f"User {caller_name} is not authorised to own more than {limit} cars."
            )
        else:
            message = (
                f"The car {key} cannot be created. "
                f"User {caller_name} is not authorised to create or own more than {limit} cars."
            )
        super().__init__(message, key)

"""
Exceptions raised by the metering core.

Quota exhaustion is not among them: it is a normal AdmissionResult.
Store failures are not wrapped either and reach the caller unchanged.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .admission import AdmissionResult


class MeteringError(Exception):
    """Base class for metering errors."""


class AccountNotFound(MeteringError):
    """Raised when an account id does not resolve."""
    def __init__(self, account_id: str):
        super().__init__("Account not found")
        self.account_id = account_id


class ForbiddenOperation(MeteringError):
    """Raised when an operation targets a protected role or lacks privilege."""


class AlreadyInState(MeteringError):
    """Raised when an administrative action would not change anything."""


class InvalidIdentity(MeteringError):
    """Raised when caller claims lack an account id or a role."""


class AdmissionDenied(MeteringError):
    """Raised by SDK wrappers when a metered call is not admitted."""
    def __init__(self, result: "AdmissionResult"):
        super().__init__(result.reason or "AI usage is currently restricted")
        self.result = result

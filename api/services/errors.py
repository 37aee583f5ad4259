"""
Error taxonomy and typed operation results for the subscription engine.

Business-rule violations are raised inside the engine as `SubscriptionError`
subclasses and converted to `OperationResult` at the use-case boundary, so
callers always receive a structured success/error value.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state_transition"
    NOTICE_PERIOD = "notice_period_violation"
    REACTIVATION_EXPIRED = "reactivation_window_expired"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    DATASTORE_UNAVAILABLE = "datastore_unavailable"


class SubscriptionError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SubscriptionError):
    kind = ErrorKind.VALIDATION


class InvalidDuration(ValidationError):
    pass


class NotFoundError(SubscriptionError):
    kind = ErrorKind.NOT_FOUND


class InvalidStateTransition(SubscriptionError):
    kind = ErrorKind.INVALID_STATE


class NoticePeriodViolation(SubscriptionError):
    kind = ErrorKind.NOTICE_PERIOD


class ReactivationWindowExpired(SubscriptionError):
    kind = ErrorKind.REACTIVATION_EXPIRED


class ConcurrentModification(SubscriptionError):
    kind = ErrorKind.CONCURRENT_MODIFICATION


class DatastoreUnavailable(SubscriptionError):
    kind = ErrorKind.DATASTORE_UNAVAILABLE


@dataclass
class OperationResult:
    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(cls, message: str, **data: Any) -> OperationResult:
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: SubscriptionError) -> OperationResult:
        return cls(success=False, message=error.message, error_kind=error.kind)


@dataclass
class ItemOutcome:
    subscription_id: str
    ok: bool
    error: str | None = None


@dataclass
class BulkOutcome:
    """Per-subscription results of a best-effort bulk operation."""

    items: list[ItemOutcome] = field(default_factory=list)

    def record_success(self, subscription_id) -> None:
        self.items.append(ItemOutcome(str(subscription_id), True))

    def record_failure(self, subscription_id, error: str) -> None:
        self.items.append(ItemOutcome(str(subscription_id), False, error))

    @property
    def processed_count(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def errors(self) -> list[str]:
        return [f"{item.subscription_id}: {item.error}" for item in self.items if not item.ok]

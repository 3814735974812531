"""Custom exceptions with RFC 7807 Problem Detail rendering."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

BASE_ERROR_URI = "https://hr-kiosk.local/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all rule-engine exceptions → RFC 7807 dict."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)

    def to_problem_detail(self, instance: Optional[str] = None) -> dict[str, Any]:
        body: dict[str, Any] = {
            "type": f"{BASE_ERROR_URI}/{self.error_type}",
            "title": self.title,
            "status": self.status_code,
            "detail": self.detail,
        }
        if instance:
            body["instance"] = instance
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — overlapping or duplicate entry."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' conflicts with an existing entry."]},
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


# ── Leave / policy errors ───────────────────────────────────────────

class InsufficientBalanceException(AppException):
    """422 — requested days exceed the spendable balance. Nothing was written."""

    def __init__(self, available: Decimal, requested: Decimal) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Leave Balance",
            detail=f"Available: {available}, Requested: {requested}.",
            errors={"balance": [f"Only {available} day(s) available."]},
        )


class PolicyNotFoundException(NotFoundException):
    """404 — no policy with this id (or none active for the date)."""

    def __init__(self, policy_kind: str, policy_id: Any) -> None:
        super().__init__(policy_kind, policy_id)
        self.error_type = "policy-not-found"


class PolicyInactiveException(AppException):
    """422 — the policy exists but is archived or inactive."""

    def __init__(self, policy_kind: str, policy_id: Any) -> None:
        super().__init__(
            status_code=422,
            error_type="policy-inactive",
            title=f"{policy_kind} Inactive",
            detail=f"{policy_kind} '{policy_id}' is not active.",
        )


class LedgerWriteException(AppException):
    """500 — a ledger append or balance update failed; the unit must be rolled back."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=500,
            error_type="ledger-write-failure",
            title="Ledger Write Failure",
            detail=detail,
        )

"""
Error taxonomy for proposal and submission workflows.

Every error is scoped to a single request. Routes never build these
responses by hand; the handler registered in app.main renders
``{"status": "error", "code", "message", "details"}`` with ``status_code``.
"""
from __future__ import annotations

from typing import Any, Iterable


class MarketplaceError(Exception):
    code = "ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None, *, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "error",
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class AuthorizationDenied(MarketplaceError):
    code = "ACCESS_DENIED"
    status_code = 403
    default_message = "Caller is not allowed to perform this action"


class NotFound(MarketplaceError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class InvalidStateTransition(MarketplaceError):
    code = "INVALID_STATUS"
    status_code = 409

    def __init__(
        self,
        current_status: str,
        action: str,
        legal_actions: Iterable[str] = (),
        message: str | None = None,
    ):
        self.current_status = current_status
        self.action = action
        self.legal_actions = sorted(legal_actions)
        super().__init__(
            message or f"Cannot {action} from status '{current_status}'",
            details={
                "current_status": current_status,
                "action": action,
                "legal_actions": self.legal_actions,
            },
        )


class ValidationFailed(MarketplaceError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Validation failed"

    def __init__(self, errors: list[tuple[str, str]], message: str | None = None):
        self.errors = list(errors)
        super().__init__(
            message,
            details=[{"field": field, "message": msg} for field, msg in self.errors],
        )


class NdaRequired(MarketplaceError):
    code = "NDA_REQUIRED"
    status_code = 400
    default_message = "A signed NDA is required first"


class AlreadySigned(MarketplaceError):
    code = "ALREADY_SIGNED"
    status_code = 409
    default_message = "NDA already signed"


class AlreadyRequested(MarketplaceError):
    code = "ALREADY_REQUESTED"
    status_code = 409
    default_message = "A request is already pending"


class AlreadyApproved(MarketplaceError):
    code = "ALREADY_APPROVED"
    status_code = 409
    default_message = "Contact exchange already approved"


class NoRequestPending(MarketplaceError):
    code = "NO_REQUEST"
    status_code = 409
    default_message = "No pending request to approve"


class TerminalStateError(MarketplaceError):
    code = "TERMINAL_STATE"
    status_code = 409

    def __init__(self, current_status: str, action: str):
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Submission is closed ({current_status}); cannot {action}",
            details={"current_status": current_status, "action": action},
        )


class ConflictError(MarketplaceError):
    code = "CONFLICT"
    status_code = 409
    default_message = "Resource was modified concurrently; reload and retry"

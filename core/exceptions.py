"""
Domain errors raised by the reconciliation services.

Views translate these into ``{"ok": false, "error": ..., "code"?: ...}``
responses via ``core.views_common.error_response``.
"""

from typing import Any, Optional


class ReconcileError(Exception):
    status_code = 400
    default_code: Optional[str] = None

    def __init__(self, message: str, *, code: Optional[str] = None, extra: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.extra = extra or {}

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": False, "error": self.message}
        if self.code:
            payload["code"] = self.code
        payload.update(self.extra)
        return payload


class ValidationError(ReconcileError):
    """Malformed or inconsistent input."""

    status_code = 400


class NotFoundError(ReconcileError):
    status_code = 404


class ConflictError(ReconcileError):
    """Business-rule rejection such as "already matched" or "already voided"."""

    status_code = 400


class ForbiddenError(ReconcileError):
    status_code = 403


class PolicyDeniedError(ForbiddenError):
    default_code = "POLICY_DENIED"

    def __init__(
        self,
        *,
        action_key: str,
        required_level: str,
        policy_value: str,
        policy_key: str,
    ):
        super().__init__("Policy denied")
        self.action_key = action_key
        self.required_level = required_level
        self.policy_value = policy_value
        self.policy_key = policy_key

    def as_payload(self) -> dict[str, Any]:
        payload = super().as_payload()
        payload.update(
            {
                "actionKey": self.action_key,
                "requiredLevel": self.required_level,
                "policyValue": self.policy_value,
                "policyKey": self.policy_key,
            }
        )
        return payload


class ClosedPeriodError(ReconcileError):
    status_code = 409
    default_code = "CLOSED_PERIOD"

    def __init__(self, message: str = "This period is closed. Reopen period to modify.", **kwargs):
        super().__init__(message, **kwargs)


class CloseBeyondTodayError(ReconcileError):
    status_code = 409
    default_code = "CANNOT_CLOSE_BEYOND_TODAY"

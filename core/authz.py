"""
Role allowlist and per-business role policies for write endpoints.

Two layers:
- ``can_write(role)``: hard allowlist checked before anything else.
- ``authorize_write(...)``: policy evaluation driven by ``Business.authz_mode``
  (OFF / SOFT / ENFORCE). Policies are the in-code ``DEFAULTS`` table merged
  with ``BusinessRolePolicy.policy_json`` overrides.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Optional

from django.conf import settings

from . import activity
from .exceptions import PolicyDeniedError
from .models import Business, BusinessMembership, BusinessRolePolicy

logger = logging.getLogger(__name__)

AuthzMode = Literal["OFF", "SOFT", "ENFORCE"]
RequiredLevel = Literal["VIEW", "FULL"]
PolicyValue = Literal["NONE", "VIEW", "FULL"]

_MODES = {"OFF", "SOFT", "ENFORCE"}
_LEVELS = {"VIEW", "FULL"}
_POLICY_VALUES = {"NONE", "VIEW", "FULL"}

WRITE_ROLES = frozenset({"OWNER", "ADMIN", "BOOKKEEPER", "ACCOUNTANT"})

DEFAULTS: Mapping[str, Mapping[str, PolicyValue]] = {
    "OWNER": {
        "dashboard": "FULL",
        "ledger": "FULL",
        "reconcile": "FULL",
        "issues": "FULL",
        "vendors": "FULL",
        "invoices": "FULL",
        "reports": "FULL",
        "settings": "FULL",
        "bank_connections": "FULL",
        "team_management": "FULL",
        "billing": "FULL",
        "ai_automation": "FULL",
        "snapshots": "FULL",
        "exports": "FULL",
        "roles_policy": "FULL",
    },
    "ADMIN": {
        "dashboard": "FULL",
        "ledger": "FULL",
        "reconcile": "FULL",
        "issues": "FULL",
        "vendors": "FULL",
        "invoices": "VIEW",
        "reports": "VIEW",
        "settings": "FULL",
        "bank_connections": "FULL",
        "team_management": "FULL",
        "billing": "FULL",
        "ai_automation": "VIEW",
        "snapshots": "FULL",
        "exports": "FULL",
        "roles_policy": "VIEW",
    },
    "BOOKKEEPER": {
        "dashboard": "VIEW",
        "ledger": "FULL",
        "reconcile": "FULL",
        "issues": "FULL",
        "vendors": "VIEW",
        "invoices": "VIEW",
        "reports": "VIEW",
        "settings": "VIEW",
        "bank_connections": "VIEW",
        "team_management": "NONE",
        "billing": "NONE",
        "ai_automation": "VIEW",
        "snapshots": "FULL",
        "exports": "FULL",
        "roles_policy": "NONE",
    },
    "ACCOUNTANT": {
        "dashboard": "VIEW",
        "ledger": "VIEW",
        "reconcile": "FULL",
        "issues": "FULL",
        "vendors": "VIEW",
        "invoices": "VIEW",
        "reports": "FULL",
        "settings": "VIEW",
        "bank_connections": "VIEW",
        "team_management": "NONE",
        "billing": "NONE",
        "ai_automation": "VIEW",
        "snapshots": "FULL",
        "exports": "FULL",
        "roles_policy": "NONE",
    },
    "MEMBER": {
        "dashboard": "VIEW",
        "ledger": "VIEW",
        "reconcile": "VIEW",
        "issues": "VIEW",
        "vendors": "NONE",
        "invoices": "NONE",
        "reports": "VIEW",
        "settings": "NONE",
        "bank_connections": "NONE",
        "team_management": "NONE",
        "billing": "NONE",
        "ai_automation": "NONE",
        "snapshots": "VIEW",
        "exports": "NONE",
        "roles_policy": "NONE",
    },
}

# Action keys are named by the handler, not derived from the route.
ACTION_POLICY_KEY: Mapping[str, str] = {
    "reconcile.matchGroup.create": "reconcile",
    "reconcile.matchGroup.batchCreate": "reconcile",
    "reconcile.matchGroup.void": "reconcile",
    "reconcile.match.create": "reconcile",
    "reconcile.match.batchCreate": "reconcile",
    "reconcile.match.void": "reconcile",
    "reconcile.entry.create": "reconcile",
    "reconcile.entry.create.batch": "reconcile",
    "reconcile.adjustment.mark": "reconcile",
    "reconcile.adjustment.unmark": "reconcile",
}


def normalize_role(role: Any) -> str:
    return str(role if role is not None else "").strip().upper()


def _normalize_mode(value: Any) -> AuthzMode:
    text = str(value if value is not None else "").strip().upper()
    return text if text in _MODES else "OFF"  # type: ignore[return-value]


def _normalize_level(value: Any) -> RequiredLevel:
    text = str(value if value is not None else "").strip().upper()
    return text if text in _LEVELS else "FULL"  # type: ignore[return-value]


def _normalize_policy_value(value: Any) -> PolicyValue:
    text = str(value if value is not None else "").strip().upper()
    return text if text in _POLICY_VALUES else "NONE"  # type: ignore[return-value]


def policy_allows(policy_value: PolicyValue, required: RequiredLevel) -> bool:
    if required == "VIEW":
        return policy_value in ("VIEW", "FULL")
    return policy_value == "FULL"


def can_write(role: Any) -> bool:
    return normalize_role(role) in WRITE_ROLES


def resolve_policy(role: Any, overrides: Optional[Mapping[str, Any]] = None) -> dict[str, PolicyValue]:
    """
    Effective permission map for ``role``.

    Starts from a copy of the role's defaults (unknown roles fall back to
    MEMBER) and overlays normalized ``overrides``. ``DEFAULTS`` is never mutated.
    """
    base = DEFAULTS.get(normalize_role(role)) or DEFAULTS["MEMBER"]
    merged: dict[str, PolicyValue] = copy.deepcopy(dict(base))
    if isinstance(overrides, Mapping):
        for key, value in overrides.items():
            merged[str(key)] = _normalize_policy_value(value)
    return merged


def get_business_mode(business: Business) -> AuthzMode:
    forced = str(getattr(settings, "AUTHZ_FORCE_MODE", "") or "").strip().upper()
    # Emergency override is limited to relaxing modes.
    if forced in ("OFF", "SOFT"):
        return forced  # type: ignore[return-value]
    return _normalize_mode(business.authz_mode)


def get_role_membership(business: Business, user) -> Optional[BusinessMembership]:
    if not user or not getattr(user, "is_authenticated", False):
        return None
    return BusinessMembership.objects.filter(business=business, user=user).first()


def _stored_overrides(business: Business, role: str) -> Optional[dict[str, Any]]:
    row = BusinessRolePolicy.objects.filter(business=business, role=role).only("policy_json").first()
    if row is None or not isinstance(row.policy_json, dict):
        return None
    return row.policy_json


@dataclass(frozen=True)
class AuthzDecision:
    mode: AuthzMode
    allowed: bool
    enforced: bool
    policy_key: Optional[str]
    policy_value: PolicyValue
    required_level: RequiredLevel


def authorize_write(
    *,
    business: Business,
    user,
    role: str,
    action_key: str,
    endpoint: str,
    scope_account_id=None,
    required_level: RequiredLevel = "FULL",
) -> AuthzDecision:
    """
    Evaluate the role policy for a write. Callers check ``can_write`` first.

    SOFT appends ``AUTHZ_SOFT_EVALUATED`` and always allows. ENFORCE appends
    ``AUTHZ_ENFORCED_DENIED`` and raises ``PolicyDeniedError`` on a deny.
    Unmapped action keys are never enforced.
    """
    mode = get_business_mode(business)
    required = _normalize_level(required_level)
    if mode == "OFF":
        return AuthzDecision(mode, True, False, None, "NONE", required)

    role_key = normalize_role(role)
    policy_key = ACTION_POLICY_KEY.get(action_key)
    policy = resolve_policy(role_key, _stored_overrides(business, role_key))
    policy_value = _normalize_policy_value(policy.get(policy_key) if policy_key else "NONE")
    would_allow = policy_allows(policy_value, required)

    if mode == "SOFT":
        activity.log_activity(
            business_id=business.id,
            actor_user=user,
            scope_account_id=scope_account_id,
            payload=activity.AuthzSoftEvaluatedPayload(
                endpoint=endpoint,
                actionKey=action_key,
                requiredLevel=required,
                policyKey=policy_key,
                policyValue=policy_value,
                result="WOULD_ALLOW" if would_allow else "WOULD_DENY",
                role=role_key,
            ),
        )
        return AuthzDecision(mode, True, False, policy_key, policy_value, required)

    if policy_key is None:
        return AuthzDecision(mode, True, False, None, policy_value, required)

    if not would_allow:
        activity.log_activity(
            business_id=business.id,
            actor_user=user,
            scope_account_id=scope_account_id,
            payload=activity.AuthzEnforcedDeniedPayload(
                endpoint=endpoint,
                actionKey=action_key,
                requiredLevel=required,
                policyKey=policy_key,
                policyValue=policy_value,
                role=role_key,
            ),
        )
        logger.warning(
            "Policy denied business=%s role=%s action=%s policy=%s:%s",
            business.id,
            role_key,
            action_key,
            policy_key,
            policy_value,
        )
        raise PolicyDeniedError(
            action_key=action_key,
            required_level=required,
            policy_value=policy_value,
            policy_key=policy_key,
        )

    return AuthzDecision(mode, True, True, policy_key, policy_value, required)

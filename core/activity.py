"""
Activity log payloads and the append helper.

Each ``event_type`` has one pydantic payload model with a fixed shape; the
``ActivityPayload`` union is discriminated on ``event_type`` so stored rows can
be parsed back into the right model. Cents are carried as decimal strings.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .models import ActivityLog

logger = logging.getLogger(__name__)

MATCH_GROUP_CREATED = "RECONCILE_MATCH_GROUP_CREATED"
MATCH_GROUP_VOIDED = "RECONCILE_MATCH_GROUP_VOIDED"
MATCH_CREATED = "RECONCILE_MATCH_CREATED"
MATCH_VOIDED = "RECONCILE_MATCH_VOIDED"
ENTRY_ADJUSTMENT_MARKED = "RECONCILE_ENTRY_ADJUSTMENT_MARKED"
ENTRY_ADJUSTMENT_UNMARKED = "RECONCILE_ENTRY_ADJUSTMENT_UNMARKED"
CLOSED_PERIOD_CLOSED = "CLOSED_PERIOD_CLOSED"
CLOSED_PERIOD_REOPENED = "CLOSED_PERIOD_REOPENED"
AUTHZ_SOFT_EVALUATED = "AUTHZ_SOFT_EVALUATED"
AUTHZ_ENFORCED_DENIED = "AUTHZ_ENFORCED_DENIED"


def _cents(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("cents must be an integer")
    if isinstance(value, int):
        return str(value)
    return value


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class MatchGroupCreatedPayload(_Payload):
    event_type: Literal["RECONCILE_MATCH_GROUP_CREATED"] = MATCH_GROUP_CREATED
    match_group_id: str
    direction: Literal["INFLOW", "OUTFLOW"]
    bank_transaction_ids: list[str]
    entry_ids: list[str]
    bank_sum_cents: str
    entry_sum_cents: str

    cents_to_str = field_validator("bank_sum_cents", "entry_sum_cents", mode="before")(_cents)


class MatchGroupVoidedPayload(_Payload):
    event_type: Literal["RECONCILE_MATCH_GROUP_VOIDED"] = MATCH_GROUP_VOIDED
    match_group_id: str
    reason: Optional[str] = None


class MatchCreatedPayload(_Payload):
    """
    Legacy match creation. ``action`` distinguishes a plain match from the
    create-entry-from-bank-transaction flow.
    """

    event_type: Literal["RECONCILE_MATCH_CREATED"] = MATCH_CREATED
    action: Literal["MATCH_CREATE", "BANK_TXN_CREATE_ENTRY"] = "MATCH_CREATE"
    account_id: str
    bank_transaction_id: str
    entry_id: str
    match_id: Optional[str] = None
    match_type: Optional[Literal["FULL", "PARTIAL"]] = None
    matched_amount_cents: Optional[str] = None
    auto_matched: Optional[bool] = None
    remaining_abs_cents: Optional[str] = None

    cents_to_str = field_validator("matched_amount_cents", "remaining_abs_cents", mode="before")(_cents)


class MatchVoidedPayload(_Payload):
    event_type: Literal["RECONCILE_MATCH_VOIDED"] = MATCH_VOIDED
    account_id: str
    bank_transaction_id: str
    voided_count: int


class EntryAdjustmentMarkedPayload(_Payload):
    event_type: Literal["RECONCILE_ENTRY_ADJUSTMENT_MARKED"] = ENTRY_ADJUSTMENT_MARKED
    account_id: str
    entry_id: str
    reason: str


class EntryAdjustmentUnmarkedPayload(_Payload):
    event_type: Literal["RECONCILE_ENTRY_ADJUSTMENT_UNMARKED"] = ENTRY_ADJUSTMENT_UNMARKED
    account_id: str
    entry_id: str


class ClosedPeriodClosedPayload(_Payload):
    event_type: Literal["CLOSED_PERIOD_CLOSED"] = CLOSED_PERIOD_CLOSED
    months: list[str]
    through_month: str


class ClosedPeriodReopenedPayload(_Payload):
    event_type: Literal["CLOSED_PERIOD_REOPENED"] = CLOSED_PERIOD_REOPENED
    months: list[str]


class AuthzSoftEvaluatedPayload(_Payload):
    event_type: Literal["AUTHZ_SOFT_EVALUATED"] = AUTHZ_SOFT_EVALUATED
    endpoint: str
    actionKey: str
    requiredLevel: Literal["VIEW", "FULL"]
    policyKey: Optional[str] = None
    policyValue: Literal["NONE", "VIEW", "FULL"]
    result: Literal["WOULD_ALLOW", "WOULD_DENY"]
    role: str


class AuthzEnforcedDeniedPayload(_Payload):
    event_type: Literal["AUTHZ_ENFORCED_DENIED"] = AUTHZ_ENFORCED_DENIED
    endpoint: str
    actionKey: str
    requiredLevel: Literal["VIEW", "FULL"]
    policyKey: Optional[str] = None
    policyValue: Literal["NONE", "VIEW", "FULL"]
    result: Literal["DENY"] = "DENY"
    role: str


ActivityPayload = Annotated[
    Union[
        MatchGroupCreatedPayload,
        MatchGroupVoidedPayload,
        MatchCreatedPayload,
        MatchVoidedPayload,
        EntryAdjustmentMarkedPayload,
        EntryAdjustmentUnmarkedPayload,
        ClosedPeriodClosedPayload,
        ClosedPeriodReopenedPayload,
        AuthzSoftEvaluatedPayload,
        AuthzEnforcedDeniedPayload,
    ],
    Field(discriminator="event_type"),
]

_payload_adapter: TypeAdapter[ActivityPayload] = TypeAdapter(ActivityPayload)

EVENT_TYPES = frozenset(
    {
        MATCH_GROUP_CREATED,
        MATCH_GROUP_VOIDED,
        MATCH_CREATED,
        MATCH_VOIDED,
        ENTRY_ADJUSTMENT_MARKED,
        ENTRY_ADJUSTMENT_UNMARKED,
        CLOSED_PERIOD_CLOSED,
        CLOSED_PERIOD_REOPENED,
        AUTHZ_SOFT_EVALUATED,
        AUTHZ_ENFORCED_DENIED,
    }
)


def parse_payload(event_type: str, payload_json: dict[str, Any]) -> ActivityPayload:
    """Rebuild the typed payload of a stored activity row."""
    return _payload_adapter.validate_python({**payload_json, "event_type": event_type})


def log_activity(
    *,
    business_id,
    actor_user,
    payload: BaseModel,
    scope_account_id=None,
) -> ActivityLog:
    """
    Append one activity row. Call inside the mutation's transaction so the
    audit row commits or rolls back with it.
    """
    # Round-trip through the union so only registered payload shapes are stored.
    typed = _payload_adapter.validate_python(payload.model_dump())
    data = typed.model_dump(mode="json", exclude={"event_type"})
    row = ActivityLog.objects.create(
        business_id=business_id,
        actor_user=actor_user if getattr(actor_user, "pk", None) else None,
        scope_account_id=scope_account_id,
        event_type=typed.event_type,
        payload_json=data,
    )
    logger.debug("activity %s business=%s row=%s", typed.event_type, business_id, row.pk)
    return row


def serialize_activity(row: ActivityLog) -> dict[str, Any]:
    return {
        "id": row.pk,
        "business_id": str(row.business_id),
        "actor_user_id": row.actor_user_id,
        "scope_account_id": str(row.scope_account_id) if row.scope_account_id else None,
        "event_type": row.event_type,
        "payload_json": row.payload_json,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }

"""
Entry adjustment flag.

Adjustment entries are excluded from matching, so an entry that is currently
matched (legacy match or active group) cannot be marked.
"""

import logging
from typing import Any

from django.db import transaction
from django.utils import timezone

from core import activity
from core.closed_periods import assert_not_closed_period
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.models import Account, BankMatch, Business, Entry
from core.services.bank_matches import entry_in_active_group
from core.utils import parse_uuid

logger = logging.getLogger(__name__)


def _locked_entry(business: Business, account: Account, entry_id: Any) -> Entry:
    entry_uuid = parse_uuid(entry_id)
    entry = None
    if entry_uuid is not None:
        entry = (
            Entry.objects.select_for_update()
            .filter(business=business, account=account, id=entry_uuid, deleted_at__isnull=True)
            .first()
        )
    if entry is None:
        raise NotFoundError("Entry not found")
    return entry


class AdjustmentService:
    @staticmethod
    @transaction.atomic
    def mark(business: Business, account: Account, user, entry_id: Any, reason: Any) -> Entry:
        reason_text = str(reason if reason is not None else "").strip()
        if not reason_text:
            raise ValidationError("reason is required")

        entry = _locked_entry(business, account, entry_id)
        assert_not_closed_period(business, entry.date)

        if BankMatch.objects.filter(entry=entry, voided_at__isnull=True).exists() or entry_in_active_group(entry.id):
            raise ConflictError("Cannot mark a matched entry as adjustment")

        entry.is_adjustment = True
        entry.type = Entry.EntryType.ADJUSTMENT
        entry.adjusted_at = timezone.now()
        entry.adjusted_by = user
        entry.adjustment_reason = reason_text
        entry.save(update_fields=["is_adjustment", "type", "adjusted_at", "adjusted_by", "adjustment_reason", "updated_at"])

        activity.log_activity(
            business_id=business.id,
            actor_user=user,
            scope_account_id=account.id,
            payload=activity.EntryAdjustmentMarkedPayload(
                account_id=str(account.id),
                entry_id=str(entry.id),
                reason=reason_text,
            ),
        )
        logger.info("Entry marked as adjustment entry=%s", entry.id)
        return entry

    @staticmethod
    @transaction.atomic
    def unmark(business: Business, account: Account, user, entry_id: Any) -> Entry:
        entry = _locked_entry(business, account, entry_id)
        assert_not_closed_period(business, entry.date)

        entry.is_adjustment = False
        entry.type = Entry.EntryType.INCOME if entry.amount_cents >= 0 else Entry.EntryType.EXPENSE
        entry.adjusted_at = None
        entry.adjusted_by = None
        entry.adjustment_reason = ""
        entry.save(update_fields=["is_adjustment", "type", "adjusted_at", "adjusted_by", "adjustment_reason", "updated_at"])

        activity.log_activity(
            business_id=business.id,
            actor_user=user,
            scope_account_id=account.id,
            payload=activity.EntryAdjustmentUnmarkedPayload(account_id=str(account.id), entry_id=str(entry.id)),
        )
        logger.info("Entry adjustment cleared entry=%s", entry.id)
        return entry

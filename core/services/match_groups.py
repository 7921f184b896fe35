"""
Match Group Service

Balanced N bank transactions <-> M entries matching:
- all members share one direction (INFLOW / OUTFLOW, from the amount sign)
- sum(abs(bank amounts)) == sum(abs(entry amounts)), exact cents
- a bank transaction or entry belongs to at most one ACTIVE group, and never
  to a group while it carries an active legacy BankMatch

Groups are voided, never deleted.
"""

import logging
from typing import Any, Iterable, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from core import activity
from core.closed_periods import assert_not_closed_period_for_entry_ids
from core.exceptions import ConflictError, NotFoundError, ReconcileError, ValidationError
from core.models import (
    Account,
    BankMatch,
    BankTransaction,
    Business,
    Entry,
    MatchGroup,
    MatchGroupBank,
    MatchGroupEntry,
)
from core.utils import (
    cents_str,
    clean_id_list,
    direction_for,
    first_present,
    normalize_direction,
    parse_uuid,
    parse_uuid_list,
)

logger = logging.getLogger(__name__)


def serialize_match_group(
    group: MatchGroup,
    banks: Optional[Iterable[MatchGroupBank]] = None,
    entries: Optional[Iterable[MatchGroupEntry]] = None,
) -> dict[str, Any]:
    if banks is None:
        banks = group.banks.all()
    if entries is None:
        entries = group.entries.all()
    return {
        "id": str(group.id),
        "business_id": str(group.business_id),
        "account_id": str(group.account_id),
        "direction": group.direction,
        "status": group.status,
        "created_at": group.created_at.isoformat() if group.created_at else None,
        "created_by_user_id": group.created_by_id,
        "voided_at": group.voided_at.isoformat() if group.voided_at else None,
        "voided_by_user_id": group.voided_by_id,
        "void_reason": group.void_reason,
        "banks": [
            {
                "bank_transaction_id": str(row.bank_transaction_id),
                "matched_amount_cents": cents_str(row.matched_amount_cents),
            }
            for row in banks
        ],
        "entries": [
            {
                "entry_id": str(row.entry_id),
                "matched_amount_cents": cents_str(row.matched_amount_cents),
            }
            for row in entries
        ],
    }


def item_id_lists(item: dict[str, Any]) -> tuple[list[str], list[str]]:
    bank_ids = clean_id_list(first_present(item, "bankTransactionIds", "bank_transaction_ids", default=[]))
    entry_ids = clean_id_list(first_present(item, "entryIds", "entry_ids", default=[]))
    return bank_ids, entry_ids


class MatchGroupService:
    """
    Create, batch-create, void and list match groups for one account.
    """

    @staticmethod
    def _create_locked(
        business: Business,
        account: Account,
        user,
        *,
        bank_transaction_ids: list[str],
        entry_ids: list[str],
        direction: Any = None,
    ) -> MatchGroup:
        """Validate and insert one group. Caller owns the transaction."""
        if not bank_transaction_ids:
            raise ValidationError("Missing bankTransactionIds")
        if not entry_ids:
            raise ValidationError("Missing entryIds")

        bank_uuids = parse_uuid_list(bank_transaction_ids)
        if bank_uuids is None:
            raise ValidationError("One or more bank transactions not found")
        banks_by_id = {
            b.id: b
            for b in BankTransaction.objects.select_for_update()
            .filter(business=business, account=account, id__in=bank_uuids, is_removed=False)
            .order_by("id")
        }
        if len(banks_by_id) != len(bank_uuids):
            raise ValidationError("One or more bank transactions not found")
        banks = [banks_by_id[i] for i in bank_uuids]

        entry_uuids = parse_uuid_list(entry_ids)
        if entry_uuids is None:
            raise ValidationError("One or more entries not found")
        entries_by_id = {
            e.id: e
            for e in Entry.objects.select_for_update()
            .filter(business=business, account=account, id__in=entry_uuids, deleted_at__isnull=True)
            .order_by("id")
        }
        if len(entries_by_id) != len(entry_uuids):
            raise ValidationError("One or more entries not found")
        entries = [entries_by_id[i] for i in entry_uuids]
        if any(e.is_adjustment for e in entries):
            raise ValidationError("Cannot match adjustment entries")

        derived = direction_for(banks[0].amount_cents)
        provided = normalize_direction(direction)
        if provided and provided != derived:
            raise ValidationError("Provided direction does not match derived direction")
        group_direction = provided or derived

        for bank in banks:
            if direction_for(bank.amount_cents) != group_direction:
                raise ValidationError("Bank transaction direction mismatch")
        for entry in entries:
            if direction_for(entry.amount_cents) != group_direction:
                raise ValidationError("Entry direction mismatch")

        if any(b.amount_cents == 0 for b in banks):
            raise ValidationError("Bank transaction amount cannot be 0")
        if any(e.amount_cents == 0 for e in entries):
            raise ValidationError("Entry amount cannot be 0")

        bank_sum = sum(abs(b.amount_cents) for b in banks)
        entry_sum = sum(abs(e.amount_cents) for e in entries)
        if bank_sum != entry_sum:
            raise ConflictError("Group not balanced (bank sum must equal entry sum)")

        active_group_banks = MatchGroupBank.objects.filter(
            business=business,
            account=account,
            bank_transaction_id__in=bank_uuids,
            match_group__status=MatchGroup.Status.ACTIVE,
        )
        active_legacy_banks = BankMatch.objects.filter(
            business=business,
            account=account,
            bank_transaction_id__in=bank_uuids,
            voided_at__isnull=True,
        )
        if active_group_banks.exists() or active_legacy_banks.exists():
            raise ConflictError("One or more bank transactions already matched")

        active_group_entries = MatchGroupEntry.objects.filter(
            business=business,
            account=account,
            entry_id__in=entry_uuids,
            match_group__status=MatchGroup.Status.ACTIVE,
        )
        active_legacy_entries = BankMatch.objects.filter(
            business=business,
            account=account,
            entry_id__in=entry_uuids,
            voided_at__isnull=True,
        )
        if active_group_entries.exists() or active_legacy_entries.exists():
            raise ConflictError("One or more entries already matched")

        group = MatchGroup.objects.create(
            business=business,
            account=account,
            direction=group_direction,
            status=MatchGroup.Status.ACTIVE,
            created_by=user,
        )
        MatchGroupBank.objects.bulk_create(
            [
                MatchGroupBank(
                    match_group=group,
                    business=business,
                    account=account,
                    bank_transaction=bank,
                    matched_amount_cents=abs(bank.amount_cents),
                )
                for bank in banks
            ]
        )
        MatchGroupEntry.objects.bulk_create(
            [
                MatchGroupEntry(
                    match_group=group,
                    business=business,
                    account=account,
                    entry=entry,
                    matched_amount_cents=abs(entry.amount_cents),
                )
                for entry in entries
            ]
        )

        activity.log_activity(
            business_id=business.id,
            actor_user=user,
            scope_account_id=account.id,
            payload=activity.MatchGroupCreatedPayload(
                match_group_id=str(group.id),
                direction=group_direction,
                bank_transaction_ids=[str(i) for i in bank_uuids],
                entry_ids=[str(i) for i in entry_uuids],
                bank_sum_cents=bank_sum,
                entry_sum_cents=entry_sum,
            ),
        )
        logger.info(
            "Match group created group=%s account=%s banks=%d entries=%d",
            group.id,
            account.id,
            len(banks),
            len(entries),
        )
        return group

    @staticmethod
    def create(
        business: Business,
        account: Account,
        user,
        *,
        bank_transaction_ids: list[str],
        entry_ids: list[str],
        direction: Any = None,
    ) -> MatchGroup:
        """
        Create one balanced match group atomically.

        Raises:
            ClosedPeriodError: any entry is dated in a closed period
            ValidationError / ConflictError: a match-group invariant fails
        """
        assert_not_closed_period_for_entry_ids(business, entry_ids)
        with transaction.atomic():
            return MatchGroupService._create_locked(
                business,
                account,
                user,
                bank_transaction_ids=bank_transaction_ids,
                entry_ids=entry_ids,
                direction=direction,
            )

    @staticmethod
    def create_batch(business: Business, account: Account, user, items: list[Any]) -> dict[str, Any]:
        """
        Best-effort batch: one transaction per item, results in input order.

        The closed-period guard runs once over every entry id in the batch
        before any item is applied; a hit rejects the whole batch.
        """
        if not isinstance(items, list) or not items:
            raise ValidationError("Missing items")

        all_entry_ids: list[str] = []
        for item in items:
            if isinstance(item, dict):
                all_entry_ids.extend(item_id_lists(item)[1])
        assert_not_closed_period_for_entry_ids(business, all_entry_ids)

        results: list[dict[str, Any]] = []
        ok_count = 0
        for item in items:
            item = item if isinstance(item, dict) else {}
            client_id = str(first_present(item, "client_id", "clientId", default="")).strip()
            if not client_id:
                results.append({"client_id": "", "ok": False, "error": "Missing client_id"})
                continue
            bank_ids, entry_ids = item_id_lists(item)
            try:
                with transaction.atomic():
                    group = MatchGroupService._create_locked(
                        business,
                        account,
                        user,
                        bank_transaction_ids=bank_ids,
                        entry_ids=entry_ids,
                        direction=item.get("direction"),
                    )
            except IntegrityError:
                results.append({"client_id": client_id, "ok": False, "error": "One or more entries already matched"})
                continue
            except ReconcileError as exc:
                results.append({"client_id": client_id, "ok": False, "error": exc.message})
                continue
            ok_count += 1
            results.append({"client_id": client_id, "ok": True, "match_group_id": str(group.id)})

        failed = len(results) - ok_count
        logger.info("Match group batch account=%s ok=%d failed=%d", account.id, ok_count, failed)
        return {"results": results, "summary": {"ok": ok_count, "failed": failed, "total": len(results)}}

    @staticmethod
    @transaction.atomic
    def void(business: Business, account: Account, user, match_group_id: Any, reason: Any = None) -> MatchGroup:
        """
        Flip an ACTIVE group to VOIDED. Child rows are kept; their bank
        transactions and entries become matchable again.
        """
        group_uuid = parse_uuid(match_group_id)
        group = None
        if group_uuid is not None:
            group = (
                MatchGroup.objects.select_for_update()
                .filter(business=business, account=account, id=group_uuid)
                .first()
            )
        if group is None:
            raise NotFoundError("Match group not found")
        if group.status != MatchGroup.Status.ACTIVE:
            raise ConflictError("Match group already voided")

        entry_ids = list(group.entries.values_list("entry_id", flat=True))
        assert_not_closed_period_for_entry_ids(business, entry_ids)

        reason_text = str(reason).strip() if reason is not None else ""
        group.status = MatchGroup.Status.VOIDED
        group.voided_at = timezone.now()
        group.voided_by = user
        group.void_reason = reason_text or None
        group.save(update_fields=["status", "voided_at", "voided_by", "void_reason"])

        activity.log_activity(
            business_id=business.id,
            actor_user=user,
            scope_account_id=account.id,
            payload=activity.MatchGroupVoidedPayload(match_group_id=str(group.id), reason=group.void_reason),
        )
        logger.info("Match group voided group=%s account=%s", group.id, account.id)
        return group

    @staticmethod
    def list_groups(business: Business, account: Account, status: Any = "active") -> list[dict[str, Any]]:
        qs = MatchGroup.objects.filter(business=business, account=account)
        if str(status or "active").strip().upper() != "ALL":
            qs = qs.filter(status=MatchGroup.Status.ACTIVE)
        qs = qs.order_by("-created_at").prefetch_related("banks", "entries")
        return [serialize_match_group(group) for group in qs]

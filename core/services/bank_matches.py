"""
Bank Match Service (legacy one bank transaction <-> one entry primitive)

Rules:
- an entry carries at most one active match (enforced by a partial unique index)
- several active matches may share a bank transaction while the sum of their
  absolute amounts stays within the bank transaction's absolute amount
- sign(bank) == sign(entry) == sign(matched amount)
- FULL: abs(matched) == abs(entry); PARTIAL: abs(matched) < abs(entry)
"""

import logging
from typing import Any, Optional

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
from core.utils import cents_str, first_present, parse_cents, parse_uuid

logger = logging.getLogger(__name__)


def _sign(value: int) -> int:
    return -1 if value < 0 else 1


def active_matched_abs(bank_transaction: BankTransaction) -> int:
    amounts = BankMatch.objects.filter(
        bank_transaction=bank_transaction,
        voided_at__isnull=True,
    ).values_list("matched_amount_cents", flat=True)
    return sum(abs(a) for a in amounts)


def bank_remaining_abs(bank_transaction: BankTransaction) -> int:
    """abs(bank amount) minus the absolute amounts of its active matches."""
    return abs(bank_transaction.amount_cents) - active_matched_abs(bank_transaction)


def bank_in_active_group(bank_transaction_id) -> bool:
    return MatchGroupBank.objects.filter(
        bank_transaction_id=bank_transaction_id,
        match_group__status=MatchGroup.Status.ACTIVE,
    ).exists()


def entry_in_active_group(entry_id) -> bool:
    return MatchGroupEntry.objects.filter(
        entry_id=entry_id,
        match_group__status=MatchGroup.Status.ACTIVE,
    ).exists()


def serialize_bank_match(match: BankMatch) -> dict[str, Any]:
    return {
        "id": str(match.id),
        "bank_transaction_id": str(match.bank_transaction_id),
        "entry_id": str(match.entry_id),
        "match_type": match.match_type,
        "matched_amount_cents": cents_str(match.matched_amount_cents),
        "created_at": match.created_at.isoformat() if match.created_at else None,
        "created_by_user_id": match.created_by_id,
    }


def parse_match_input(body: dict[str, Any]) -> tuple[str, str, str, int]:
    """Pull and validate ``(bankTransactionId, entryId, matchType, matchedAmountCents)``."""
    bank_transaction_id = str(first_present(body, "bankTransactionId", "bank_transaction_id", default="")).strip()
    entry_id = str(first_present(body, "entryId", "entry_id", default="")).strip()
    match_type = str(first_present(body, "matchType", "match_type", default="")).strip().upper()
    if not bank_transaction_id:
        raise ValidationError("Missing bankTransactionId")
    if not entry_id:
        raise ValidationError("Missing entryId")
    if match_type not in BankMatch.MatchType.values:
        raise ValidationError("Invalid matchType")
    matched_amount_cents = parse_cents(first_present(body, "matchedAmountCents", "matched_amount_cents"))
    return bank_transaction_id, entry_id, match_type, matched_amount_cents


class BankMatchService:
    @staticmethod
    def _create_locked(
        business: Business,
        account: Account,
        user,
        *,
        bank_transaction_id: Any,
        entry_id: Any,
        match_type: str,
        matched_amount_cents: int,
        action: str = "MATCH_CREATE",
    ) -> BankMatch:
        """Validate and insert one match. Caller owns the transaction."""
        bank_uuid = parse_uuid(bank_transaction_id)
        entry_uuid = parse_uuid(entry_id)

        bank: Optional[BankTransaction] = None
        if bank_uuid is not None:
            bank = (
                BankTransaction.objects.select_for_update()
                .filter(business=business, account=account, id=bank_uuid, is_removed=False)
                .first()
            )
        entry: Optional[Entry] = None
        if entry_uuid is not None:
            entry = (
                Entry.objects.select_for_update()
                .filter(business=business, account=account, id=entry_uuid, deleted_at__isnull=True)
                .first()
            )

        if entry is None:
            raise NotFoundError("Entry not found")
        if entry.is_adjustment:
            raise ValidationError("Cannot match an adjustment entry")
        if BankMatch.objects.filter(entry=entry, voided_at__isnull=True).exists():
            raise ConflictError("Entry already matched (v1 constraint)")
        if entry_in_active_group(entry.id):
            raise ConflictError("Entry already matched in a match group")

        if bank is None:
            raise NotFoundError("Bank transaction not found")
        if bank_in_active_group(bank.id):
            raise ConflictError("Bank transaction already matched in a match group")

        remaining = bank_remaining_abs(bank)
        if remaining <= 0:
            raise ConflictError("Bank transaction has no remaining amount")

        if not (_sign(bank.amount_cents) == _sign(entry.amount_cents) == _sign(matched_amount_cents)):
            raise ValidationError("Sign mismatch between bank txn, entry, and matched amount")

        matched_abs = abs(matched_amount_cents)
        entry_abs = abs(entry.amount_cents)
        if matched_abs > remaining:
            raise ValidationError("Matched amount exceeds bank remaining")
        if matched_abs > entry_abs:
            raise ValidationError("Matched amount exceeds entry amount (v1)")
        if match_type == BankMatch.MatchType.FULL and matched_abs != entry_abs:
            raise ValidationError("FULL match must equal full entry amount in v1")
        if match_type == BankMatch.MatchType.PARTIAL and matched_abs >= entry_abs:
            raise ValidationError("PARTIAL match must be less than full entry amount")

        try:
            with transaction.atomic():
                match = BankMatch.objects.create(
                    business=business,
                    account=account,
                    bank_transaction=bank,
                    entry=entry,
                    match_type=match_type,
                    matched_amount_cents=matched_amount_cents,
                    created_by=user,
                )
        except IntegrityError as exc:
            raise ConflictError("Entry already matched") from exc

        activity.log_activity(
            business_id=business.id,
            actor_user=user,
            scope_account_id=account.id,
            payload=activity.MatchCreatedPayload(
                action=action,
                account_id=str(account.id),
                match_id=str(match.id),
                bank_transaction_id=str(bank.id),
                entry_id=str(entry.id),
                match_type=match_type,
                matched_amount_cents=matched_amount_cents,
                remaining_abs_cents=remaining - matched_abs,
            ),
        )
        logger.info("Bank match created match=%s bank=%s entry=%s", match.id, bank.id, entry.id)
        return match

    @staticmethod
    def create(
        business: Business,
        account: Account,
        user,
        *,
        bank_transaction_id: Any,
        entry_id: Any,
        match_type: str,
        matched_amount_cents: int,
    ) -> BankMatch:
        assert_not_closed_period_for_entry_ids(business, [entry_id])
        with transaction.atomic():
            return BankMatchService._create_locked(
                business,
                account,
                user,
                bank_transaction_id=bank_transaction_id,
                entry_id=entry_id,
                match_type=match_type,
                matched_amount_cents=matched_amount_cents,
            )

    @staticmethod
    def create_batch(business: Business, account: Account, user, items: list[Any]) -> dict[str, Any]:
        """
        Best-effort batch with the same contract as the match-group batch:
        closed-period pre-flight over every entry id, then one transaction per item.
        """
        if not isinstance(items, list) or not items:
            raise ValidationError("Missing items")

        all_entry_ids = [
            str(first_present(item, "entryId", "entry_id", default="")).strip()
            for item in items
            if isinstance(item, dict)
        ]
        assert_not_closed_period_for_entry_ids(business, [i for i in all_entry_ids if i])

        results: list[dict[str, Any]] = []
        ok_count = 0
        for item in items:
            item = item if isinstance(item, dict) else {}
            client_id = str(first_present(item, "client_id", "clientId", default="")).strip()
            if not client_id:
                results.append({"client_id": "", "ok": False, "error": "Missing client_id"})
                continue
            try:
                bank_transaction_id, entry_id, match_type, matched_amount_cents = parse_match_input(item)
                with transaction.atomic():
                    match = BankMatchService._create_locked(
                        business,
                        account,
                        user,
                        bank_transaction_id=bank_transaction_id,
                        entry_id=entry_id,
                        match_type=match_type,
                        matched_amount_cents=matched_amount_cents,
                    )
            except ReconcileError as exc:
                results.append({"client_id": client_id, "ok": False, "error": exc.message})
                continue
            ok_count += 1
            results.append({"client_id": client_id, "ok": True, "match_id": str(match.id)})

        failed = len(results) - ok_count
        logger.info("Bank match batch account=%s ok=%d failed=%d", account.id, ok_count, failed)
        return {"results": results, "summary": {"ok": ok_count, "failed": failed, "total": len(results)}}

    @staticmethod
    @transaction.atomic
    def unmatch(business: Business, account: Account, user, bank_transaction_id: Any) -> int:
        """
        Void every active match on the bank transaction in one bulk update.
        Returns the number of matches voided.
        """
        bank_uuid = parse_uuid(bank_transaction_id)
        bank = None
        if bank_uuid is not None:
            bank = (
                BankTransaction.objects.select_for_update()
                .filter(business=business, account=account, id=bank_uuid)
                .first()
            )
        if bank is None:
            raise NotFoundError("Bank transaction not found")

        active = BankMatch.objects.filter(
            business=business,
            account=account,
            bank_transaction=bank,
            voided_at__isnull=True,
        )
        assert_not_closed_period_for_entry_ids(business, list(active.values_list("entry_id", flat=True)))

        voided_count = active.update(voided_at=timezone.now(), voided_by=user)
        if voided_count:
            activity.log_activity(
                business_id=business.id,
                actor_user=user,
                scope_account_id=account.id,
                payload=activity.MatchVoidedPayload(
                    account_id=str(account.id),
                    bank_transaction_id=str(bank.id),
                    voided_count=voided_count,
                ),
            )
            logger.info("Bank matches voided bank=%s count=%d", bank.id, voided_count)
        return voided_count

    @staticmethod
    def list_active(
        business: Business,
        account: Account,
        *,
        bank_transaction_id: Any = None,
        entry_id: Any = None,
    ) -> list[dict[str, Any]]:
        qs = BankMatch.objects.filter(business=business, account=account, voided_at__isnull=True)
        if bank_transaction_id:
            bank_uuid = parse_uuid(bank_transaction_id)
            if bank_uuid is None:
                return []
            qs = qs.filter(bank_transaction_id=bank_uuid)
        if entry_id:
            entry_uuid = parse_uuid(entry_id)
            if entry_uuid is None:
                return []
            qs = qs.filter(entry_id=entry_uuid)
        return [serialize_bank_match(m) for m in qs.order_by("-created_at")]

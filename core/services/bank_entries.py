"""
Bank Entry Service

Creates ledger entries from bank transactions (single and batch) and lists
bank transactions with their derived reconciliation state.

Sign discipline: a positive bank amount becomes an INCOME entry with a positive
amount, a negative one an EXPENSE entry with a negative amount.
"""

import logging
from collections import defaultdict
from typing import Any, Optional

from django.conf import settings
from django.db import transaction

from core import activity
from core.closed_periods import assert_not_closed_period
from core.exceptions import ClosedPeriodError, ConflictError, NotFoundError, ReconcileError, ValidationError
from core.models import Account, BankMatch, BankTransaction, Business, Entry, MatchGroup, MatchGroupBank
from core.services.bank_matches import bank_in_active_group, bank_remaining_abs
from core.utils import cents_str, first_present, parse_uuid, parse_ymd, ymd

logger = logging.getLogger(__name__)

MEMO_MAX_LENGTH = 400

ALREADY_MATCHED = "ALREADY_MATCHED"


class MatchState:
    UNMATCHED = "UNMATCHED"
    PARTIAL = "PARTIAL"
    MATCHED = "MATCHED"


def _default_memo(bank: BankTransaction) -> str:
    name = (bank.name or "").strip() or "—"
    return f"Bank txn: {name} • {bank.id}"


def _clean_memo(raw: Any, bank: BankTransaction) -> str:
    text = str(raw).strip() if raw else ""
    return text[:MEMO_MAX_LENGTH] if text else _default_memo(bank)


def _clean_method(raw: Any) -> str:
    text = str(raw).strip().upper() if raw else ""
    return text if text in Entry.Method.values else Entry.Method.OTHER


def _remaining_for(bank: BankTransaction) -> int:
    if bank_in_active_group(bank.id):
        return 0
    return bank_remaining_abs(bank)


def _find_bank(business: Business, account: Account, bank_transaction_id: Any, *, lock: bool = False):
    bank_uuid = parse_uuid(bank_transaction_id)
    if bank_uuid is None:
        return None
    qs = BankTransaction.objects.filter(business=business, account=account, id=bank_uuid, is_removed=False)
    if lock:
        qs = qs.select_for_update()
    return qs.first()


class BankEntryService:
    @staticmethod
    def create_entry(
        business: Business,
        account: Account,
        user,
        bank_transaction_id: Any,
        *,
        auto_match: bool = False,
        memo: Any = None,
        method: Any = None,
        category_id: Any = None,
    ) -> dict[str, Any]:
        """
        Create an Entry mirroring the bank transaction's unmatched remainder and,
        when ``auto_match`` is set, a FULL BankMatch for that remainder.

        Idempotent per bank transaction: a second call returns the existing
        entry with ``duplicate: True``.

        Raises:
            NotFoundError: bank transaction missing, removed or out of scope
            ClosedPeriodError: posted date falls in a closed period
            ConflictError(code=ALREADY_MATCHED): nothing left to cover
        """
        bank = _find_bank(business, account, bank_transaction_id)
        if bank is None:
            raise NotFoundError("Bank transaction not found")

        assert_not_closed_period(business, bank.posted_date)

        with transaction.atomic():
            bank = _find_bank(business, account, bank.id, lock=True)
            if bank is None:
                raise NotFoundError("Bank transaction not found")

            existing = (
                Entry.objects.filter(
                    business=business,
                    account=account,
                    source_bank_transaction=bank,
                    deleted_at__isnull=True,
                )
                .order_by("created_at")
                .first()
            )
            if existing is not None:
                return {"entryId": str(existing.id), "duplicate": True, "autoMatched": False, "matchId": None}

            remaining = _remaining_for(bank)
            if remaining <= 0:
                raise ConflictError("Bank transaction is already fully matched.", code=ALREADY_MATCHED)

            if bank.amount_cents > 0:
                entry_type, amount_cents = Entry.EntryType.INCOME, remaining
            else:
                entry_type, amount_cents = Entry.EntryType.EXPENSE, -remaining

            entry = Entry.objects.create(
                business=business,
                account=account,
                date=bank.posted_date,
                payee=(bank.name or "").strip() or "Bank transaction",
                memo=_clean_memo(memo, bank),
                amount_cents=amount_cents,
                type=entry_type,
                method=_clean_method(method),
                status=Entry.Status.EXPECTED,
                category_id=str(category_id).strip() if category_id else "",
                source_bank_transaction=bank,
            )

            match: Optional[BankMatch] = None
            if auto_match:
                match = BankMatch.objects.create(
                    business=business,
                    account=account,
                    bank_transaction=bank,
                    entry=entry,
                    match_type=BankMatch.MatchType.FULL,
                    matched_amount_cents=amount_cents,
                    created_by=user,
                )

            activity.log_activity(
                business_id=business.id,
                actor_user=user,
                scope_account_id=account.id,
                payload=activity.MatchCreatedPayload(
                    action="BANK_TXN_CREATE_ENTRY",
                    account_id=str(account.id),
                    bank_transaction_id=str(bank.id),
                    entry_id=str(entry.id),
                    match_id=str(match.id) if match else None,
                    match_type=BankMatch.MatchType.FULL if match else None,
                    matched_amount_cents=amount_cents if match else None,
                    auto_matched=match is not None,
                    remaining_abs_cents=0 if match else remaining,
                ),
            )

        logger.info(
            "Entry created from bank txn bank=%s entry=%s auto_matched=%s",
            bank.id,
            entry.id,
            match is not None,
        )
        return {
            "entryId": str(entry.id),
            "duplicate": False,
            "autoMatched": match is not None,
            "matchId": str(match.id) if match else None,
        }

    @staticmethod
    def create_entries_batch(business: Business, account: Account, user, items: list[Any]) -> dict[str, Any]:
        """
        Best-effort: each item runs on its own and reports
        CREATED, SKIPPED (ALREADY_MATCHED / DUPLICATE) or FAILED
        (NOT_FOUND / CLOSED_PERIOD / INVALID_ITEM).
        """
        if not isinstance(items, list) or not items:
            raise ValidationError("Missing items")

        results: list[dict[str, Any]] = []
        for item in items:
            item = item if isinstance(item, dict) else {}
            bank_id = str(first_present(item, "bank_transaction_id", "bankTransactionId", default="")).strip()
            if not bank_id:
                results.append(
                    {
                        "bank_transaction_id": "",
                        "status": "FAILED",
                        "code": "INVALID_ITEM",
                        "error": "Missing bank_transaction_id",
                    }
                )
                continue

            try:
                created = BankEntryService.create_entry(
                    business,
                    account,
                    user,
                    bank_id,
                    auto_match=first_present(item, "autoMatch", "auto_match", default=False) is True,
                    memo=item.get("memo"),
                    method=item.get("method"),
                    category_id=first_present(item, "category_id", "categoryId"),
                )
            except NotFoundError as exc:
                results.append({"bank_transaction_id": bank_id, "status": "FAILED", "code": "NOT_FOUND", "error": exc.message})
                continue
            except ClosedPeriodError as exc:
                results.append({"bank_transaction_id": bank_id, "status": "FAILED", "code": exc.code, "error": exc.message})
                continue
            except ReconcileError as exc:
                if exc.code == ALREADY_MATCHED:
                    results.append(
                        {"bank_transaction_id": bank_id, "status": "SKIPPED", "code": ALREADY_MATCHED, "error": exc.message}
                    )
                else:
                    results.append(
                        {"bank_transaction_id": bank_id, "status": "FAILED", "code": "INVALID_ITEM", "error": exc.message}
                    )
                continue

            if created["duplicate"]:
                results.append(
                    {
                        "bank_transaction_id": bank_id,
                        "status": "SKIPPED",
                        "code": "DUPLICATE",
                        "error": "Entry already exists for this bank transaction.",
                        "entry_id": created["entryId"],
                    }
                )
                continue

            results.append(
                {
                    "bank_transaction_id": bank_id,
                    "status": "CREATED",
                    "entry_id": created["entryId"],
                    "match_id": created["matchId"],
                    "auto_matched": created["autoMatched"],
                }
            )

        summary = {
            "created": sum(1 for r in results if r["status"] == "CREATED"),
            "skipped": sum(1 for r in results if r["status"] == "SKIPPED"),
            "failed": sum(1 for r in results if r["status"] == "FAILED"),
            "total": len(results),
        }
        logger.info(
            "Create-entries batch account=%s created=%d skipped=%d failed=%d",
            account.id,
            summary["created"],
            summary["skipped"],
            summary["failed"],
        )
        return {"results": results, "summary": summary}

    @staticmethod
    def list_bank_transactions(
        business: Business,
        account: Account,
        *,
        date_from: Any = None,
        date_to: Any = None,
        limit: Any = None,
    ) -> list[dict[str, Any]]:
        qs = BankTransaction.objects.filter(business=business, account=account, is_removed=False)
        if date_from:
            parsed_from = parse_ymd(date_from)
            if parsed_from is None:
                raise ValidationError("from must be YYYY-MM-DD")
            qs = qs.filter(posted_date__gte=parsed_from)
        if date_to:
            parsed_to = parse_ymd(date_to)
            if parsed_to is None:
                raise ValidationError("to must be YYYY-MM-DD")
            qs = qs.filter(posted_date__lte=parsed_to)

        max_limit = settings.BANK_TXN_LIST_MAX_LIMIT
        try:
            take = int(limit) if limit not in (None, "") else settings.BANK_TXN_LIST_DEFAULT_LIMIT
        except (TypeError, ValueError):
            raise ValidationError("limit must be an integer")
        take = max(1, min(take, max_limit))

        banks = list(qs.order_by("-posted_date", "-created_at")[:take])
        bank_ids = [b.id for b in banks]

        grouped = {}
        for bank_id, group_id in MatchGroupBank.objects.filter(
            bank_transaction_id__in=bank_ids,
            match_group__status=MatchGroup.Status.ACTIVE,
        ).values_list("bank_transaction_id", "match_group_id"):
            grouped[bank_id] = group_id

        matched_abs: dict[Any, int] = defaultdict(int)
        for bank_id, amount in BankMatch.objects.filter(
            bank_transaction_id__in=bank_ids,
            voided_at__isnull=True,
        ).values_list("bank_transaction_id", "matched_amount_cents"):
            matched_abs[bank_id] += abs(amount)

        rows = []
        for bank in banks:
            bank_abs = abs(bank.amount_cents)
            if bank.id in grouped:
                remaining = 0
            else:
                remaining = max(0, bank_abs - matched_abs[bank.id])
            if remaining == 0 and bank_abs > 0:
                state = MatchState.MATCHED
            elif remaining < bank_abs:
                state = MatchState.PARTIAL
            else:
                state = MatchState.UNMATCHED
            rows.append(
                {
                    "id": str(bank.id),
                    "posted_date": ymd(bank.posted_date),
                    "name": bank.name,
                    "amount_cents": cents_str(bank.amount_cents),
                    "is_pending": bank.is_pending,
                    "source": bank.source,
                    "match_state": state,
                    "match_group_id": str(grouped[bank.id]) if bank.id in grouped else None,
                    "remaining_abs_cents": cents_str(remaining),
                }
            )
        return rows

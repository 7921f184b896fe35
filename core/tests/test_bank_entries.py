import uuid
from datetime import date

from django.test import override_settings

from core import activity
from core.exceptions import ClosedPeriodError, ConflictError, NotFoundError
from core.models import ActivityLog, BankMatch, Entry
from core.services.bank_entries import MEMO_MAX_LENGTH, BankEntryService
from core.services.bank_matches import BankMatchService
from core.services.match_groups import MatchGroupService
from core.tests.helpers import ReconcileTestCase


class CreateEntryTests(ReconcileTestCase):
    def test_outflow_becomes_expense(self):
        bank = self.make_bank(-5000, name="Coffee Roasters")

        created = BankEntryService.create_entry(self.business, self.account, self.user, bank.id)

        entry = Entry.objects.get(id=created["entryId"])
        self.assertEqual(set(created), {"entryId", "duplicate", "autoMatched", "matchId"})
        self.assertFalse(created["duplicate"])
        self.assertFalse(created["autoMatched"])
        self.assertIsNone(created["matchId"])
        self.assertEqual(entry.type, Entry.EntryType.EXPENSE)
        self.assertEqual(entry.amount_cents, -5000)
        self.assertEqual(entry.payee, "Coffee Roasters")
        self.assertEqual(entry.date, bank.posted_date)
        self.assertEqual(entry.memo, f"Bank txn: Coffee Roasters • {bank.id}")
        self.assertEqual(entry.method, Entry.Method.OTHER)
        self.assertEqual(entry.source_bank_transaction, bank)

        log = ActivityLog.objects.get(event_type=activity.MATCH_CREATED)
        self.assertEqual(log.payload_json["action"], "BANK_TXN_CREATE_ENTRY")
        self.assertFalse(log.payload_json["auto_matched"])

    def test_inflow_becomes_income(self):
        bank = self.make_bank(5000)
        created = BankEntryService.create_entry(self.business, self.account, self.user, bank.id)
        entry = Entry.objects.get(id=created["entryId"])
        self.assertEqual(entry.type, Entry.EntryType.INCOME)
        self.assertEqual(entry.amount_cents, 5000)

    def test_second_call_returns_existing_entry(self):
        bank = self.make_bank(-5000)
        first = BankEntryService.create_entry(self.business, self.account, self.user, bank.id)
        second = BankEntryService.create_entry(self.business, self.account, self.user, bank.id, auto_match=True)

        self.assertTrue(second["duplicate"])
        self.assertEqual(set(second), {"entryId", "duplicate", "autoMatched", "matchId"})
        self.assertEqual(second["entryId"], first["entryId"])
        self.assertEqual(Entry.objects.filter(source_bank_transaction=bank).count(), 1)
        self.assertFalse(BankMatch.objects.exists())

    def test_auto_match_creates_full_match(self):
        bank = self.make_bank(-5000)

        created = BankEntryService.create_entry(self.business, self.account, self.user, bank.id, auto_match=True)

        match = BankMatch.objects.get(id=created["matchId"])
        self.assertTrue(created["autoMatched"])
        self.assertEqual(match.match_type, BankMatch.MatchType.FULL)
        self.assertEqual(match.matched_amount_cents, -5000)
        self.assertEqual(str(match.entry_id), created["entryId"])

    def test_entry_covers_only_the_remainder(self):
        bank = self.make_bank(-10000)
        partial_entry = self.make_entry(-4000)
        BankMatchService.create(
            self.business,
            self.account,
            self.user,
            bank_transaction_id=str(bank.id),
            entry_id=str(partial_entry.id),
            match_type="FULL",
            matched_amount_cents=-4000,
        )

        created = BankEntryService.create_entry(self.business, self.account, self.user, bank.id, auto_match=True)

        entry = Entry.objects.get(id=created["entryId"])
        self.assertEqual(entry.amount_cents, -6000)
        self.assertEqual(BankMatch.objects.get(id=created["matchId"]).matched_amount_cents, -6000)

    def test_fully_matched_bank_rejected(self):
        bank = self.make_bank(-5000)
        entry = self.make_entry(-5000)
        BankMatchService.create(
            self.business,
            self.account,
            self.user,
            bank_transaction_id=str(bank.id),
            entry_id=str(entry.id),
            match_type="FULL",
            matched_amount_cents=-5000,
        )

        with self.assertRaises(ConflictError) as ctx:
            BankEntryService.create_entry(self.business, self.account, self.user, bank.id)
        self.assertEqual(ctx.exception.code, "ALREADY_MATCHED")
        self.assertEqual(ctx.exception.message, "Bank transaction is already fully matched.")

    def test_grouped_bank_counts_as_matched(self):
        bank = self.make_bank(-5000)
        entry = self.make_entry(-5000)
        MatchGroupService.create(
            self.business,
            self.account,
            self.user,
            bank_transaction_ids=[str(bank.id)],
            entry_ids=[str(entry.id)],
        )
        with self.assertRaises(ConflictError) as ctx:
            BankEntryService.create_entry(self.business, self.account, self.user, bank.id)
        self.assertEqual(ctx.exception.code, "ALREADY_MATCHED")

    def test_memo_method_and_category(self):
        bank = self.make_bank(-5000, name="   ")
        created = BankEntryService.create_entry(
            self.business,
            self.account,
            self.user,
            bank.id,
            memo="x" * (MEMO_MAX_LENGTH + 50),
            method="zelle",
            category_id="cat_123",
        )
        entry = Entry.objects.get(id=created["entryId"])
        self.assertEqual(len(entry.memo), MEMO_MAX_LENGTH)
        self.assertEqual(entry.method, Entry.Method.ZELLE)
        self.assertEqual(entry.category_id, "cat_123")
        self.assertEqual(entry.payee, "Bank transaction")

    def test_closed_period_and_missing_bank(self):
        bank = self.make_bank(-5000)
        self.close("2025-03")
        with self.assertRaises(ClosedPeriodError):
            BankEntryService.create_entry(self.business, self.account, self.user, bank.id)
        with self.assertRaises(NotFoundError):
            BankEntryService.create_entry(self.business, self.account, self.user, uuid.uuid4())
        self.assertFalse(Entry.objects.exists())


class CreateEntriesBatchTests(ReconcileTestCase):
    def test_per_item_statuses(self):
        fresh = self.make_bank(-2500, name="Fresh")
        matched = self.make_bank(-1000, name="Matched")
        matched_entry = self.make_entry(-1000)
        BankMatchService.create(
            self.business,
            self.account,
            self.user,
            bank_transaction_id=str(matched.id),
            entry_id=str(matched_entry.id),
            match_type="FULL",
            matched_amount_cents=-1000,
        )
        closed = self.make_bank(-700, posted_date=date(2025, 1, 20), name="Old")
        self.close("2025-01")

        outcome = BankEntryService.create_entries_batch(
            self.business,
            self.account,
            self.user,
            [
                {"bank_transaction_id": str(fresh.id), "autoMatch": True},
                {"bank_transaction_id": str(matched.id)},
                {"bank_transaction_id": str(uuid.uuid4())},
                {"bank_transaction_id": str(closed.id)},
                {"memo": "no id"},
            ],
        )

        statuses = [(r["status"], r.get("code")) for r in outcome["results"]]
        self.assertEqual(
            statuses,
            [
                ("CREATED", None),
                ("SKIPPED", "ALREADY_MATCHED"),
                ("FAILED", "NOT_FOUND"),
                ("FAILED", "CLOSED_PERIOD"),
                ("FAILED", "INVALID_ITEM"),
            ],
        )
        self.assertEqual(outcome["summary"], {"created": 1, "skipped": 1, "failed": 3, "total": 5})
        self.assertTrue(outcome["results"][0]["auto_matched"])

    def test_repeat_is_reported_as_duplicate(self):
        bank = self.make_bank(-2500)
        BankEntryService.create_entries_batch(self.business, self.account, self.user, [{"bank_transaction_id": str(bank.id)}])

        outcome = BankEntryService.create_entries_batch(
            self.business,
            self.account,
            self.user,
            [{"bank_transaction_id": str(bank.id), "autoMatch": True}],
        )

        result = outcome["results"][0]
        self.assertEqual((result["status"], result["code"]), ("SKIPPED", "DUPLICATE"))
        self.assertEqual(Entry.objects.count(), 1)
        self.assertFalse(BankMatch.objects.exists())


class ListBankTransactionsTests(ReconcileTestCase):
    def test_match_state_and_remaining(self):
        open_bank = self.make_bank(-3000, posted_date=date(2025, 3, 1))
        partial_bank = self.make_bank(-10000, posted_date=date(2025, 3, 2))
        grouped_bank = self.make_bank(-2000, posted_date=date(2025, 3, 3))

        BankMatchService.create(
            self.business,
            self.account,
            self.user,
            bank_transaction_id=str(partial_bank.id),
            entry_id=str(self.make_entry(-4000).id),
            match_type="FULL",
            matched_amount_cents=-4000,
        )
        group = MatchGroupService.create(
            self.business,
            self.account,
            self.user,
            bank_transaction_ids=[str(grouped_bank.id)],
            entry_ids=[str(self.make_entry(-2000).id)],
        )

        rows = {r["id"]: r for r in BankEntryService.list_bank_transactions(self.business, self.account)}

        self.assertEqual(rows[str(open_bank.id)]["match_state"], "UNMATCHED")
        self.assertEqual(rows[str(open_bank.id)]["remaining_abs_cents"], "3000")
        self.assertEqual(rows[str(partial_bank.id)]["match_state"], "PARTIAL")
        self.assertEqual(rows[str(partial_bank.id)]["remaining_abs_cents"], "6000")
        self.assertEqual(rows[str(grouped_bank.id)]["match_state"], "MATCHED")
        self.assertEqual(rows[str(grouped_bank.id)]["match_group_id"], str(group.id))
        self.assertEqual(rows[str(grouped_bank.id)]["amount_cents"], "-2000")

    @override_settings(BANK_TXN_LIST_MAX_LIMIT=2)
    def test_date_filter_and_limit(self):
        for day in (1, 5, 9, 20):
            self.make_bank(-100, posted_date=date(2025, 3, day))

        rows = BankEntryService.list_bank_transactions(self.business, self.account, limit="50")
        self.assertEqual([r["posted_date"] for r in rows], ["2025-03-20", "2025-03-09"])

        rows = BankEntryService.list_bank_transactions(
            self.business, self.account, date_from="2025-03-02", date_to="2025-03-10"
        )
        self.assertEqual([r["posted_date"] for r in rows], ["2025-03-09", "2025-03-05"])

import uuid
from datetime import date

from django.contrib.auth.models import User
from django.test import Client
from django.urls import reverse

from core import activity
from core.models import ActivityLog, BankMatch, Business, BusinessRolePolicy, ClosedPeriod, MatchGroup
from core.tests.helpers import ReconcileTestCase


class ReconcileAPITestCase(ReconcileTestCase):
    def setUp(self):
        super().setUp()
        self.client = Client()
        self.client.force_login(self.user)

    def account_url(self, name, **kwargs):
        return reverse(name, kwargs={"business_id": self.business.id, "account_id": self.account.id, **kwargs})

    def business_url(self, name, **kwargs):
        return reverse(name, kwargs={"business_id": self.business.id, **kwargs})

    def post_json(self, url, data=None):
        return self.client.post(url, data=data or {}, content_type="application/json")


class MatchGroupAPITests(ReconcileAPITestCase):
    def test_create_list_and_void(self):
        bank = self.make_bank(-12000)
        e1 = self.make_entry(-7000)
        e2 = self.make_entry(-5000)

        resp = self.post_json(
            self.account_url("match_groups"),
            {"bankTransactionIds": [str(bank.id)], "entryIds": [str(e1.id), str(e2.id)]},
        )
        self.assertEqual(resp.status_code, 201)
        group_id = resp.json()["match_group_id"]

        resp = self.client.get(self.account_url("match_groups"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([g["id"] for g in resp.json()["items"]], [group_id])

        resp = self.post_json(self.account_url("match_group_void", match_group_id=group_id), {"reason": "redo"})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertTrue(data["ok"])
        self.assertEqual(data["match_group"]["status"], "VOIDED")
        self.assertEqual(data["match_group"]["void_reason"], "redo")

        resp = self.post_json(self.account_url("match_group_void", match_group_id=group_id))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"ok": False, "error": "Match group already voided"})

    def test_unbalanced_group_is_400(self):
        bank = self.make_bank(-12000)
        e1 = self.make_entry(-7000)
        e2 = self.make_entry(-4000)
        resp = self.post_json(
            self.account_url("match_groups"),
            {"bankTransactionIds": [str(bank.id)], "entryIds": [str(e1.id), str(e2.id)]},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Group not balanced (bank sum must equal entry sum)")

    def test_void_unknown_group_is_404(self):
        resp = self.post_json(self.account_url("match_group_void", match_group_id=uuid.uuid4()))
        self.assertEqual(resp.status_code, 404)

    def test_batch(self):
        items = []
        for i in range(1, 4):
            bank = self.make_bank(-100 * i)
            entry = self.make_entry(-100 * i if i != 2 else -1)
            items.append({"client_id": f"c{i}", "bankTransactionIds": [str(bank.id)], "entryIds": [str(entry.id)]})

        resp = self.post_json(self.account_url("match_groups_batch"), {"items": items})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["summary"], {"ok": 2, "failed": 1, "total": 3})
        self.assertEqual(MatchGroup.objects.count(), 2)

    def test_closed_period_is_409(self):
        bank = self.make_bank(-100)
        entry = self.make_entry(-100)
        self.close("2025-03")
        resp = self.post_json(
            self.account_url("match_groups"),
            {"bankTransactionIds": [str(bank.id)], "entryIds": [str(entry.id)]},
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(
            resp.json(),
            {"ok": False, "error": "This period is closed. Reopen period to modify.", "code": "CLOSED_PERIOD"},
        )

    def test_non_object_body_rejected(self):
        resp = self.client.post(self.account_url("match_groups"), data="[1, 2]", content_type="application/json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Invalid JSON body")


class AccessAPITests(ReconcileAPITestCase):
    def test_member_cannot_write(self):
        member = self.add_member("viewer", "MEMBER")
        self.client.force_login(member)

        resp = self.post_json(self.account_url("match_groups"), {"bankTransactionIds": ["x"], "entryIds": ["y"]})
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json(), {"ok": False, "error": "Insufficient permissions"})

        resp = self.client.get(self.account_url("match_groups"))
        self.assertEqual(resp.status_code, 200)

    def test_non_member_forbidden(self):
        outsider = User.objects.create_user(username="outsider", password="pass")
        self.client.force_login(outsider)
        resp = self.client.get(self.account_url("bank_transactions"))
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"], "Forbidden")

    def test_unknown_business_forbidden(self):
        url = reverse("match_groups", kwargs={"business_id": uuid.uuid4(), "account_id": self.account.id})
        self.assertEqual(self.client.get(url).status_code, 403)

    def test_account_from_other_business_is_404(self):
        resp = self.client.get(
            reverse("match_groups", kwargs={"business_id": self.business.id, "account_id": uuid.uuid4()})
        )
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"], "Account not found in business")

    def test_anonymous_rejected(self):
        self.client.logout()
        self.assertEqual(self.client.get(self.account_url("match_groups")).status_code, 403)

    def test_enforced_policy_denial(self):
        self.business.authz_mode = Business.AuthzMode.ENFORCE
        self.business.save(update_fields=["authz_mode"])
        BusinessRolePolicy.objects.create(business=self.business, role="BOOKKEEPER", policy_json={"reconcile": "VIEW"})
        bookkeeper = self.add_member("books", "BOOKKEEPER")
        self.client.force_login(bookkeeper)
        bank = self.make_bank(-100)

        resp = self.post_json(self.account_url("bank_transaction_create_entry", bank_transaction_id=bank.id))

        self.assertEqual(resp.status_code, 403)
        data = resp.json()
        self.assertEqual(data["code"], "POLICY_DENIED")
        self.assertEqual(data["actionKey"], "reconcile.entry.create")
        self.assertEqual(data["policyKey"], "reconcile")
        self.assertTrue(ActivityLog.objects.filter(event_type=activity.AUTHZ_ENFORCED_DENIED).exists())

    def test_soft_mode_logs_but_allows(self):
        self.business.authz_mode = Business.AuthzMode.SOFT
        self.business.save(update_fields=["authz_mode"])
        bank = self.make_bank(-100)

        resp = self.post_json(self.account_url("bank_transaction_create_entry", bank_transaction_id=bank.id))

        self.assertEqual(resp.status_code, 201)
        log = ActivityLog.objects.get(event_type=activity.AUTHZ_SOFT_EVALUATED)
        self.assertEqual(log.payload_json["result"], "WOULD_ALLOW")
        self.assertEqual(log.payload_json["role"], "OWNER")


class MatchAPITests(ReconcileAPITestCase):
    def test_create_list_and_unmatch(self):
        bank = self.make_bank(-10000)
        entry = self.make_entry(-6000)

        resp = self.post_json(
            self.account_url("matches"),
            {
                "bankTransactionId": str(bank.id),
                "entryId": str(entry.id),
                "matchType": "FULL",
                "matchedAmountCents": "-6000",
            },
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["match"]["matched_amount_cents"], "-6000")

        resp = self.client.get(self.account_url("matches"), {"bankTransactionId": str(bank.id)})
        self.assertEqual(len(resp.json()["items"]), 1)

        resp = self.post_json(self.account_url("bank_transaction_unmatch", bank_transaction_id=bank.id))
        self.assertEqual(resp.json(), {"ok": True, "voidedCount": 1})
        resp = self.post_json(self.account_url("bank_transaction_unmatch", bank_transaction_id=bank.id))
        self.assertEqual(resp.json(), {"ok": True, "voidedCount": 0})

    def test_invalid_amount(self):
        resp = self.post_json(
            self.account_url("matches"),
            {"bankTransactionId": "a", "entryId": "b", "matchType": "FULL", "matchedAmountCents": "12.50"},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Invalid matchedAmountCents")

    def test_batch(self):
        bank = self.make_bank(-500)
        entry = self.make_entry(-500)
        resp = self.post_json(
            self.account_url("matches_batch"),
            {
                "items": [
                    {
                        "client_id": "m1",
                        "bankTransactionId": str(bank.id),
                        "entryId": str(entry.id),
                        "matchType": "FULL",
                        "matchedAmountCents": -500,
                    }
                ]
            },
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["summary"], {"ok": 1, "failed": 0, "total": 1})


class BankTransactionAPITests(ReconcileAPITestCase):
    def test_create_entry_then_duplicate(self):
        bank = self.make_bank(-5000)
        url = self.account_url("bank_transaction_create_entry", bank_transaction_id=bank.id)

        resp = self.post_json(url, {"autoMatch": True, "method": "card"})
        self.assertEqual(resp.status_code, 201)
        first = resp.json()
        self.assertEqual(set(first), {"ok", "entryId", "duplicate", "autoMatched", "matchId"})
        self.assertTrue(first["autoMatched"])
        self.assertTrue(BankMatch.objects.filter(id=first["matchId"]).exists())

        resp = self.post_json(url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["entryId"], first["entryId"])
        self.assertTrue(resp.json()["duplicate"])

        resp = self.client.get(self.account_url("bank_transactions"))
        self.assertEqual(resp.json()["items"][0]["match_state"], "MATCHED")

    def test_create_entries_batch(self):
        bank = self.make_bank(700)
        resp = self.post_json(
            self.account_url("bank_transactions_create_entries_batch"),
            {"items": [{"bank_transaction_id": str(bank.id)}, {"bank_transaction_id": "missing"}]},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["summary"], {"created": 1, "skipped": 0, "failed": 1, "total": 2})

    def test_list_rejects_bad_dates(self):
        resp = self.client.get(self.account_url("bank_transactions"), {"from": "03/01/2025"})
        self.assertEqual(resp.status_code, 400)


class EntryAdjustmentAPITests(ReconcileAPITestCase):
    def test_mark_and_unmark(self):
        entry = self.make_entry(-100)

        resp = self.post_json(self.account_url("entry_mark_adjustment", entry_id=entry.id), {"reason": "rounding"})
        self.assertEqual(resp.json(), {"ok": True, "entryId": str(entry.id), "isAdjustment": True})

        resp = self.post_json(self.account_url("entry_unmark_adjustment", entry_id=entry.id))
        self.assertEqual(resp.json(), {"ok": True, "entryId": str(entry.id), "isAdjustment": False})

    def test_missing_reason(self):
        entry = self.make_entry(-100)
        resp = self.post_json(self.account_url("entry_mark_adjustment", entry_id=entry.id))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "reason is required")


class ClosedPeriodAPITests(ReconcileAPITestCase):
    def test_close_list_and_reopen(self):
        resp = self.post_json(self.business_url("closed_periods"), {"month": "2025-02"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["closed_months"], ["2025-02"])
        self.assertEqual(resp.json()["closed_through_date"], "2025-02-28")

        resp = self.post_json(self.business_url("closed_periods_close_through"), {"through_date": "2025-04-10"})
        self.assertEqual(resp.json()["closed_months"], ["2025-03", "2025-04"])

        resp = self.client.get(self.business_url("closed_periods"))
        self.assertEqual(resp.json()["closed_through_month"], "2025-04")

        resp = self.client.delete(self.business_url("closed_periods_reopen", month="2025-03"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["reopened_months"], ["2025-03", "2025-04"])
        self.assertEqual(list(ClosedPeriod.objects.values_list("month", flat=True)), ["2025-02"])

    def test_close_beyond_today_is_409(self):
        next_year = date.today().year + 1
        resp = self.post_json(self.business_url("closed_periods_close_through"), {"through_date": f"{next_year}-02-01"})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "CANNOT_CLOSE_BEYOND_TODAY")

    def test_role_gates(self):
        bookkeeper = self.add_member("books", "BOOKKEEPER")
        admin = self.add_member("admin", "ADMIN")

        self.client.force_login(bookkeeper)
        resp = self.post_json(self.business_url("closed_periods"), {"month": "2025-02"})
        self.assertEqual(resp.status_code, 403)

        self.client.force_login(admin)
        resp = self.post_json(self.business_url("closed_periods"), {"month": "2025-02"})
        self.assertEqual(resp.status_code, 200)
        resp = self.client.delete(self.business_url("closed_periods_reopen", month="2025-02"))
        self.assertEqual(resp.status_code, 403)


class ActivityAPITests(ReconcileAPITestCase):
    def test_filters(self):
        self.close("2025-01")
        self.post_json(self.business_url("closed_periods"), {"month": "2025-02"})
        entry = self.make_entry(-100)
        self.post_json(self.account_url("entry_mark_adjustment", entry_id=entry.id), {"reason": "x"})

        resp = self.client.get(self.business_url("activity_list"))
        self.assertEqual(
            [row["event_type"] for row in resp.json()["items"]],
            [activity.ENTRY_ADJUSTMENT_MARKED, activity.CLOSED_PERIOD_CLOSED],
        )

        resp = self.client.get(self.business_url("activity_list"), {"eventType": "closed_period_closed"})
        self.assertEqual(len(resp.json()["items"]), 1)

        resp = self.client.get(self.business_url("activity_list"), {"accountId": str(self.account.id), "limit": "1"})
        items = resp.json()["items"]
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["payload_json"]["reason"], "x")

        resp = self.client.get(self.business_url("activity_list"), {"limit": "lots"})
        self.assertEqual(resp.status_code, 400)

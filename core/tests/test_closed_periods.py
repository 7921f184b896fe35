from datetime import date, datetime, timezone as dt_timezone

from core import activity, closed_periods
from core.exceptions import CloseBeyondTodayError, ClosedPeriodError, ValidationError
from core.models import ActivityLog, ClosedPeriod
from core.tests.helpers import ReconcileTestCase


class ClosedPeriodGuardTests(ReconcileTestCase):
    def test_no_closed_months_allows_everything(self):
        self.assertIsNone(closed_periods.closed_through_date(self.business))
        closed_periods.assert_not_closed_period(self.business, date(2000, 1, 1))

    def test_boundary_is_inclusive(self):
        self.close("2025-01", "2025-02")

        self.assertEqual(self.business.closed_through_date, date(2025, 2, 28))
        with self.assertRaises(ClosedPeriodError) as ctx:
            closed_periods.assert_not_closed_period(self.business, "2025-02-28")
        self.assertEqual(ctx.exception.code, "CLOSED_PERIOD")
        self.assertEqual(ctx.exception.status_code, 409)

        closed_periods.assert_not_closed_period(self.business, "2025-03-01")
        closed_periods.assert_not_closed_period(self.business, None)
        closed_periods.assert_not_closed_period(self.business, "garbage")

    def test_timestamps_are_compared_by_day(self):
        self.close("2025-02")
        with self.assertRaises(ClosedPeriodError):
            closed_periods.assert_not_closed_period(self.business, "2025-02-28T23:59:00Z")
        with self.assertRaises(ClosedPeriodError):
            closed_periods.assert_not_closed_period(
                self.business, datetime(2025, 2, 1, 12, 0, tzinfo=dt_timezone.utc)
            )

    def test_entry_id_guard(self):
        old = self.make_entry(-100, entry_date=date(2025, 1, 5))
        new = self.make_entry(-100, entry_date=date(2025, 3, 5))
        self.close("2025-01")

        closed_periods.assert_not_closed_period_for_entry_ids(self.business, [str(new.id), "bad-id"])
        closed_periods.assert_not_closed_period_for_entry_ids(self.business, [])
        with self.assertRaises(ClosedPeriodError):
            closed_periods.assert_not_closed_period_for_entry_ids(self.business, [str(new.id), str(old.id)])


class ClosedPeriodMutationTests(ReconcileTestCase):
    def test_close_month_fills_gap(self):
        self.assertEqual(closed_periods.close_month(self.business, self.user, "2025-03"), ["2025-03"])
        self.assertEqual(
            closed_periods.close_month(self.business, self.user, "2025-06"),
            ["2025-04", "2025-05", "2025-06"],
        )
        self.assertEqual(closed_periods.close_month(self.business, self.user, "2025-02"), [])

        summary = closed_periods.period_summary(self.business)
        self.assertEqual(summary["closed_through_month"], "2025-06")
        self.assertEqual(summary["closed_through_date"], "2025-06-30")
        self.assertEqual([p["month"] for p in summary["periods"]], ["2025-06", "2025-05", "2025-04", "2025-03"])

        log = ActivityLog.objects.filter(event_type=activity.CLOSED_PERIOD_CLOSED).order_by("id").last()
        self.assertEqual(log.payload_json, {"months": ["2025-04", "2025-05", "2025-06"], "through_month": "2025-06"})

    def test_close_month_crosses_year(self):
        self.close("2024-11")
        self.assertEqual(closed_periods.close_month(self.business, self.user, "2025-01"), ["2024-12", "2025-01"])

    def test_close_month_requires_valid_month(self):
        for bad in (None, "", "2025-13", "2025-1", "March"):
            with self.subTest(month=bad):
                with self.assertRaises(ValidationError):
                    closed_periods.close_month(self.business, self.user, bad)

    def test_close_through_date(self):
        closed = closed_periods.close_through(self.business, self.user, "2025-03-15")
        self.assertEqual(closed, ["2025-03"])
        self.assertEqual(self.business.closed_through_date, date(2025, 3, 31))

    def test_close_through_rejects_future_month(self):
        next_year = date.today().year + 1
        with self.assertRaises(CloseBeyondTodayError) as ctx:
            closed_periods.close_through(self.business, self.user, f"{next_year}-01-15")

        payload = ctx.exception.as_payload()
        self.assertEqual(payload["code"], "CANNOT_CLOSE_BEYOND_TODAY")
        self.assertEqual(payload["requested_through_date"], f"{next_year}-01-15")
        self.assertEqual(payload["requested_month_end"], f"{next_year}-01-31")
        self.assertIn("server_today", payload)
        self.assertFalse(ClosedPeriod.objects.exists())

    def test_close_through_requires_date(self):
        for bad in (None, "", "2025-03", 20250315):
            with self.subTest(through_date=bad):
                with self.assertRaises(ValidationError):
                    closed_periods.close_through(self.business, self.user, bad)

    def test_reopen_drops_month_and_later(self):
        self.close("2025-01", "2025-02", "2025-03")

        reopened = closed_periods.reopen_month(self.business, self.user, "2025-02")

        self.assertEqual(reopened, ["2025-02", "2025-03"])
        self.assertEqual(closed_periods.latest_closed_month(self.business), "2025-01")
        log = ActivityLog.objects.get(event_type=activity.CLOSED_PERIOD_REOPENED)
        self.assertEqual(log.payload_json, {"months": ["2025-02", "2025-03"]})

    def test_reopen_open_month_is_noop(self):
        self.assertEqual(closed_periods.reopen_month(self.business, self.user, "2025-02"), [])
        self.assertFalse(ActivityLog.objects.exists())
        with self.assertRaises(ValidationError):
            closed_periods.reopen_month(self.business, self.user, "bad")

"""
Closed-period guard and month close/reopen management.

A business closes whole months (``ClosedPeriod.month`` = ``YYYY-MM``). Closed
months always form one contiguous run, so the business is described by a
single closed-through date: the last day of its latest closed month. Any
mutation touching an entry dated on or before that date is rejected.
"""

import logging
from datetime import date
from typing import Any, Iterable, Optional

from django.db import transaction
from django.utils import timezone

from . import activity
from .exceptions import CloseBeyondTodayError, ClosedPeriodError, ValidationError
from .models import Business, ClosedPeriod, Entry
from .utils import is_valid_month, month_end, month_of, months_between, next_month, parse_uuid, parse_ymd, ymd

logger = logging.getLogger(__name__)


def latest_closed_month(business: Business) -> Optional[str]:
    return (
        ClosedPeriod.objects.filter(business=business)
        .order_by("-month")
        .values_list("month", flat=True)
        .first()
    )


def closed_through_date(business: Business) -> Optional[date]:
    month = latest_closed_month(business)
    return month_end(month) if month else None


def assert_not_closed_period(business: Business, value: Any) -> None:
    """
    Raise ``ClosedPeriodError`` when ``value`` is on or before the
    closed-through date. Missing or unparseable dates are not enforced here.
    """
    as_date = parse_ymd(value)
    if as_date is None:
        return
    through = closed_through_date(business)
    if through is not None and as_date <= through:
        logger.warning("Closed period rejected business=%s date=%s through=%s", business.id, as_date, through)
        raise ClosedPeriodError()


def assert_not_closed_period_for_entry_ids(business: Business, entry_ids: Iterable[Any]) -> None:
    ids = [parsed for parsed in (parse_uuid(value) for value in entry_ids) if parsed is not None]
    if not ids:
        return
    through = closed_through_date(business)
    if through is None:
        return
    blocked = Entry.objects.filter(
        business=business,
        id__in=ids,
        deleted_at__isnull=True,
        date__lte=through,
    ).exists()
    if blocked:
        logger.warning("Closed period rejected business=%s entries=%d through=%s", business.id, len(ids), through)
        raise ClosedPeriodError()


def serialize_period(period: ClosedPeriod) -> dict[str, Any]:
    return {
        "month": period.month,
        "closed_at": period.closed_at.isoformat() if period.closed_at else None,
        "closed_by_user_id": period.closed_by_id,
    }


def period_summary(business: Business) -> dict[str, Any]:
    periods = list(ClosedPeriod.objects.filter(business=business).order_by("-month"))
    through_month = periods[0].month if periods else None
    return {
        "periods": [serialize_period(p) for p in periods],
        "closed_through_month": through_month,
        "closed_through_date": ymd(month_end(through_month)) if through_month else None,
    }


def _close_months(business: Business, user, target_month: str) -> list[str]:
    """Close every open month from the first one after the current run through ``target_month``."""
    current = latest_closed_month(business)
    start = next_month(current) if current else target_month
    months = months_between(start, target_month) if start <= target_month else []
    if not months:
        return []
    ClosedPeriod.objects.bulk_create(
        [ClosedPeriod(business=business, month=m, closed_by=user) for m in months],
        ignore_conflicts=True,
    )
    activity.log_activity(
        business_id=business.id,
        actor_user=user,
        payload=activity.ClosedPeriodClosedPayload(months=months, through_month=target_month),
    )
    logger.info("Closed months business=%s through=%s count=%d", business.id, target_month, len(months))
    return months


@transaction.atomic
def close_month(business: Business, user, month: Any) -> list[str]:
    month = str(month if month is not None else "").strip()
    if not is_valid_month(month):
        raise ValidationError("month is required (YYYY-MM)")
    Business.objects.select_for_update().filter(pk=business.pk).first()
    return _close_months(business, user, month)


@transaction.atomic
def close_through(business: Business, user, through_date: Any) -> list[str]:
    parsed = parse_ymd(through_date)
    if parsed is None or not isinstance(through_date, str):
        raise ValidationError("through_date is required (YYYY-MM-DD)")
    target_month = month_of(parsed)
    today = timezone.localdate()
    if month_end(target_month) > today:
        raise CloseBeyondTodayError(
            "Cannot close beyond today.",
            extra={
                "server_today": ymd(today),
                "requested_through_date": ymd(parsed),
                "requested_month_end": ymd(month_end(target_month)),
            },
        )
    Business.objects.select_for_update().filter(pk=business.pk).first()
    return _close_months(business, user, target_month)


@transaction.atomic
def reopen_month(business: Business, user, month: Any) -> list[str]:
    """Reopen ``month`` and every later closed month."""
    month = str(month if month is not None else "").strip()
    if not is_valid_month(month):
        raise ValidationError("month path param is required (YYYY-MM)")
    Business.objects.select_for_update().filter(pk=business.pk).first()
    rows = ClosedPeriod.objects.filter(business=business, month__gte=month)
    months = sorted(rows.values_list("month", flat=True))
    if not months:
        return []
    rows.delete()
    activity.log_activity(
        business_id=business.id,
        actor_user=user,
        payload=activity.ClosedPeriodReopenedPayload(months=months),
    )
    logger.info("Reopened months business=%s from=%s count=%d", business.id, month, len(months))
    return months

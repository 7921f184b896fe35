from rest_framework.response import Response

from core import closed_periods
from core.views_common import ScopedAPIView

CLOSE_ROLES = ("OWNER", "ADMIN")
REOPEN_ROLES = ("OWNER",)


class ClosedPeriodListCreateView(ScopedAPIView):
    """
    GET  /businesses/{b}/closed-periods
    POST /businesses/{b}/closed-periods  {month: "YYYY-MM"}
    """

    def get(self, request, business_id):
        business, _membership = self.get_business(business_id)
        return Response({"ok": True, **closed_periods.period_summary(business)})

    def post(self, request, business_id):
        business, membership = self.get_business(business_id)
        self.require_write(business, membership, roles=CLOSE_ROLES)
        closed = closed_periods.close_month(business, request.user, self.get_body().get("month"))
        return Response({"ok": True, "closed_months": closed, **closed_periods.period_summary(business)})


class ClosedPeriodCloseThroughView(ScopedAPIView):
    def post(self, request, business_id):
        business, membership = self.get_business(business_id)
        self.require_write(business, membership, roles=CLOSE_ROLES)
        body = self.get_body()
        through_date = str(body.get("through_date") or "").strip()
        closed = closed_periods.close_through(business, request.user, through_date)
        return Response(
            {
                "ok": True,
                "through_date": through_date,
                "closed_months": closed,
                **closed_periods.period_summary(business),
            }
        )


class ClosedPeriodReopenView(ScopedAPIView):
    def delete(self, request, business_id, month):
        business, membership = self.get_business(business_id)
        self.require_write(business, membership, roles=REOPEN_ROLES)
        reopened = closed_periods.reopen_month(business, request.user, month)
        return Response({"ok": True, "reopened_months": reopened, **closed_periods.period_summary(business)})

from rest_framework.response import Response

from core.activity import serialize_activity
from core.exceptions import ValidationError
from core.models import ActivityLog
from core.utils import parse_uuid
from core.views_common import ScopedAPIView

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


class ActivityListView(ScopedAPIView):
    """GET /businesses/{b}/activity?eventType=&accountId=&limit=, newest first."""

    def get(self, request, business_id):
        business, _membership = self.get_business(business_id)
        qs = ActivityLog.objects.filter(business=business)

        event_type = (request.query_params.get("eventType") or "").strip().upper()
        if event_type:
            qs = qs.filter(event_type=event_type)

        account_id = (request.query_params.get("accountId") or "").strip()
        if account_id:
            account_uuid = parse_uuid(account_id)
            if account_uuid is None:
                raise ValidationError("Invalid accountId")
            qs = qs.filter(scope_account_id=account_uuid)

        raw_limit = request.query_params.get("limit")
        try:
            limit = int(raw_limit) if raw_limit else DEFAULT_LIMIT
        except ValueError:
            raise ValidationError("limit must be an integer")
        limit = max(1, min(limit, MAX_LIMIT))

        rows = qs.order_by("-created_at", "-id")[:limit]
        return Response({"ok": True, "items": [serialize_activity(row) for row in rows]})

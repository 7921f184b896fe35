from rest_framework.response import Response

from core.services.adjustments import AdjustmentService
from core.views_common import ACCOUNT_ENDPOINT_PREFIX, ScopedAPIView


class EntryMarkAdjustmentView(ScopedAPIView):
    def post(self, request, business_id, account_id, entry_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.adjustment.mark",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/entries/{{entryId}}/mark-adjustment",
            account=account,
        )
        entry = AdjustmentService.mark(business, account, request.user, entry_id, self.get_body().get("reason"))
        return Response({"ok": True, "entryId": str(entry.id), "isAdjustment": True})


class EntryUnmarkAdjustmentView(ScopedAPIView):
    def post(self, request, business_id, account_id, entry_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.adjustment.unmark",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/entries/{{entryId}}/unmark-adjustment",
            account=account,
        )
        entry = AdjustmentService.unmark(business, account, request.user, entry_id)
        return Response({"ok": True, "entryId": str(entry.id), "isAdjustment": False})

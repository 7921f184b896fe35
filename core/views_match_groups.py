from rest_framework import status
from rest_framework.response import Response

from core.services.match_groups import MatchGroupService, item_id_lists, serialize_match_group
from core.views_common import ACCOUNT_ENDPOINT_PREFIX, ScopedAPIView


class MatchGroupListCreateView(ScopedAPIView):
    """
    GET  .../match-groups?status=active|all
    POST .../match-groups  {direction?, bankTransactionIds[], entryIds[]}
    """

    def get(self, request, business_id, account_id):
        business, _membership, account = self.get_scope(business_id, account_id)
        items = MatchGroupService.list_groups(business, account, request.query_params.get("status", "active"))
        return Response({"ok": True, "items": items})

    def post(self, request, business_id, account_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.matchGroup.create",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/match-groups",
            account=account,
        )
        body = self.get_body()
        bank_ids, entry_ids = item_id_lists(body)
        group = MatchGroupService.create(
            business,
            account,
            request.user,
            bank_transaction_ids=bank_ids,
            entry_ids=entry_ids,
            direction=body.get("direction"),
        )
        return Response({"ok": True, "match_group_id": str(group.id)}, status=status.HTTP_201_CREATED)


class MatchGroupBatchView(ScopedAPIView):
    def post(self, request, business_id, account_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.matchGroup.batchCreate",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/match-groups/batch",
            account=account,
        )
        body = self.get_body()
        outcome = MatchGroupService.create_batch(business, account, request.user, body.get("items"))
        return Response({"ok": True, **outcome})


class MatchGroupVoidView(ScopedAPIView):
    def post(self, request, business_id, account_id, match_group_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.matchGroup.void",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/match-groups/{{matchGroupId}}/void",
            account=account,
        )
        body = self.get_body()
        group = MatchGroupService.void(business, account, request.user, match_group_id, body.get("reason"))
        return Response({"ok": True, "match_group": serialize_match_group(group)})

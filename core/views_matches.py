from rest_framework import status
from rest_framework.response import Response

from core.services.bank_matches import BankMatchService, parse_match_input, serialize_bank_match
from core.views_common import ACCOUNT_ENDPOINT_PREFIX, ScopedAPIView


class MatchListCreateView(ScopedAPIView):
    """
    GET  .../matches?bankTransactionId=&entryId=   active legacy matches
    POST .../matches  {bankTransactionId, entryId, matchType, matchedAmountCents}
    """

    def get(self, request, business_id, account_id):
        business, _membership, account = self.get_scope(business_id, account_id)
        items = BankMatchService.list_active(
            business,
            account,
            bank_transaction_id=(request.query_params.get("bankTransactionId") or "").strip(),
            entry_id=(request.query_params.get("entryId") or "").strip(),
        )
        return Response({"ok": True, "items": items})

    def post(self, request, business_id, account_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.match.create",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/matches",
            account=account,
        )
        bank_transaction_id, entry_id, match_type, matched_amount_cents = parse_match_input(self.get_body())
        match = BankMatchService.create(
            business,
            account,
            request.user,
            bank_transaction_id=bank_transaction_id,
            entry_id=entry_id,
            match_type=match_type,
            matched_amount_cents=matched_amount_cents,
        )
        return Response(
            {"ok": True, "match_id": str(match.id), "match": serialize_bank_match(match)},
            status=status.HTTP_201_CREATED,
        )


class MatchBatchView(ScopedAPIView):
    def post(self, request, business_id, account_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.match.batchCreate",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/matches/batch",
            account=account,
        )
        outcome = BankMatchService.create_batch(business, account, request.user, self.get_body().get("items"))
        return Response({"ok": True, **outcome})

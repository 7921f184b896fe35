from rest_framework import status
from rest_framework.response import Response

from core.services.bank_entries import BankEntryService
from core.services.bank_matches import BankMatchService
from core.views_common import ACCOUNT_ENDPOINT_PREFIX, ScopedAPIView


class BankTransactionListView(ScopedAPIView):
    """GET .../bank-transactions?from=&to=&limit= with derived match state."""

    def get(self, request, business_id, account_id):
        business, _membership, account = self.get_scope(business_id, account_id)
        items = BankEntryService.list_bank_transactions(
            business,
            account,
            date_from=request.query_params.get("from"),
            date_to=request.query_params.get("to"),
            limit=request.query_params.get("limit"),
        )
        return Response({"ok": True, "items": items})


class BankTransactionUnmatchView(ScopedAPIView):
    def post(self, request, business_id, account_id, bank_transaction_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.match.void",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/bank-transactions/{{bankTransactionId}}/unmatch",
            account=account,
        )
        voided_count = BankMatchService.unmatch(business, account, request.user, bank_transaction_id)
        return Response({"ok": True, "voidedCount": voided_count})


class BankTransactionCreateEntryView(ScopedAPIView):
    def post(self, request, business_id, account_id, bank_transaction_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.entry.create",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/bank-transactions/{{bankTransactionId}}/create-entry",
            account=account,
        )
        body = self.get_body()
        created = BankEntryService.create_entry(
            business,
            account,
            request.user,
            bank_transaction_id,
            auto_match=body.get("autoMatch") is True,
            memo=body.get("memo"),
            method=body.get("method"),
            category_id=body.get("category_id") or body.get("categoryId"),
        )
        http_status = status.HTTP_200_OK if created["duplicate"] else status.HTTP_201_CREATED
        return Response({"ok": True, **created}, status=http_status)


class BankTransactionCreateEntriesBatchView(ScopedAPIView):
    def post(self, request, business_id, account_id):
        business, membership, account = self.get_scope(business_id, account_id)
        self.require_write(
            business,
            membership,
            action_key="reconcile.entry.create.batch",
            endpoint=f"POST {ACCOUNT_ENDPOINT_PREFIX}/bank-transactions/create-entries-batch",
            account=account,
        )
        outcome = BankEntryService.create_entries_batch(business, account, request.user, self.get_body().get("items"))
        return Response({"ok": True, **outcome})

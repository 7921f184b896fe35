from django.urls import path

from .views_activity import ActivityListView
from .views_bank_transactions import (
    BankTransactionCreateEntriesBatchView,
    BankTransactionCreateEntryView,
    BankTransactionListView,
    BankTransactionUnmatchView,
)
from .views_closed_periods import (
    ClosedPeriodCloseThroughView,
    ClosedPeriodListCreateView,
    ClosedPeriodReopenView,
)
from .views_entries import EntryMarkAdjustmentView, EntryUnmarkAdjustmentView
from .views_match_groups import MatchGroupBatchView, MatchGroupListCreateView, MatchGroupVoidView
from .views_matches import MatchBatchView, MatchListCreateView

ACCOUNT = "businesses/<uuid:business_id>/accounts/<uuid:account_id>/"

urlpatterns = [
    # Closed periods
    path(
        "businesses/<uuid:business_id>/closed-periods",
        ClosedPeriodListCreateView.as_view(),
        name="closed_periods",
    ),
    path(
        "businesses/<uuid:business_id>/closed-periods/close-through",
        ClosedPeriodCloseThroughView.as_view(),
        name="closed_periods_close_through",
    ),
    path(
        "businesses/<uuid:business_id>/closed-periods/<str:month>",
        ClosedPeriodReopenView.as_view(),
        name="closed_periods_reopen",
    ),
    # Activity
    path("businesses/<uuid:business_id>/activity", ActivityListView.as_view(), name="activity_list"),
    # Match groups
    path(ACCOUNT + "match-groups", MatchGroupListCreateView.as_view(), name="match_groups"),
    path(ACCOUNT + "match-groups/batch", MatchGroupBatchView.as_view(), name="match_groups_batch"),
    path(
        ACCOUNT + "match-groups/<uuid:match_group_id>/void",
        MatchGroupVoidView.as_view(),
        name="match_group_void",
    ),
    # Legacy matches
    path(ACCOUNT + "matches", MatchListCreateView.as_view(), name="matches"),
    path(ACCOUNT + "matches/batch", MatchBatchView.as_view(), name="matches_batch"),
    # Bank transactions
    path(ACCOUNT + "bank-transactions", BankTransactionListView.as_view(), name="bank_transactions"),
    path(
        ACCOUNT + "bank-transactions/create-entries-batch",
        BankTransactionCreateEntriesBatchView.as_view(),
        name="bank_transactions_create_entries_batch",
    ),
    path(
        ACCOUNT + "bank-transactions/<uuid:bank_transaction_id>/unmatch",
        BankTransactionUnmatchView.as_view(),
        name="bank_transaction_unmatch",
    ),
    path(
        ACCOUNT + "bank-transactions/<uuid:bank_transaction_id>/create-entry",
        BankTransactionCreateEntryView.as_view(),
        name="bank_transaction_create_entry",
    ),
    # Entries
    path(
        ACCOUNT + "entries/<uuid:entry_id>/mark-adjustment",
        EntryMarkAdjustmentView.as_view(),
        name="entry_mark_adjustment",
    ),
    path(
        ACCOUNT + "entries/<uuid:entry_id>/unmark-adjustment",
        EntryUnmarkAdjustmentView.as_view(),
        name="entry_unmark_adjustment",
    ),
]

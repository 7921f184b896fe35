# Reconciliation services
from .adjustments import AdjustmentService
from .bank_entries import BankEntryService
from .bank_matches import BankMatchService
from .match_groups import MatchGroupService

__all__ = ["AdjustmentService", "BankEntryService", "BankMatchService", "MatchGroupService"]

"""
Shared plumbing for the business/account scoped API views.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from core.authz import WRITE_ROLES, authorize_write, get_role_membership, normalize_role
from core.exceptions import ForbiddenError, NotFoundError, ReconcileError, ValidationError
from core.models import Account, Business, BusinessMembership

logger = logging.getLogger(__name__)

ENDPOINT_PREFIX = "/v1/businesses/{businessId}"
ACCOUNT_ENDPOINT_PREFIX = ENDPOINT_PREFIX + "/accounts/{accountId}"


def error_response(exc: ReconcileError) -> Response:
    return Response(exc.as_payload(), status=exc.status_code)


class ScopedAPIView(APIView):
    """
    Base view: the caller must be a member of the business in the URL, and the
    account (when present) must belong to it. Domain errors raised anywhere in
    the handler are rendered as ``{"ok": false, "error", "code"?}``.
    """

    permission_classes = [permissions.IsAuthenticated]

    def handle_exception(self, exc):
        if isinstance(exc, ReconcileError):
            return error_response(exc)
        return super().handle_exception(exc)

    def get_business(self, business_id) -> tuple[Business, BusinessMembership]:
        business = Business.objects.filter(id=business_id).first()
        membership = get_role_membership(business, self.request.user) if business else None
        if membership is None:
            raise ForbiddenError("Forbidden")
        return business, membership

    def get_account(self, business: Business, account_id) -> Account:
        account = Account.objects.filter(id=account_id, business=business).first()
        if account is None:
            raise NotFoundError("Account not found in business")
        return account

    def get_scope(self, business_id, account_id) -> tuple[Business, BusinessMembership, Account]:
        business, membership = self.get_business(business_id)
        return business, membership, self.get_account(business, account_id)

    def require_write(
        self,
        business: Business,
        membership: BusinessMembership,
        *,
        action_key: Optional[str] = None,
        endpoint: str = "",
        account: Optional[Account] = None,
        roles: Iterable[str] = WRITE_ROLES,
    ) -> None:
        """Role allowlist first, then the business's role policy for ``action_key``."""
        if normalize_role(membership.role) not in set(roles):
            raise ForbiddenError("Insufficient permissions")
        if action_key:
            authorize_write(
                business=business,
                user=self.request.user,
                role=membership.role,
                action_key=action_key,
                endpoint=endpoint,
                scope_account_id=account.id if account else None,
            )

    def get_body(self) -> dict[str, Any]:
        data = self.request.data
        if data in (None, ""):
            return {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON body")
        return data

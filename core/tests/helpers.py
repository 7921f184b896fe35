from datetime import date

from django.contrib.auth.models import User
from django.test import TestCase

from core.models import Account, BankTransaction, Business, BusinessMembership, ClosedPeriod, Entry


class ReconcileTestCase(TestCase):
    """Owner user, one business and one operating account."""

    default_date = date(2025, 3, 10)

    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="pass")
        self.business = Business.objects.create(name="Recon Co", currency="USD")
        self.membership = BusinessMembership.objects.create(
            business=self.business,
            user=self.user,
            role=BusinessMembership.Role.OWNER,
        )
        self.account = Account.objects.create(business=self.business, name="Operating")

    def make_bank(self, amount_cents: int, posted_date=None, name: str = "Deposit") -> BankTransaction:
        return BankTransaction.objects.create(
            business=self.business,
            account=self.account,
            posted_date=posted_date or self.default_date,
            name=name,
            amount_cents=amount_cents,
        )

    def make_entry(self, amount_cents: int, entry_date=None, **extra) -> Entry:
        entry_type = Entry.EntryType.INCOME if amount_cents > 0 else Entry.EntryType.EXPENSE
        return Entry.objects.create(
            business=self.business,
            account=self.account,
            date=entry_date or self.default_date,
            payee=extra.pop("payee", "Vendor"),
            amount_cents=amount_cents,
            type=extra.pop("type", entry_type),
            **extra,
        )

    def close(self, *months: str) -> None:
        for month in months:
            ClosedPeriod.objects.create(business=self.business, month=month, closed_by=self.user)

    def add_member(self, username: str, role: str) -> User:
        user = User.objects.create_user(username=username, password="pass")
        BusinessMembership.objects.create(business=self.business, user=user, role=role)
        return user

import uuid
from typing import TYPE_CHECKING, Optional

from django.conf import settings
from django.db import models
from django.db.models import Q

if TYPE_CHECKING:
    from datetime import date

    from django.db.models import Manager


class Business(models.Model):
    class AuthzMode(models.TextChoices):
        OFF = "OFF", "Off"
        SOFT = "SOFT", "Soft (log only)"
        ENFORCE = "ENFORCE", "Enforce"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    currency = models.CharField(max_length=3, default="USD")
    authz_mode = models.CharField(
        max_length=16,
        choices=AuthzMode.choices,
        default=AuthzMode.OFF,
        help_text="Role-policy enforcement mode for write endpoints.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def closed_through_date(self) -> Optional["date"]:
        from .closed_periods import closed_through_date  # local import to avoid circular

        return closed_through_date(self)

    if TYPE_CHECKING:
        memberships: Manager["BusinessMembership"]
        accounts: Manager["Account"]
        closed_periods: Manager["ClosedPeriod"]


class BusinessMembership(models.Model):
    class Role(models.TextChoices):
        OWNER = "OWNER", "Owner"
        ADMIN = "ADMIN", "Admin"
        BOOKKEEPER = "BOOKKEEPER", "Bookkeeper"
        ACCOUNTANT = "ACCOUNTANT", "Accountant"
        MEMBER = "MEMBER", "Member"

    business = models.ForeignKey(
        Business,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="business_memberships",
    )
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.MEMBER)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["business", "user"], name="uniq_membership_per_user"),
        ]

    def __str__(self):
        return f"{self.user_id} @ {self.business_id} ({self.role})"


class BusinessRolePolicy(models.Model):
    """
    Stored per-role overrides. Merged over the defaults in ``core.authz``.
    """

    business = models.ForeignKey(
        Business,
        on_delete=models.CASCADE,
        related_name="role_policies",
    )
    role = models.CharField(max_length=20, choices=BusinessMembership.Role.choices)
    policy_json = models.JSONField(default=dict, blank=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["business", "role"], name="uniq_role_policy_per_business"),
        ]


class Account(models.Model):
    class AccountType(models.TextChoices):
        CHECKING = "CHECKING", "Checking"
        SAVINGS = "SAVINGS", "Savings"
        CREDIT_CARD = "CREDIT_CARD", "Credit card"
        CASH = "CASH", "Cash"
        OTHER = "OTHER", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    business = models.ForeignKey(
        Business,
        on_delete=models.CASCADE,
        related_name="accounts",
    )
    name = models.CharField(max_length=255)
    type = models.CharField(max_length=20, choices=AccountType.choices, default=AccountType.CHECKING)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(fields=["business", "name"], name="uniq_account_name_per_business"),
        ]

    def __str__(self):
        return self.name


class BankTransaction(models.Model):
    class Source(models.TextChoices):
        PLAID = "PLAID", "Plaid"
        CSV = "CSV", "CSV import"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    business = models.ForeignKey(
        Business,
        on_delete=models.CASCADE,
        related_name="bank_transactions",
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.CASCADE,
        related_name="bank_transactions",
    )
    posted_date = models.DateField(db_index=True)
    name = models.CharField(max_length=512, blank=True)
    amount_cents = models.BigIntegerField(help_text="Positive = inflow, negative = outflow")
    is_pending = models.BooleanField(default=False)
    is_removed = models.BooleanField(default=False)
    source = models.CharField(max_length=10, choices=Source.choices, default=Source.CSV)
    import_hash = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Dedup key computed by the importer",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-posted_date", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["business", "account", "import_hash"],
                condition=~Q(import_hash=""),
                name="uniq_bank_txn_import_hash",
            ),
        ]
        indexes = [
            models.Index(fields=["business", "account", "posted_date"], name="bank_txn_scope_date_idx"),
        ]

    def __str__(self):
        return f"{self.posted_date} – {self.name}"

    if TYPE_CHECKING:
        bank_matches: Manager["BankMatch"]
        match_group_links: Manager["MatchGroupBank"]


class Entry(models.Model):
    class EntryType(models.TextChoices):
        INCOME = "INCOME", "Income"
        EXPENSE = "EXPENSE", "Expense"
        TRANSFER = "TRANSFER", "Transfer"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"
        OPENING = "OPENING", "Opening balance"

    class Method(models.TextChoices):
        CASH = "CASH", "Cash"
        CARD = "CARD", "Card"
        ACH = "ACH", "ACH"
        WIRE = "WIRE", "Wire"
        CHECK = "CHECK", "Check"
        DIRECT_DEPOSIT = "DIRECT_DEPOSIT", "Direct deposit"
        ZELLE = "ZELLE", "Zelle"
        TRANSFER = "TRANSFER", "Transfer"
        OTHER = "OTHER", "Other"

    class Status(models.TextChoices):
        EXPECTED = "EXPECTED", "Expected"
        CLEARED = "CLEARED", "Cleared"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    business = models.ForeignKey(
        Business,
        on_delete=models.CASCADE,
        related_name="entries",
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.CASCADE,
        related_name="entries",
    )
    date = models.DateField(db_index=True)
    payee = models.CharField(max_length=255, blank=True)
    memo = models.TextField(blank=True)
    amount_cents = models.BigIntegerField(help_text="Positive = inflow, negative = outflow")
    type = models.CharField(max_length=20, choices=EntryType.choices)
    method = models.CharField(max_length=20, choices=Method.choices, default=Method.OTHER)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.EXPECTED)
    category_id = models.CharField(max_length=64, blank=True, default="")

    is_adjustment = models.BooleanField(default=False)
    adjusted_at = models.DateTimeField(null=True, blank=True)
    adjusted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    adjustment_reason = models.TextField(blank=True, default="")

    source_bank_transaction = models.ForeignKey(
        BankTransaction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_entries",
        help_text="Bank transaction this entry was created from (idempotency key).",
    )

    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-date", "-created_at"]
        constraints = [
            models.CheckConstraint(condition=~Q(amount_cents=0), name="entry_amount_non_zero"),
        ]
        indexes = [
            models.Index(fields=["business", "account", "date"], name="entry_scope_date_idx"),
        ]

    def __str__(self):
        return f"{self.date} – {self.payee} ({self.amount_cents})"

    @property
    def is_matchable(self) -> bool:
        return not self.is_adjustment and self.deleted_at is None

    if TYPE_CHECKING:
        bank_matches: Manager["BankMatch"]
        match_group_links: Manager["MatchGroupEntry"]


class BankMatch(models.Model):
    """
    Legacy one-to-one match between a bank transaction and an entry.

    Several active matches may share a bank transaction (partial allocations);
    an entry carries at most one active match.
    """

    class MatchType(models.TextChoices):
        FULL = "FULL", "Full"
        PARTIAL = "PARTIAL", "Partial"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="bank_matches")
    account = models.ForeignKey(Account, on_delete=models.CASCADE, related_name="bank_matches")
    bank_transaction = models.ForeignKey(
        BankTransaction,
        on_delete=models.CASCADE,
        related_name="bank_matches",
    )
    entry = models.ForeignKey(
        Entry,
        on_delete=models.CASCADE,
        related_name="bank_matches",
    )
    match_type = models.CharField(max_length=10, choices=MatchType.choices)
    matched_amount_cents = models.BigIntegerField(help_text="Signed; same sign as bank txn and entry")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    voided_at = models.DateTimeField(null=True, blank=True)
    voided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(condition=~Q(matched_amount_cents=0), name="bank_match_amount_non_zero"),
            models.UniqueConstraint(
                fields=["entry"],
                condition=Q(voided_at__isnull=True),
                name="uniq_active_bank_match_per_entry",
            ),
        ]
        indexes = [
            models.Index(fields=["business", "account", "bank_transaction"], name="bank_match_scope_bank_idx"),
            models.Index(fields=["business", "account", "entry"], name="bank_match_scope_entry_idx"),
        ]

    @property
    def is_active(self) -> bool:
        return self.voided_at is None


class MatchGroup(models.Model):
    """
    Balanced N bank transactions <-> M entries link. Voided, never deleted.
    """

    class Direction(models.TextChoices):
        INFLOW = "INFLOW", "Inflow"
        OUTFLOW = "OUTFLOW", "Outflow"

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        VOIDED = "VOIDED", "Voided"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="match_groups")
    account = models.ForeignKey(Account, on_delete=models.CASCADE, related_name="match_groups")
    direction = models.CharField(max_length=10, choices=Direction.choices)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE, db_index=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    voided_at = models.DateTimeField(null=True, blank=True)
    voided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    void_reason = models.TextField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["business", "account", "status", "created_at"], name="match_group_scope_status_idx"),
        ]

    if TYPE_CHECKING:
        banks: Manager["MatchGroupBank"]
        entries: Manager["MatchGroupEntry"]


class MatchGroupBank(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    match_group = models.ForeignKey(MatchGroup, on_delete=models.CASCADE, related_name="banks")
    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="+")
    account = models.ForeignKey(Account, on_delete=models.CASCADE, related_name="+")
    bank_transaction = models.ForeignKey(
        BankTransaction,
        on_delete=models.CASCADE,
        related_name="match_group_links",
    )
    matched_amount_cents = models.BigIntegerField(help_text="Unsigned; abs(bank amount)")

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(matched_amount_cents__gt=0), name="mg_bank_amount_positive"),
        ]
        indexes = [
            models.Index(fields=["business", "account", "bank_transaction"], name="mg_bank_scope_bank_idx"),
        ]


class MatchGroupEntry(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    match_group = models.ForeignKey(MatchGroup, on_delete=models.CASCADE, related_name="entries")
    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="+")
    account = models.ForeignKey(Account, on_delete=models.CASCADE, related_name="+")
    entry = models.ForeignKey(
        Entry,
        on_delete=models.CASCADE,
        related_name="match_group_links",
    )
    matched_amount_cents = models.BigIntegerField(help_text="Unsigned; abs(entry amount)")

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(matched_amount_cents__gt=0), name="mg_entry_amount_positive"),
        ]
        indexes = [
            models.Index(fields=["business", "account", "entry"], name="mg_entry_scope_entry_idx"),
        ]


class ClosedPeriod(models.Model):
    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="closed_periods")
    month = models.CharField(max_length=7, help_text="YYYY-MM")
    closed_at = models.DateTimeField(auto_now_add=True)
    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-month"]
        constraints = [
            models.UniqueConstraint(fields=["business", "month"], name="uniq_closed_month_per_business"),
        ]

    def __str__(self):
        return f"{self.business_id} {self.month}"


class ActivityLog(models.Model):
    """
    Append-only audit trail. One row per core mutation.
    """

    business = models.ForeignKey(Business, on_delete=models.CASCADE, related_name="activity_logs")
    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="+",
    )
    scope_account_id = models.UUIDField(null=True, blank=True, db_index=True)
    event_type = models.CharField(max_length=64, db_index=True)
    payload_json = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["business", "created_at"], name="activity_business_created_idx"),
        ]

    def __str__(self):
        return f"{self.created_at:%Y-%m-%d %H:%M:%S} {self.event_type}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("ActivityLog rows are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("ActivityLog rows are append-only.")

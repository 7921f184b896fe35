import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


ROLE_CHOICES = [
    ("OWNER", "Owner"),
    ("ADMIN", "Admin"),
    ("BOOKKEEPER", "Bookkeeper"),
    ("ACCOUNTANT", "Accountant"),
    ("MEMBER", "Member"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Business",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("currency", models.CharField(default="USD", max_length=3)),
                (
                    "authz_mode",
                    models.CharField(
                        choices=[("OFF", "Off"), ("SOFT", "Soft (log only)"), ("ENFORCE", "Enforce")],
                        default="OFF",
                        help_text="Role-policy enforcement mode for write endpoints.",
                        max_length=16,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="BusinessMembership",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("role", models.CharField(choices=ROLE_CHOICES, default="MEMBER", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="memberships", to="core.business"
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="business_memberships",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("business", "user"), name="uniq_membership_per_user"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BusinessRolePolicy",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("role", models.CharField(choices=ROLE_CHOICES, max_length=20)),
                ("policy_json", models.JSONField(blank=True, default=dict)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="role_policies", to="core.business"
                    ),
                ),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("business", "role"), name="uniq_role_policy_per_business"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("CHECKING", "Checking"),
                            ("SAVINGS", "Savings"),
                            ("CREDIT_CARD", "Credit card"),
                            ("CASH", "Cash"),
                            ("OTHER", "Other"),
                        ],
                        default="CHECKING",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="accounts", to="core.business"
                    ),
                ),
            ],
            options={
                "ordering": ["name"],
                "constraints": [
                    models.UniqueConstraint(fields=("business", "name"), name="uniq_account_name_per_business"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BankTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("posted_date", models.DateField(db_index=True)),
                ("name", models.CharField(blank=True, max_length=512)),
                ("amount_cents", models.BigIntegerField(help_text="Positive = inflow, negative = outflow")),
                ("is_pending", models.BooleanField(default=False)),
                ("is_removed", models.BooleanField(default=False)),
                (
                    "source",
                    models.CharField(choices=[("PLAID", "Plaid"), ("CSV", "CSV import")], default="CSV", max_length=10),
                ),
                (
                    "import_hash",
                    models.CharField(
                        blank=True, default="", help_text="Dedup key computed by the importer", max_length=64
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bank_transactions",
                        to="core.account",
                    ),
                ),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bank_transactions",
                        to="core.business",
                    ),
                ),
            ],
            options={
                "ordering": ["-posted_date", "-created_at"],
                "indexes": [
                    models.Index(fields=["business", "account", "posted_date"], name="bank_txn_scope_date_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("import_hash", ""), _negated=True),
                        fields=("business", "account", "import_hash"),
                        name="uniq_bank_txn_import_hash",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Entry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("date", models.DateField(db_index=True)),
                ("payee", models.CharField(blank=True, max_length=255)),
                ("memo", models.TextField(blank=True)),
                ("amount_cents", models.BigIntegerField(help_text="Positive = inflow, negative = outflow")),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("INCOME", "Income"),
                            ("EXPENSE", "Expense"),
                            ("TRANSFER", "Transfer"),
                            ("ADJUSTMENT", "Adjustment"),
                            ("OPENING", "Opening balance"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("CASH", "Cash"),
                            ("CARD", "Card"),
                            ("ACH", "ACH"),
                            ("WIRE", "Wire"),
                            ("CHECK", "Check"),
                            ("DIRECT_DEPOSIT", "Direct deposit"),
                            ("ZELLE", "Zelle"),
                            ("TRANSFER", "Transfer"),
                            ("OTHER", "Other"),
                        ],
                        default="OTHER",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("EXPECTED", "Expected"), ("CLEARED", "Cleared")], default="EXPECTED", max_length=20
                    ),
                ),
                ("category_id", models.CharField(blank=True, default="", max_length=64)),
                ("is_adjustment", models.BooleanField(default=False)),
                ("adjusted_at", models.DateTimeField(blank=True, null=True)),
                ("adjustment_reason", models.TextField(blank=True, default="")),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="entries", to="core.account"
                    ),
                ),
                (
                    "adjusted_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="entries", to="core.business"
                    ),
                ),
                (
                    "source_bank_transaction",
                    models.ForeignKey(
                        blank=True,
                        help_text="Bank transaction this entry was created from (idempotency key).",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_entries",
                        to="core.banktransaction",
                    ),
                ),
            ],
            options={
                "ordering": ["-date", "-created_at"],
                "indexes": [
                    models.Index(fields=["business", "account", "date"], name="entry_scope_date_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents", 0), _negated=True), name="entry_amount_non_zero"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BankMatch",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("match_type", models.CharField(choices=[("FULL", "Full"), ("PARTIAL", "Partial")], max_length=10)),
                (
                    "matched_amount_cents",
                    models.BigIntegerField(help_text="Signed; same sign as bank txn and entry"),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("voided_at", models.DateTimeField(blank=True, null=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="bank_matches", to="core.account"
                    ),
                ),
                (
                    "bank_transaction",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bank_matches",
                        to="core.banktransaction",
                    ),
                ),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="bank_matches", to="core.business"
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "entry",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="bank_matches", to="core.entry"
                    ),
                ),
                (
                    "voided_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["business", "account", "bank_transaction"], name="bank_match_scope_bank_idx"),
                    models.Index(fields=["business", "account", "entry"], name="bank_match_scope_entry_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("matched_amount_cents", 0), _negated=True),
                        name="bank_match_amount_non_zero",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("voided_at__isnull", True)),
                        fields=("entry",),
                        name="uniq_active_bank_match_per_entry",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MatchGroup",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "direction",
                    models.CharField(choices=[("INFLOW", "Inflow"), ("OUTFLOW", "Outflow")], max_length=10),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("ACTIVE", "Active"), ("VOIDED", "Voided")],
                        db_index=True,
                        default="ACTIVE",
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("voided_at", models.DateTimeField(blank=True, null=True)),
                ("void_reason", models.TextField(blank=True, null=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="match_groups", to="core.account"
                    ),
                ),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="match_groups", to="core.business"
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "voided_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["business", "account", "status", "created_at"], name="match_group_scope_status_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MatchGroupBank",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("matched_amount_cents", models.BigIntegerField(help_text="Unsigned; abs(bank amount)")),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="+", to="core.account"
                    ),
                ),
                (
                    "bank_transaction",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="match_group_links",
                        to="core.banktransaction",
                    ),
                ),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="+", to="core.business"
                    ),
                ),
                (
                    "match_group",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="banks", to="core.matchgroup"
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["business", "account", "bank_transaction"], name="mg_bank_scope_bank_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("matched_amount_cents__gt", 0)), name="mg_bank_amount_positive"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MatchGroupEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("matched_amount_cents", models.BigIntegerField(help_text="Unsigned; abs(entry amount)")),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="+", to="core.account"
                    ),
                ),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="+", to="core.business"
                    ),
                ),
                (
                    "entry",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="match_group_links",
                        to="core.entry",
                    ),
                ),
                (
                    "match_group",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="entries", to="core.matchgroup"
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["business", "account", "entry"], name="mg_entry_scope_entry_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("matched_amount_cents__gt", 0)), name="mg_entry_amount_positive"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ClosedPeriod",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("month", models.CharField(help_text="YYYY-MM", max_length=7)),
                ("closed_at", models.DateTimeField(auto_now_add=True)),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="closed_periods", to="core.business"
                    ),
                ),
                (
                    "closed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-month"],
                "constraints": [
                    models.UniqueConstraint(fields=("business", "month"), name="uniq_closed_month_per_business"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ActivityLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("scope_account_id", models.UUIDField(blank=True, db_index=True, null=True)),
                ("event_type", models.CharField(db_index=True, max_length=64)),
                ("payload_json", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "actor_user",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "business",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="activity_logs", to="core.business"
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["business", "created_at"], name="activity_business_created_idx"),
                ],
            },
        ),
    ]

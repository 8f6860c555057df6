import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Organization",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=80, unique=True)),
                ("default_currency", models.CharField(default="EUR", max_length=3)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(max_length=32)),
                ("name", models.CharField(max_length=200)),
                ("ac_type", models.CharField(choices=[("asset", "Asset"), ("liability", "Liability"), ("equity", "Equity"), ("revenue", "Revenue"), ("expense", "Expense")], max_length=10)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.organization")),
            ],
            options={
                "indexes": [models.Index(fields=["organization", "code"], name="acct_org_code_idx")],
                "constraints": [models.UniqueConstraint(fields=("organization", "code"), name="uq_organization_account_code")],
            },
        ),
        migrations.CreateModel(
            name="Journal",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(max_length=10)),
                ("name", models.CharField(max_length=100)),
                ("journal_type", models.CharField(choices=[("general", "General"), ("sales", "Sales"), ("purchase", "Purchase"), ("bank", "Bank"), ("cash", "Cash")], max_length=10)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.organization")),
            ],
            options={
                "constraints": [models.UniqueConstraint(fields=("organization", "code"), name="uq_organization_journal_code")],
            },
        ),
        migrations.CreateModel(
            name="DocumentSequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("series", models.CharField(max_length=100)),
                ("next_value", models.BigIntegerField(default=1)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sequences", to="ledger_core.organization")),
            ],
            options={
                "constraints": [models.UniqueConstraint(fields=("organization", "series"), name="uq_organization_sequence_series")],
            },
        ),
        migrations.CreateModel(
            name="Membership",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("role", models.CharField(choices=[("owner", "Owner"), ("admin", "Admin"), ("accountant", "Accountant"), ("viewer", "Viewer")], default="viewer", max_length=20)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="memberships", to="ledger_core.organization")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="ledger_memberships", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "constraints": [models.UniqueConstraint(fields=("user", "organization"), name="uq_user_organization_membership")],
            },
        ),
        migrations.CreateModel(
            name="TaxRate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100)),
                ("code", models.CharField(max_length=20)),
                ("rate", models.DecimalField(decimal_places=4, max_digits=7)),
                ("tax_type", models.CharField(choices=[("sales", "Sales"), ("purchase", "Purchase"), ("both", "Both")], default="both", max_length=10)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to="ledger_core.account")),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.organization")),
            ],
            options={
                "constraints": [models.CheckConstraint(condition=models.Q(("rate__gte", 0), ("rate__lte", 100)), name="tax_rate_between_0_and_100")],
            },
        ),
        migrations.CreateModel(
            name="JournalEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("reference", models.CharField(max_length=50)),
                ("date", models.DateField()),
                ("description", models.TextField(blank=True, null=True)),
                ("status", models.CharField(choices=[("draft", "Draft"), ("posted", "Posted"), ("cancelled", "Cancelled")], default="draft", max_length=10)),
                ("total_debit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("total_credit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("posted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("journal", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="entries", to="ledger_core.journal")),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.organization")),
                ("posted_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("reversal_of", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="reversals", to="ledger_core.journalentry")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["organization", "date"], name="je_org_date_idx"),
                    models.Index(fields=["organization", "status"], name="je_org_status_idx"),
                    models.Index(fields=["organization", "journal"], name="je_org_journal_idx"),
                ],
                "constraints": [models.UniqueConstraint(fields=("organization", "reference"), name="uq_je_organization_ref")],
            },
        ),
        migrations.CreateModel(
            name="JournalEntryLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("line_no", models.PositiveIntegerField(default=1)),
                ("label", models.CharField(blank=True, max_length=500, null=True)),
                ("debit", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("credit", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="ledger_core.account")),
                ("entry", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="ledger_core.journalentry")),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.organization")),
            ],
            options={
                "ordering": ["line_no"],
                "indexes": [
                    models.Index(fields=["organization", "account"], name="jel_org_account_idx"),
                    models.Index(fields=["organization", "entry"], name="jel_org_entry_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("debit__gte", 0), ("credit__gte", 0)), name="jel_non_negative_amounts"),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("debit__gt", 0), ("credit", 0)),
                            models.Q(("debit", 0), ("credit__gt", 0)),
                            _connector="OR",
                        ),
                        name="jel_debit_xor_credit",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("number", models.CharField(max_length=64)),
                ("customer_id", models.CharField(max_length=64)),
                ("customer_name", models.CharField(max_length=200)),
                ("customer_email", models.EmailField(blank=True, max_length=254, null=True)),
                ("customer_address", models.TextField(blank=True, null=True)),
                ("date", models.DateField()),
                ("due_date", models.DateField()),
                ("status", models.CharField(choices=[("draft", "Draft"), ("sent", "Sent"), ("partial", "Partially paid"), ("paid", "Paid"), ("cancelled", "Cancelled")], default="draft", max_length=10)),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("amount_paid", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("amount_due", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("currency", models.CharField(default="EUR", max_length=3)),
                ("notes", models.TextField(blank=True, null=True)),
                ("terms", models.TextField(blank=True, null=True)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("journal_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="invoices", to="ledger_core.journalentry")),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.organization")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["organization", "customer_id"], name="inv_org_customer_idx"),
                    models.Index(fields=["organization", "status"], name="inv_org_status_idx"),
                    models.Index(fields=["organization", "date"], name="inv_org_date_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("organization", "number"), name="uq_invoice_organization_number"),
                    models.CheckConstraint(condition=models.Q(("amount_paid__gte", 0), ("amount_due__gte", 0)), name="inv_non_negative_balances"),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("line_no", models.PositiveIntegerField(default=1)),
                ("description", models.CharField(max_length=500)),
                ("quantity", models.DecimalField(decimal_places=4, default=Decimal("1"), max_digits=14)),
                ("unit_price", models.DecimalField(decimal_places=4, max_digits=18)),
                ("tax_rate_percent", models.DecimalField(decimal_places=4, default=Decimal("0"), max_digits=7)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("line_total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to="ledger_core.account")),
                ("invoice", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="ledger_core.invoice")),
                ("tax_rate", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to="ledger_core.taxrate")),
            ],
            options={
                "ordering": ["line_no"],
                "constraints": [models.CheckConstraint(condition=models.Q(("quantity__gte", 0)), name="invl_non_negative_quantity")],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("reference", models.CharField(max_length=50)),
                ("date", models.DateField()),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("currency", models.CharField(default="EUR", max_length=3)),
                ("method", models.CharField(choices=[("cash", "Cash"), ("bank_transfer", "Bank transfer"), ("check", "Check"), ("credit_card", "Credit card"), ("other", "Other")], max_length=20)),
                ("customer_id", models.CharField(blank=True, max_length=64, null=True)),
                ("supplier_id", models.CharField(blank=True, max_length=64, null=True)),
                ("notes", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("account", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to="ledger_core.account")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("journal_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payments", to="ledger_core.journalentry")),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.organization")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["organization", "date"], name="pay_org_date_idx"),
                    models.Index(fields=["organization", "customer_id"], name="pay_org_customer_idx"),
                    models.Index(fields=["organization", "supplier_id"], name="pay_org_supplier_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("organization", "reference"), name="uq_payment_organization_ref"),
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="payment_positive_amount"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAllocation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("invoice", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="allocations", to="ledger_core.invoice")),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.organization")),
                ("payment", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="allocations", to="ledger_core.payment")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["organization", "payment"], name="alloc_org_payment_idx"),
                    models.Index(fields=["organization", "invoice"], name="alloc_org_invoice_idx"),
                ],
                "constraints": [models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="alloc_positive_amount")],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=50)),
                ("object_type", models.CharField(max_length=100)),
                ("object_id", models.CharField(max_length=100)),
                ("changes", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("organization", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="ledger_core.organization")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["organization", "created_at"], name="audit_org_created_idx"),
                    models.Index(fields=["object_type", "object_id"], name="audit_object_idx"),
                ],
            },
        ),
    ]

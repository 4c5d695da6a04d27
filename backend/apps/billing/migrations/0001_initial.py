import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("organizations", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="OrganizationSubscription",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "stripe_customer_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe customer ID, e.g. 'cus_xxx'",
                        max_length=255,
                    ),
                ),
                (
                    "stripe_subscription_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe subscription ID, e.g. 'sub_xxx'. Cleared on cancellation.",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "seat_limit",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Purchased seats (sum of tier item quantities on Stripe)",
                    ),
                ),
                (
                    "pending_seat_limit",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Seat limit proposed by an in-flight seat change",
                        null=True,
                    ),
                ),
                (
                    "pending_claim_revision",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Revision of the seat change that set pending_seat_limit",
                        null=True,
                    ),
                ),
                ("pending_claimed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "billing_period",
                    models.CharField(
                        choices=[("monthly", "Monthly"), ("yearly", "Yearly")],
                        default="monthly",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("none", "None"),
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("canceled", "Canceled"),
                        ],
                        db_index=True,
                        default="none",
                        max_length=20,
                    ),
                ),
                ("current_period_start", models.DateTimeField(blank=True, null=True)),
                (
                    "current_period_end",
                    models.DateTimeField(
                        blank=True,
                        help_text="End of current billing period (next invoice date)",
                        null=True,
                    ),
                ),
                ("cancel_at_period_end", models.BooleanField(default=False)),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "pricing_version",
                    models.CharField(
                        blank=True,
                        help_text="Seat pricing table the subscription was bought under",
                        max_length=50,
                    ),
                ),
                (
                    "revision",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Bumped on every write; used for optimistic concurrency",
                    ),
                ),
                (
                    "organization",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="subscription",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]

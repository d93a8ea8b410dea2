# Generated manually for standalone django-enrollment-payments package

import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Enrollment",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "student_id",
                    models.CharField(
                        db_index=True,
                        help_text="Opaque student identity (email addresses are stored lower-cased)",
                        max_length=255,
                    ),
                ),
                (
                    "course_type",
                    models.CharField(
                        choices=[
                            ("skillpath", "Skill path"),
                            ("careerpath", "Career path"),
                            ("courses", "Course"),
                        ],
                        max_length=20,
                    ),
                ),
                ("course_slug", models.CharField(max_length=200)),
                (
                    "amount",
                    models.PositiveBigIntegerField(
                        help_text="Amount in smallest currency unit, e.g. paise or cents"
                    ),
                ),
                ("currency", models.CharField(default="INR", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("awaiting_gateway", "Awaiting gateway"),
                            ("active", "Active (paid)"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
            ],
        ),
        migrations.CreateModel(
            name="PaymentOrder",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "order_id",
                    models.CharField(
                        help_text="Gateway-assigned order id",
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("amount", models.PositiveBigIntegerField()),
                ("currency", models.CharField(max_length=3)),
                (
                    "gateway",
                    models.CharField(help_text="Gateway provider name", max_length=50),
                ),
                (
                    "gateway_key_id",
                    models.CharField(
                        blank=True,
                        help_text="Public key the checkout widget must use for this order",
                        max_length=100,
                    ),
                ),
                ("receipt", models.CharField(blank=True, max_length=40)),
                ("consumed", models.BooleanField(default=False)),
                ("consumed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "enrollment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="django_enrollment_payments.enrollment",
                    ),
                ),
            ],
        ),
        migrations.AddField(
            model_name="enrollment",
            name="current_order",
            field=models.ForeignKey(
                blank=True,
                help_text="The order a verified payment must reference to activate this enrollment",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="django_enrollment_payments.paymentorder",
            ),
        ),
        migrations.AddConstraint(
            model_name="enrollment",
            constraint=models.UniqueConstraint(
                condition=models.Q(("deleted_at__isnull", True)),
                fields=("student_id", "course_type", "course_slug"),
                name="uniq_live_enrollment_per_course",
            ),
        ),
        migrations.CreateModel(
            name="VerificationAttempt",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("payment_id", models.CharField(max_length=64)),
                ("signature", models.CharField(blank=True, max_length=128)),
                (
                    "result",
                    models.CharField(
                        choices=[("valid", "Valid"), ("invalid", "Invalid")],
                        max_length=10,
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("client", "Client callback"),
                            ("webhook", "Gateway webhook"),
                        ],
                        default="client",
                        max_length=10,
                    ),
                ),
                ("applied", models.BooleanField(default=False)),
                ("applied_at", models.DateTimeField(blank=True, null=True)),
                ("error_code", models.CharField(blank=True, max_length=100)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="attempts",
                        to="django_enrollment_payments.paymentorder",
                    ),
                ),
            ],
            options={
                "unique_together": {("order", "payment_id")},
            },
        ),
    ]

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import fees.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="TutorialCenter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=160)),
                ("slug", models.SlugField(max_length=80, unique=True)),
                ("status", models.CharField(
                    choices=[("active", "Active"), ("inactive", "Inactive"), ("suspended", "Suspended")],
                    default="active", max_length=20,
                )),
                ("payment_months", models.JSONField(
                    blank=True, default=fees.models.default_payment_months,
                    help_text="Month indices (0 = January) in which tuition is billed.",
                )),
                ("default_registration_fee", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Subject",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120)),
                ("code", models.CharField(blank=True, max_length=30)),
                ("monthly_fee", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("is_active", models.BooleanField(default=True)),
                ("center", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="subjects", to="fees.tutorialcenter",
                )),
            ],
            options={
                "ordering": ("center", "name"),
                "unique_together": {("center", "name")},
            },
        ),
        migrations.CreateModel(
            name="Student",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("student_number", models.CharField(blank=True, max_length=40)),
                ("full_name", models.CharField(max_length=200)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("phone", models.CharField(blank=True, max_length=30)),
                ("status", models.CharField(
                    choices=[
                        ("active", "Active"), ("inactive", "Inactive"),
                        ("graduated", "Graduated"), ("withdrawn", "Withdrawn"),
                    ],
                    default="active", max_length=20,
                )),
                ("registration_fee_paid", models.BooleanField(default=False)),
                ("registration_fee_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("registration_fee_paid_date", models.DateTimeField(blank=True, null=True)),
                ("registration_date", models.DateField(default=django.utils.timezone.localdate)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("center", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="students", to="fees.tutorialcenter",
                )),
            ],
            options={
                "ordering": ("center", "full_name"),
            },
        ),
        migrations.CreateModel(
            name="StudentSubject",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("enrolled_date", models.DateField(default=django.utils.timezone.localdate)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("student", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="enrollments", to="fees.student",
                )),
                ("subject", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name="enrollments", to="fees.subject",
                )),
            ],
            options={
                "ordering": ("student", "subject"),
                "unique_together": {("student", "subject")},
            },
        ),
        migrations.AddField(
            model_name="student",
            name="subjects",
            field=models.ManyToManyField(related_name="students", through="fees.StudentSubject", to="fees.subject"),
        ),
        migrations.CreateModel(
            name="StudentFee",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("fee_month", models.DateField(help_text="First day of the billed month.")),
                ("fee_type", models.CharField(default="tuition", max_length=40)),
                ("amount_due", models.DecimalField(decimal_places=2, max_digits=12)),
                ("amount_paid", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("status", models.CharField(
                    choices=[("unpaid", "Unpaid"), ("partial", "Partially paid"), ("paid", "Paid")],
                    default="unpaid", editable=False, max_length=10,
                )),
                ("due_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("center", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="fees", to="fees.tutorialcenter",
                )),
                ("student", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="fees", to="fees.student",
                )),
            ],
            options={
                "ordering": ["fee_month", "id"],
                "indexes": [
                    models.Index(fields=["student", "status", "fee_month"], name="fee_student_status_month_idx"),
                    models.Index(fields=["center", "fee_type", "fee_month"], name="fee_center_type_month_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("student", "fee_month", "fee_type"), name="uniq_student_fee_month_type",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount_paid__gte", 0), ("amount_paid__lte", models.F("amount_due"))),
                        name="fee_amount_paid_within_due",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("payment_method", models.CharField(blank=True, max_length=40)),
                ("reference_number", models.CharField(blank=True, max_length=120)),
                ("notes", models.TextField(blank=True)),
                ("payment_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("status", models.CharField(
                    choices=[("completed", "Completed"), ("reversed", "Reversed")],
                    default="completed", max_length=20,
                )),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("center", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="fees.tutorialcenter",
                )),
                ("recorded_by", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name="recorded_payments", to=settings.AUTH_USER_MODEL,
                )),
                ("student", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="fees.student",
                )),
                ("student_fee", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name="direct_payments", to="fees.studentfee",
                    help_text="Set when the payment was applied to one chosen fee.",
                )),
            ],
            options={
                "ordering": ["-payment_date", "-id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="payment_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAllocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("fee", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name="allocations", to="fees.studentfee",
                )),
                ("payment", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="allocations", to="fees.payment",
                )),
            ],
            options={
                "ordering": ["fee__fee_month", "id"],
            },
        ),
        migrations.CreateModel(
            name="PaymentReversal",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("reason", models.TextField()),
                ("reversed_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("center", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="payment_reversals",
                    to="fees.tutorialcenter",
                )),
                ("original_payment", models.OneToOneField(
                    on_delete=django.db.models.deletion.CASCADE, related_name="reversal", to="fees.payment",
                )),
                ("reversed_by", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name="payment_reversals", to=settings.AUTH_USER_MODEL,
                )),
                ("student", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="payment_reversals",
                    to="fees.student",
                )),
            ],
            options={
                "ordering": ["-reversed_at", "-id"],
            },
        ),
    ]

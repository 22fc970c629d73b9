import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("fees", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Refund",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("reason", models.CharField(
                    choices=[
                        ("withdrawal", "Student withdrawal"), ("overpayment", "Overpayment"),
                        ("duplicate", "Duplicate payment"), ("service_issue", "Service issue"), ("other", "Other"),
                    ],
                    max_length=30,
                )),
                ("reason_notes", models.TextField(blank=True)),
                ("student_status_updated", models.BooleanField(default=False)),
                ("refund_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("center", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="refunds", to="fees.tutorialcenter",
                )),
                ("original_payment", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name="refunds", to="fees.payment",
                )),
                ("processed_by", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name="processed_refunds", to=settings.AUTH_USER_MODEL,
                )),
                ("student", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="refunds", to="fees.student",
                )),
            ],
            options={
                "ordering": ["-refund_date", "-id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="refund_amount_positive"),
                ],
            },
        ),
    ]

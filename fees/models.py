# fees/models.py
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import models
from django.db.models import F, Q, Sum
from django.utils import timezone

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce str/int/float/Decimal to a 2dp Decimal."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def default_payment_months():
    return list(getattr(settings, "FEES_DEFAULT_PAYMENT_MONTHS", [1, 2, 3, 4, 5, 6, 7, 8, 9]))


# ---------- Tenant ----------
class TutorialCenter(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"
        SUSPENDED = "suspended", "Suspended"

    name = models.CharField(max_length=160)
    slug = models.SlugField(max_length=80, unique=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    payment_months = models.JSONField(
        default=default_payment_months,
        blank=True,
        help_text="Month indices (0 = January) in which tuition is billed.",
    )
    default_registration_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def allows_month(self, index: int) -> bool:
        return index in (self.payment_months or [])


class Subject(models.Model):
    center = models.ForeignKey(TutorialCenter, on_delete=models.CASCADE, related_name="subjects")
    name = models.CharField(max_length=120)
    code = models.CharField(max_length=30, blank=True)
    monthly_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = [("center", "name")]
        ordering = ("center", "name")

    def __str__(self):
        return f"{self.name} ({self.monthly_fee}/month)"


# ---------- Students ----------
class Student(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"
        GRADUATED = "graduated", "Graduated"
        WITHDRAWN = "withdrawn", "Withdrawn"

    center = models.ForeignKey(TutorialCenter, on_delete=models.CASCADE, related_name="students")
    student_number = models.CharField(max_length=40, blank=True)
    full_name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)

    registration_fee_paid = models.BooleanField(default=False)
    registration_fee_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    registration_fee_paid_date = models.DateTimeField(null=True, blank=True)
    registration_date = models.DateField(default=timezone.localdate)

    subjects = models.ManyToManyField(Subject, through="StudentSubject", related_name="students")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("center", "full_name")

    def __str__(self):
        return f"{self.full_name} ({self.student_number})" if self.student_number else self.full_name

    def monthly_tuition(self) -> Decimal:
        """Sum of monthly fees over active enrollments in active subjects."""
        total = (
            self.enrollments
            .filter(is_active=True, subject__is_active=True)
            .aggregate(total=Sum("subject__monthly_fee"))["total"]
        )
        return to_money(total or 0)


class StudentSubject(models.Model):
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="enrollments")
    subject = models.ForeignKey(Subject, on_delete=models.PROTECT, related_name="enrollments")
    enrolled_date = models.DateField(default=timezone.localdate)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("student", "subject")]
        ordering = ("student", "subject")

    def __str__(self):
        return f"{self.student} → {self.subject.name}"


# ---------- Fee ledger ----------
class FeeStatus(models.TextChoices):
    UNPAID = "unpaid", "Unpaid"
    PARTIAL = "partial", "Partially paid"
    PAID = "paid", "Paid"

    @classmethod
    def for_amounts(cls, amount_due, amount_paid):
        due = to_money(amount_due)
        paid = to_money(amount_paid)
        if paid >= due:
            return cls.PAID
        if paid > 0:
            return cls.PARTIAL
        return cls.UNPAID


class StudentFee(models.Model):
    """
    One obligation per student per fee month per fee type.
    Status always follows the two amounts; see FeeStatus.for_amounts.
    """
    TUITION = "tuition"
    REGISTRATION = "registration"

    center = models.ForeignKey(TutorialCenter, on_delete=models.CASCADE, related_name="fees")
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="fees")
    fee_month = models.DateField(help_text="First day of the billed month.")
    fee_type = models.CharField(max_length=40, default=TUITION)

    amount_due = models.DecimalField(max_digits=12, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=10, choices=FeeStatus.choices, default=FeeStatus.UNPAID, editable=False)
    due_date = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["fee_month", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["student", "fee_month", "fee_type"],
                name="uniq_student_fee_month_type",
            ),
            models.CheckConstraint(
                condition=Q(amount_paid__gte=0) & Q(amount_paid__lte=F("amount_due")),
                name="fee_amount_paid_within_due",
            ),
        ]
        indexes = [
            models.Index(fields=["student", "status", "fee_month"], name="fee_student_status_month_idx"),
            models.Index(fields=["center", "fee_type", "fee_month"], name="fee_center_type_month_idx"),
        ]

    def __str__(self):
        return f"{self.student} — {self.fee_type} {self.fee_month:%Y-%m} ({self.status})"

    @property
    def balance(self) -> Decimal:
        return max(to_money(self.amount_due) - to_money(self.amount_paid), ZERO)

    @property
    def is_paid(self):
        return self.status == FeeStatus.PAID

    def refresh_status(self):
        self.status = FeeStatus.for_amounts(self.amount_due, self.amount_paid)
        return self.status

    def apply(self, amount) -> Decimal:
        """Raise amount_paid by up to the outstanding balance. Returns what was applied."""
        applied = min(to_money(amount), self.balance)
        if applied <= 0:
            return ZERO
        self.amount_paid = to_money(self.amount_paid) + applied
        self.refresh_status()
        return applied

    def reduce(self, amount) -> Decimal:
        """Lower amount_paid, floored at zero. Returns what was removed."""
        removed = min(to_money(amount), to_money(self.amount_paid))
        if removed <= 0:
            return ZERO
        self.amount_paid = to_money(self.amount_paid) - removed
        self.refresh_status()
        return removed

    def save(self, *args, **kwargs):
        self.refresh_status()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "status" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["status"]
        super().save(*args, **kwargs)


# ---------- Payments ----------
class Payment(models.Model):
    class Status(models.TextChoices):
        COMPLETED = "completed", "Completed"
        REVERSED = "reversed", "Reversed"

    center = models.ForeignKey(TutorialCenter, on_delete=models.CASCADE, related_name="payments")
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="payments")
    student_fee = models.ForeignKey(
        StudentFee, null=True, blank=True, on_delete=models.SET_NULL, related_name="direct_payments",
        help_text="Set when the payment was applied to one chosen fee.",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=40, blank=True)
    reference_number = models.CharField(max_length=120, blank=True)
    notes = models.TextField(blank=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="recorded_payments",
    )
    payment_date = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.COMPLETED)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-payment_date", "-id"]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="payment_amount_positive"),
        ]

    def __str__(self):
        return f"{self.student} — {self.amount} on {self.payment_date:%Y-%m-%d}"

    @property
    def allocated_amount(self) -> Decimal:
        total = self.allocations.aggregate(total=Sum("amount"))["total"]
        return to_money(total or 0)

    @property
    def unallocated_amount(self) -> Decimal:
        return max(to_money(self.amount) - self.allocated_amount, ZERO)

    @property
    def refunded_amount(self) -> Decimal:
        total = self.refunds.aggregate(total=Sum("amount"))["total"]
        return to_money(total or 0)

    @property
    def refundable_amount(self) -> Decimal:
        return max(to_money(self.amount) - self.refunded_amount, ZERO)


class PaymentAllocation(models.Model):
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name="allocations")
    fee = models.ForeignKey(StudentFee, on_delete=models.PROTECT, related_name="allocations")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["fee__fee_month", "id"]

    def __str__(self):
        return f"{self.amount} → {self.fee}"


class PaymentReversal(models.Model):
    original_payment = models.OneToOneField(Payment, on_delete=models.CASCADE, related_name="reversal")
    center = models.ForeignKey(TutorialCenter, on_delete=models.CASCADE, related_name="payment_reversals")
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="payment_reversals")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.TextField()
    reversed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="payment_reversals",
    )
    reversed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-reversed_at", "-id"]

    def __str__(self):
        return f"Reversal of payment #{self.original_payment_id} ({self.amount})"


class Refund(models.Model):
    """
    Money handed back against a payment. Several partial refunds may be
    made until the payment amount is used up; the fee ledger is not touched.
    """
    class Reason(models.TextChoices):
        WITHDRAWAL = "withdrawal", "Student withdrawal"
        OVERPAYMENT = "overpayment", "Overpayment"
        DUPLICATE = "duplicate", "Duplicate payment"
        SERVICE_ISSUE = "service_issue", "Service issue"
        OTHER = "other", "Other"

    original_payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name="refunds")
    center = models.ForeignKey(TutorialCenter, on_delete=models.CASCADE, related_name="refunds")
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="refunds")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=30, choices=Reason.choices)
    reason_notes = models.TextField(blank=True)
    student_status_updated = models.BooleanField(default=False)
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="processed_refunds",
    )
    refund_date = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-refund_date", "-id"]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="refund_amount_positive"),
        ]

    def __str__(self):
        return f"Refund of {self.amount} on payment #{self.original_payment_id}"

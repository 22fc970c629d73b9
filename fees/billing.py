# fees/billing.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from django.db import DatabaseError, transaction
from django.utils import timezone

from .exceptions import AllocationError, BillingError, InvalidAmountError, PaymentAlreadyReversed, RefundError
from .models import (
    FeeStatus, Payment, PaymentAllocation, PaymentReversal, Refund, Student, StudentFee, ZERO, to_money,
)
from .signals import payment_allocated

logger = logging.getLogger(__name__)


@dataclass
class AllocationLine:
    fee_id: int
    fee_month: date
    amount: Decimal


@dataclass
class AllocationResult:
    success: bool
    allocations: list[AllocationLine] = field(default_factory=list)
    remaining_credit: Decimal = ZERO
    error: str = ""

    @property
    def allocated_total(self) -> Decimal:
        return sum((line.amount for line in self.allocations), ZERO)

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "allocations": [
                {"fee_id": line.fee_id, "fee_month": line.fee_month.isoformat(), "amount": str(line.amount)}
                for line in self.allocations
            ],
            "remaining_credit": str(self.remaining_credit),
            "error": self.error,
        }


def _positive_amount(amount) -> Decimal:
    try:
        value = to_money(amount)
        if not value.is_finite():
            raise InvalidAmountError(f"Not a valid amount: {amount!r}")
    except ArithmeticError:
        raise InvalidAmountError(f"Not a valid amount: {amount!r}")
    if value <= 0:
        raise InvalidAmountError("Payment amount must be greater than zero.")
    return value


def _lock_payment(payment, student, amount: Decimal) -> Payment:
    """Re-read the payment under lock and check `amount` fits its unallocated remainder."""
    locked = Payment.objects.select_for_update().get(pk=payment.pk)
    if locked.status == Payment.Status.REVERSED:
        raise AllocationError(f"Payment #{locked.pk} has been reversed.")
    if locked.student_id != student.pk:
        raise AllocationError(f"Payment #{locked.pk} belongs to another student.")
    if amount > locked.unallocated_amount:
        raise AllocationError(
            f"Cannot allocate {amount} from payment #{locked.pk}; only {locked.unallocated_amount} is unallocated."
        )
    return locked


def _mark_registration_paid(student):
    student.registration_fee_paid = True
    student.registration_fee_paid_date = timezone.now()
    student.save(update_fields=["registration_fee_paid", "registration_fee_paid_date", "updated_at"])


def _notify_allocated(payment, student, result: AllocationResult):
    transaction.on_commit(
        lambda: payment_allocated.send(sender=Payment, payment=payment, student=student, result=result)
    )


# ----------------------------
# Oldest-first allocation
# ----------------------------
def allocate_payment(center, student, amount, payment: Payment | None = None) -> AllocationResult:
    """
    Spread `amount` across the student's unpaid and partial fees, oldest
    fee month first. Each fee takes at most its balance; whatever is left
    after the last outstanding fee is returned as remaining_credit and is
    not stored anywhere.

    Runs in one transaction with the fee rows locked, so either every fee
    update lands or none do. When `payment` is given, a PaymentAllocation
    row is written per fee touched.
    """
    amount = _positive_amount(amount)

    with transaction.atomic():
        if payment is not None:
            payment = _lock_payment(payment, student, amount)

        outstanding = (
            StudentFee.objects
            .select_for_update()
            .filter(center=center, student=student)
            .exclude(status=FeeStatus.PAID)
            .order_by("fee_month", "id")
        )

        remaining = amount
        lines: list[AllocationLine] = []
        registration_settled = False

        for fee in outstanding:
            if remaining <= 0:
                break
            applied = fee.apply(remaining)
            if applied <= 0:
                continue
            fee.save(update_fields=["amount_paid", "updated_at"])
            if payment is not None:
                PaymentAllocation.objects.create(payment=payment, fee=fee, amount=applied)
            lines.append(AllocationLine(fee_id=fee.pk, fee_month=fee.fee_month, amount=applied))
            remaining -= applied
            if fee.fee_type == StudentFee.REGISTRATION and fee.is_paid:
                registration_settled = True

        if registration_settled:
            _mark_registration_paid(student)

        result = AllocationResult(success=True, allocations=lines, remaining_credit=remaining)
        _notify_allocated(payment, student, result)

    logger.info(
        f"Allocated {result.allocated_total} of {amount} for {student} across {len(lines)} fee(s); "
        f"credit remaining {remaining}"
    )
    return result


# ----------------------------
# Targeted single-fee payment
# ----------------------------
def apply_payment_to_fee(fee: StudentFee, amount, payment: Payment | None = None) -> Decimal:
    """
    Put `amount` against one chosen fee, ignoring month order. amount_paid
    is capped at amount_due; the excess is simply not applied. Returns the
    amount applied.
    """
    amount = _positive_amount(amount)

    with transaction.atomic():
        fee = StudentFee.objects.select_for_update().select_related("student").get(pk=fee.pk)
        student = fee.student
        if payment is not None:
            payment = _lock_payment(payment, student, amount)

        applied = fee.apply(amount)
        if applied <= 0:
            return ZERO
        fee.save(update_fields=["amount_paid", "updated_at"])
        if payment is not None:
            PaymentAllocation.objects.create(payment=payment, fee=fee, amount=applied)
        if fee.fee_type == StudentFee.REGISTRATION and fee.is_paid:
            _mark_registration_paid(student)

        result = AllocationResult(
            success=True,
            allocations=[AllocationLine(fee_id=fee.pk, fee_month=fee.fee_month, amount=applied)],
            remaining_credit=amount - applied,
        )
        _notify_allocated(payment, student, result)

    logger.info(f"Applied {applied} of {amount} directly to {fee}")
    return applied


# ----------------------------
# Payment recording
# ----------------------------
def record_payment(
    center,
    student,
    amount,
    *,
    auto_allocate: bool = True,
    student_fee: StudentFee | None = None,
    payment_method: str = "",
    reference_number: str = "",
    notes: str = "",
    recorded_by=None,
    payment_date=None,
) -> tuple[Payment, AllocationResult | None]:
    """
    Store a Payment row, then allocate it: oldest-first when auto_allocate,
    otherwise against `student_fee` if one was chosen. The payment is kept
    even if allocation fails; the result then has success=False.
    """
    amount = _positive_amount(amount)
    if student.center_id != center.pk:
        raise BillingError(f"{student} does not belong to {center}.")
    if not auto_allocate and student_fee is not None and student_fee.student_id != student.pk:
        raise AllocationError(f"{student_fee} is not a fee of {student}.")

    payment = Payment.objects.create(
        center=center,
        student=student,
        student_fee=None if auto_allocate else student_fee,
        amount=amount,
        payment_method=(payment_method or "").strip(),
        reference_number=(reference_number or "").strip(),
        notes=(notes or "").strip(),
        recorded_by=recorded_by,
        payment_date=payment_date or timezone.now(),
    )

    if auto_allocate:
        try:
            result = allocate_payment(center, student, amount, payment)
        except DatabaseError as exc:
            logger.exception(f"Payment #{payment.pk} recorded but allocation failed")
            result = AllocationResult(success=False, remaining_credit=amount, error=str(exc))
        return payment, result

    if student_fee is not None:
        try:
            applied = apply_payment_to_fee(student_fee, amount, payment)
        except DatabaseError as exc:
            logger.exception(f"Payment #{payment.pk} recorded but could not be applied to {student_fee}")
            return payment, AllocationResult(success=False, remaining_credit=amount, error=str(exc))
        return payment, AllocationResult(
            success=True,
            allocations=[AllocationLine(fee_id=student_fee.pk, fee_month=student_fee.fee_month, amount=applied)]
            if applied > 0 else [],
            remaining_credit=amount - applied,
        )

    return payment, None


# ----------------------------
# Reversal
# ----------------------------
@transaction.atomic
def reverse_payment(payment: Payment, *, reason: str, reversed_by=None) -> PaymentReversal:
    """
    Undo a payment: take each allocation back off its fee, mark the payment
    reversed with an audit note and record who reversed it and why.
    """
    reason = (reason or "").strip()
    if not reason:
        raise BillingError("A reversal reason is required.")

    payment = Payment.objects.select_for_update().select_related("student").get(pk=payment.pk)
    if payment.status == Payment.Status.REVERSED:
        logger.warning(f"Refused to reverse payment #{payment.pk} twice")
        raise PaymentAlreadyReversed(f"Payment #{payment.pk} has already been reversed.")

    allocations = list(payment.allocations.all())
    fees = {
        f.pk: f
        for f in StudentFee.objects.select_for_update().filter(pk__in=[a.fee_id for a in allocations])
    }

    registration_reopened = False
    for alloc in allocations:
        fee = fees[alloc.fee_id]
        was_paid = fee.is_paid
        fee.reduce(alloc.amount)
        fee.save(update_fields=["amount_paid", "updated_at"])
        if fee.fee_type == StudentFee.REGISTRATION and was_paid and not fee.is_paid:
            registration_reopened = True

    student = payment.student
    if registration_reopened:
        student.registration_fee_paid = False
        student.registration_fee_paid_date = None
        student.save(update_fields=["registration_fee_paid", "registration_fee_paid_date", "updated_at"])

    stamp = timezone.now()
    payment.status = Payment.Status.REVERSED
    payment.notes = f"{payment.notes}\n\n[REVERSED] {stamp.isoformat()}: {reason}".strip()
    payment.save(update_fields=["status", "notes"])

    reversal = PaymentReversal.objects.create(
        original_payment=payment,
        center_id=payment.center_id,
        student=student,
        amount=payment.amount,
        reason=reason,
        reversed_by=reversed_by,
        reversed_at=stamp,
    )
    logger.info(f"Reversed payment #{payment.pk} ({payment.amount}) across {len(allocations)} allocation(s)")
    return reversal


# ----------------------------
# Refunds
# ----------------------------
@transaction.atomic
def refund_payment(
    payment: Payment,
    amount,
    *,
    reason: str,
    reason_notes: str = "",
    processed_by=None,
    withdraw_student: bool = False,
) -> Refund:
    """
    Record money handed back against a payment. Refunds may be partial but
    their total never exceeds the payment amount. Fee balances are left
    alone; with withdraw_student the student is marked withdrawn.
    """
    amount = _positive_amount(amount)
    reason_notes = (reason_notes or "").strip()
    if reason not in Refund.Reason.values:
        raise RefundError(f"Unknown refund reason: {reason!r}")
    if reason == Refund.Reason.OTHER and not reason_notes:
        raise RefundError('Notes are required when the reason is "Other".')

    payment = Payment.objects.select_for_update().select_related("student").get(pk=payment.pk)
    if payment.status == Payment.Status.REVERSED:
        raise RefundError(f"Payment #{payment.pk} has been reversed and cannot be refunded.")

    remaining = payment.refundable_amount
    if amount > remaining:
        if remaining <= 0:
            raise RefundError(f"Payment #{payment.pk} has already been fully refunded.")
        raise RefundError(f"Refund cannot exceed {remaining} (remaining refundable amount).")

    student = payment.student
    refund = Refund.objects.create(
        original_payment=payment,
        center_id=payment.center_id,
        student=student,
        amount=amount,
        reason=reason,
        reason_notes=reason_notes,
        student_status_updated=withdraw_student,
        processed_by=processed_by,
    )

    if withdraw_student and student.status != Student.Status.WITHDRAWN:
        student.status = Student.Status.WITHDRAWN
        student.save(update_fields=["status", "updated_at"])

    logger.info(f"Refunded {amount} of payment #{payment.pk} ({reason}); {remaining - amount} still refundable")
    return refund


# ----------------------------
# Summaries (for UI)
# ----------------------------
@dataclass
class FeeSummary:
    total_due: Decimal
    total_paid: Decimal
    outstanding_balance: Decimal
    fees: list  # list[StudentFee]


def student_fee_summary(student) -> FeeSummary:
    fees = list(StudentFee.objects.filter(student=student).order_by("fee_month", "id"))
    total_due = sum((to_money(f.amount_due) for f in fees), ZERO)
    total_paid = sum((to_money(f.amount_paid) for f in fees), ZERO)
    return FeeSummary(
        total_due=total_due,
        total_paid=total_paid,
        outstanding_balance=total_due - total_paid,
        fees=fees,
    )


def outstanding_fees(center, *, fee_month: date | None = None, fee_type: str | None = None):
    qs = (
        StudentFee.objects
        .select_related("student")
        .filter(center=center)
        .exclude(status=FeeStatus.PAID)
        .order_by("fee_month", "student__full_name", "id")
    )
    if fee_month is not None:
        qs = qs.filter(fee_month=fee_month.replace(day=1))
    if fee_type:
        qs = qs.filter(fee_type=fee_type)
    return qs

from datetime import date
from decimal import Decimal

import pytest
from django.db import DatabaseError

from fees import billing
from fees.billing import (
    allocate_payment,
    apply_payment_to_fee,
    outstanding_fees,
    record_payment,
    reverse_payment,
    student_fee_summary,
)
from fees.exceptions import AllocationError, BillingError, PaymentAlreadyReversed
from fees.models import FeeStatus, Payment, PaymentAllocation, PaymentReversal, StudentFee


# ---------- Targeted single-fee path ----------
def test_manual_payment_is_capped_at_amount_due(student, make_fee):
    fee = make_fee(student, date(2025, 1, 1), 500, amount_paid=400)

    applied = apply_payment_to_fee(fee, Decimal("300"))

    assert applied == Decimal("100.00")
    fee.refresh_from_db()
    assert fee.amount_paid == Decimal("500.00")
    assert fee.status == FeeStatus.PAID


def test_manual_payment_ignores_month_order(student, jan_feb_fees):
    jan, feb = jan_feb_fees

    apply_payment_to_fee(feb, 200)

    jan.refresh_from_db()
    feb.refresh_from_db()
    assert jan.status == FeeStatus.UNPAID
    assert feb.status == FeeStatus.PARTIAL


def test_manual_payment_on_paid_fee_applies_nothing(student, make_fee):
    fee = make_fee(student, date(2025, 1, 1), 500, amount_paid=500)
    assert apply_payment_to_fee(fee, 50) == Decimal("0")


def test_manual_registration_payment_flags_student(student, make_fee):
    fee = make_fee(student, date(2025, 1, 1), 250, fee_type=StudentFee.REGISTRATION)

    apply_payment_to_fee(fee, 250)

    student.refresh_from_db()
    assert student.registration_fee_paid
    assert student.registration_fee_paid_date is not None


# ---------- Recording ----------
def test_record_payment_auto_allocates(center, student, jan_feb_fees, admin_user):
    payment, result = record_payment(
        center, student, "700", payment_method="cash", reference_number=" RCPT-9 ", recorded_by=admin_user,
    )

    assert payment.amount == Decimal("700.00")
    assert payment.reference_number == "RCPT-9"
    assert payment.student_fee is None
    assert payment.recorded_by == admin_user
    assert result.success
    assert len(result.allocations) == 2
    assert PaymentAllocation.objects.filter(payment=payment).count() == 2


def test_record_payment_against_one_fee(center, student, jan_feb_fees):
    jan, feb = jan_feb_fees

    payment, result = record_payment(center, student, 300, auto_allocate=False, student_fee=feb)

    assert payment.student_fee == feb
    assert [line.fee_id for line in result.allocations] == [feb.pk]
    feb.refresh_from_db()
    assert feb.amount_paid == Decimal("300.00")
    assert PaymentAllocation.objects.get(payment=payment).fee == feb


def test_record_payment_rejects_fee_of_other_student(center, student, make_student, make_fee):
    other_fee = make_fee(make_student("Other"), date(2025, 1, 1), 500)

    with pytest.raises(AllocationError):
        record_payment(center, student, 300, auto_allocate=False, student_fee=other_fee)

    assert not Payment.objects.exists()


def test_record_payment_rejects_student_of_other_center(other_center, student):
    with pytest.raises(BillingError):
        record_payment(other_center, student, 300)


def test_record_payment_without_allocation(center, student, jan_feb_fees):
    payment, result = record_payment(center, student, 300, auto_allocate=False)

    assert result is None
    assert payment.unallocated_amount == Decimal("300.00")


def test_payment_is_kept_when_allocation_fails(center, student, jan_feb_fees, monkeypatch):
    def broken(*args, **kwargs):
        raise DatabaseError("connection reset")

    monkeypatch.setattr(billing, "allocate_payment", broken)

    payment, result = record_payment(center, student, 700)

    assert Payment.objects.filter(pk=payment.pk).exists()
    assert not result.success
    assert result.remaining_credit == Decimal("700.00")
    assert "connection reset" in result.error
    for fee in jan_feb_fees:
        fee.refresh_from_db()
        assert fee.amount_paid == Decimal("0")


# ---------- Reversal ----------
def test_reverse_payment_restores_fees(center, student, jan_feb_fees, admin_user):
    jan, feb = jan_feb_fees
    payment, _ = record_payment(center, student, 700)

    reversal = reverse_payment(payment, reason="Cheque bounced", reversed_by=admin_user)

    jan.refresh_from_db()
    feb.refresh_from_db()
    payment.refresh_from_db()
    assert jan.amount_paid == feb.amount_paid == Decimal("0")
    assert jan.status == feb.status == FeeStatus.UNPAID
    assert payment.status == Payment.Status.REVERSED
    assert "[REVERSED]" in payment.notes and "Cheque bounced" in payment.notes
    assert reversal.amount == Decimal("700.00")
    assert reversal.reversed_by == admin_user
    assert PaymentReversal.objects.get(original_payment=payment) == reversal


def test_reverse_keeps_other_payments(center, student, jan_feb_fees):
    jan, feb = jan_feb_fees
    first, _ = record_payment(center, student, 500)
    second, _ = record_payment(center, student, 300)

    reverse_payment(first, reason="Duplicate capture")

    jan.refresh_from_db()
    feb.refresh_from_db()
    assert jan.amount_paid == Decimal("0")
    assert jan.status == FeeStatus.UNPAID
    assert feb.amount_paid == Decimal("300.00")
    assert feb.status == FeeStatus.PARTIAL


def test_cannot_reverse_twice(center, student, jan_feb_fees):
    payment, _ = record_payment(center, student, 200)
    reverse_payment(payment, reason="Wrong student")

    with pytest.raises(PaymentAlreadyReversed):
        reverse_payment(payment, reason="Again")


def test_reversal_needs_a_reason(center, student, jan_feb_fees):
    payment, _ = record_payment(center, student, 200)

    with pytest.raises(BillingError):
        reverse_payment(payment, reason="   ")

    payment.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED


def test_reversing_registration_payment_clears_flag(center, student, make_fee):
    make_fee(student, date(2025, 1, 1), 250, fee_type=StudentFee.REGISTRATION)
    payment, _ = record_payment(center, student, 250)
    student.refresh_from_db()
    assert student.registration_fee_paid

    reverse_payment(payment, reason="Refunded")

    student.refresh_from_db()
    assert not student.registration_fee_paid
    assert student.registration_fee_paid_date is None


def test_reversed_payment_cannot_be_allocated(center, student, jan_feb_fees):
    payment, _ = record_payment(center, student, 200, auto_allocate=False)
    reverse_payment(payment, reason="Void")

    with pytest.raises(AllocationError):
        allocate_payment(center, student, 100, payment)


# ---------- Summaries ----------
def test_student_fee_summary(center, student, jan_feb_fees):
    allocate_payment(center, student, 700)

    summary = student_fee_summary(student)

    assert summary.total_due == Decimal("1000.00")
    assert summary.total_paid == Decimal("700.00")
    assert summary.outstanding_balance == Decimal("300.00")
    assert [f.fee_month for f in summary.fees] == [date(2025, 1, 1), date(2025, 2, 1)]


def test_outstanding_fees_filters(center, student, make_student, make_fee):
    make_fee(student, date(2025, 1, 1), 500, amount_paid=500)
    feb = make_fee(student, date(2025, 2, 1), 500, amount_paid=100)
    reg = make_fee(student, date(2025, 2, 1), 250, fee_type=StudentFee.REGISTRATION)
    other = make_fee(make_student("Zanele"), date(2025, 3, 1), 300)

    assert list(outstanding_fees(center)) == [feb, reg, other]
    assert set(outstanding_fees(center, fee_month=date(2025, 2, 20))) == {feb, reg}
    assert list(outstanding_fees(center, fee_type=StudentFee.REGISTRATION)) == [reg]


def test_failed_fee_write_rolls_back_whole_allocation(center, student, jan_feb_fees, monkeypatch):
    jan, feb = jan_feb_fees
    original_save = StudentFee.save
    saves = {"n": 0}

    def save_then_fail(self, *args, **kwargs):
        saves["n"] += 1
        if saves["n"] == 2:
            raise DatabaseError("disk full")
        return original_save(self, *args, **kwargs)

    monkeypatch.setattr(StudentFee, "save", save_then_fail)

    payment, result = record_payment(center, student, 700)

    assert saves["n"] == 2
    assert not result.success
    assert Payment.objects.filter(pk=payment.pk).exists()
    # January was written before February failed; both are undone
    jan.refresh_from_db()
    feb.refresh_from_db()
    assert jan.amount_paid == Decimal("0")
    assert jan.status == FeeStatus.UNPAID
    assert feb.amount_paid == Decimal("0")
    assert not PaymentAllocation.objects.exists()
    assert payment.unallocated_amount == Decimal("700.00")

from decimal import Decimal

import pytest
from django.urls import reverse

from fees.billing import record_payment, refund_payment, reverse_payment
from fees.exceptions import InvalidAmountError, RefundError
from fees.models import Payment, Refund, Student


@pytest.fixture
def payment(center, student, jan_feb_fees):
    payment, _ = record_payment(center, student, 700)
    return payment


def test_partial_refunds_up_to_payment_amount(payment, admin_user):
    first = refund_payment(payment, 300, reason=Refund.Reason.OVERPAYMENT, processed_by=admin_user)
    second = refund_payment(payment, "400", reason=Refund.Reason.DUPLICATE)

    assert first.amount == Decimal("300.00")
    assert first.processed_by == admin_user
    assert second.student == payment.student
    assert payment.refunded_amount == Decimal("700.00")
    assert payment.refundable_amount == Decimal("0")


def test_refund_cannot_exceed_remaining(payment):
    refund_payment(payment, 500, reason=Refund.Reason.OVERPAYMENT)

    with pytest.raises(RefundError, match="cannot exceed 200.00"):
        refund_payment(payment, 250, reason=Refund.Reason.OVERPAYMENT)

    assert Refund.objects.count() == 1


def test_fully_refunded_payment_is_rejected(payment):
    refund_payment(payment, 700, reason=Refund.Reason.WITHDRAWAL)

    with pytest.raises(RefundError, match="already been fully refunded"):
        refund_payment(payment, 1, reason=Refund.Reason.WITHDRAWAL)


def test_refund_leaves_fee_ledger_alone(payment, jan_feb_fees):
    refund_payment(payment, 200, reason=Refund.Reason.SERVICE_ISSUE)

    jan, feb = jan_feb_fees
    jan.refresh_from_db()
    feb.refresh_from_db()
    assert jan.amount_paid == Decimal("500.00")
    assert feb.amount_paid == Decimal("200.00")
    payment.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED


def test_refund_can_withdraw_student(payment, student):
    refund = refund_payment(payment, 700, reason=Refund.Reason.WITHDRAWAL, withdraw_student=True)

    student.refresh_from_db()
    assert student.status == Student.Status.WITHDRAWN
    assert refund.student_status_updated


def test_refund_keeps_student_status_by_default(payment, student):
    refund_payment(payment, 100, reason=Refund.Reason.OVERPAYMENT)

    student.refresh_from_db()
    assert student.status == Student.Status.ACTIVE


def test_other_reason_needs_notes(payment):
    with pytest.raises(RefundError):
        refund_payment(payment, 100, reason=Refund.Reason.OTHER, reason_notes="  ")

    refund = refund_payment(payment, 100, reason=Refund.Reason.OTHER, reason_notes="Moved city")
    assert refund.reason_notes == "Moved city"


def test_unknown_reason_is_rejected(payment):
    with pytest.raises(RefundError):
        refund_payment(payment, 100, reason="because")


@pytest.mark.parametrize("amount", [0, "-5", "NaN"])
def test_refund_amount_must_be_positive(payment, amount):
    with pytest.raises(InvalidAmountError):
        refund_payment(payment, amount, reason=Refund.Reason.OVERPAYMENT)


def test_reversed_payment_cannot_be_refunded(payment):
    reverse_payment(payment, reason="Cheque bounced")

    with pytest.raises(RefundError):
        refund_payment(payment, 100, reason=Refund.Reason.OVERPAYMENT)


# ---------- Endpoints ----------
def test_refund_view(admin_client, admin_user, payment, student):
    response = admin_client.post(
        reverse("fees:refund-payment", args=[payment.pk]),
        {"amount": "700", "reason": "withdrawal", "withdraw_student": "on"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["refund"]["amount"] == "700.00"
    assert body["refund"]["student_status_updated"] is True
    assert Refund.objects.get().processed_by == admin_user
    student.refresh_from_db()
    assert student.status == Student.Status.WITHDRAWN


def test_refund_view_over_limit(admin_client, payment):
    url = reverse("fees:refund-payment", args=[payment.pk])

    response = admin_client.post(url, {"amount": "800", "reason": "overpayment"})

    assert response.status_code == 400
    assert "remaining refundable" in response.json()["error"]


def test_refund_view_other_requires_notes(admin_client, payment):
    response = admin_client.post(
        reverse("fees:refund-payment", args=[payment.pk]), {"amount": "50", "reason": "other"},
    )

    assert response.status_code == 400
    assert "reason_notes" in response.json()["errors"]


def test_refunds_list_view(admin_client, center, payment, make_student):
    refund_payment(payment, 100, reason=Refund.Reason.OVERPAYMENT)
    url = reverse("fees:refunds", args=[center.slug])

    body = admin_client.get(url).json()
    assert body["count"] == 1
    assert body["refunds"][0]["payment_id"] == payment.pk

    other = make_student("No Refunds")
    assert admin_client.get(url, {"student": other.pk}).json()["count"] == 0
    assert admin_client.get(url, {"student": "x"}).status_code == 400

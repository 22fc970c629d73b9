from datetime import date
from decimal import Decimal

import pytest
from django.urls import reverse

from fees.billing import record_payment
from fees.models import Payment, PaymentReversal, StudentFee


@pytest.fixture
def maths_student(make_subject, make_student):
    return make_student("Naledi Khumalo", make_subject("Mathematics", 300))


def test_views_require_staff(client, center):
    response = client.post(reverse("fees:generate", args=[center.slug]), {"year": 2025, "months": ["0"]})

    assert response.status_code == 302
    assert not StudentFee.objects.exists()


def test_generate_view(admin_client, center, maths_student):
    url = reverse("fees:generate", args=[center.slug])

    response = admin_client.post(url, {"year": 2025, "months": ["0", "1"]})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["fees_generated"] == 2
    assert body["students_processed"] == 1

    again = admin_client.post(url, {"year": 2025, "months": ["0", "1"]}).json()
    assert again["fees_generated"] == 0
    assert again["message"] == "All fees already exist for the selected months."


def test_generate_view_rejects_blocked_month(admin_client, other_center):
    response = admin_client.post(reverse("fees:generate", args=[other_center.slug]), {"year": 2025, "months": ["0"]})

    assert response.status_code == 400
    assert "months" in response.json()["errors"]


def test_generate_view_is_post_only(admin_client, center):
    assert admin_client.get(reverse("fees:generate", args=[center.slug])).status_code == 405


def test_record_payment_view(admin_client, admin_user, center, student, jan_feb_fees):
    response = admin_client.post(
        reverse("fees:record-payment", args=[center.slug]),
        {"student": student.pk, "amount": "1200", "payment_method": "eft"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["allocation"]["remaining_credit"] == "200.00"
    assert len(body["allocation"]["allocations"]) == 2
    assert body["message"] == "Payment allocated to 2 fees (oldest first). R 200.00 credit remaining."
    payment = Payment.objects.get(pk=body["payment_id"])
    assert payment.recorded_by == admin_user


def test_record_payment_view_manual(admin_client, center, student, jan_feb_fees):
    jan, feb = jan_feb_fees

    response = admin_client.post(
        reverse("fees:record-payment", args=[center.slug]),
        {"student": student.pk, "amount": "100", "allocation": "manual", "student_fee": feb.pk},
    )

    assert response.status_code == 201
    assert response.json()["message"] == "Payment allocated to 1 fee."
    feb.refresh_from_db()
    jan.refresh_from_db()
    assert feb.amount_paid == Decimal("100.00")
    assert jan.amount_paid == Decimal("0")


def test_record_payment_view_invalid(admin_client, center, student):
    response = admin_client.post(reverse("fees:record-payment", args=[center.slug]), {"student": student.pk})

    assert response.status_code == 400
    assert response.json()["ok"] is False
    assert not Payment.objects.exists()


def test_reverse_payment_view(admin_client, center, student, jan_feb_fees):
    payment, _ = record_payment(center, student, 500)
    url = reverse("fees:reverse-payment", args=[payment.pk])

    response = admin_client.post(url, {"reason": "Cheque bounced"})

    assert response.status_code == 200
    assert PaymentReversal.objects.filter(original_payment=payment).exists()
    assert admin_client.post(url, {"reason": "Again"}).status_code == 409


def test_reverse_payment_view_needs_reason(admin_client, center, student, jan_feb_fees):
    payment, _ = record_payment(center, student, 500)

    response = admin_client.post(reverse("fees:reverse-payment", args=[payment.pk]), {"reason": ""})

    assert response.status_code == 400
    payment.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED


def test_student_fees_view(admin_client, center, student, jan_feb_fees):
    record_payment(center, student, 700)

    body = admin_client.get(reverse("fees:student-fees", args=[student.pk])).json()

    assert body["total_due"] == "1000.00"
    assert body["total_paid"] == "700.00"
    assert body["outstanding_balance"] == "300.00"
    assert [row["status"] for row in body["fees"]] == ["paid", "partial"]


def test_outstanding_fees_view(admin_client, center, student, jan_feb_fees):
    url = reverse("fees:outstanding", args=[center.slug])

    assert admin_client.get(url).json()["count"] == 2
    body = admin_client.get(url, {"month": "2025-02"}).json()
    assert [row["fee_month"] for row in body["fees"]] == [date(2025, 2, 1).isoformat()]
    assert admin_client.get(url, {"month": "Feb 2025"}).status_code == 400


def test_unknown_center_is_404(admin_client, db):
    assert admin_client.get(reverse("fees:outstanding", args=["nowhere"])).status_code == 404

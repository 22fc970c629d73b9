from datetime import date
from decimal import Decimal

import pytest

from fees.models import Student, StudentFee, StudentSubject, Subject, TutorialCenter


@pytest.fixture
def center(db):
    return TutorialCenter.objects.create(name="Sunrise Tutoring", slug="sunrise", payment_months=list(range(12)))


@pytest.fixture
def other_center(db):
    return TutorialCenter.objects.create(name="Hillside Academy", slug="hillside")


@pytest.fixture
def make_subject(center):
    def _make(name, monthly_fee, *, center=center, is_active=True):
        return Subject.objects.create(
            center=center, name=name, monthly_fee=Decimal(str(monthly_fee)), is_active=is_active,
        )
    return _make


@pytest.fixture
def make_student(center):
    def _make(full_name, *subjects, center=center, **extra):
        student = Student.objects.create(center=center, full_name=full_name, **extra)
        for subject in subjects:
            StudentSubject.objects.create(student=student, subject=subject)
        return student
    return _make


@pytest.fixture
def make_fee():
    def _make(student, fee_month: date, amount_due, *, fee_type=StudentFee.TUITION, amount_paid=0):
        return StudentFee.objects.create(
            center=student.center,
            student=student,
            fee_month=fee_month,
            fee_type=fee_type,
            amount_due=Decimal(str(amount_due)),
            amount_paid=Decimal(str(amount_paid)),
            due_date=fee_month.replace(day=7),
        )
    return _make


@pytest.fixture
def student(make_student):
    return make_student("Lerato Dlamini", student_number="SUN-001")


@pytest.fixture
def jan_feb_fees(student, make_fee):
    """Two unpaid R500 tuition fees, Jan and Feb 2025."""
    return (
        make_fee(student, date(2025, 1, 1), 500),
        make_fee(student, date(2025, 2, 1), 500),
    )

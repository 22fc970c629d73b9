# fees/services/generation.py
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Iterator

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Q, Sum
from django.utils import timezone

from ..exceptions import FeeGenerationError
from ..models import FeeStatus, Student, StudentFee, ZERO, to_money

logger = logging.getLogger(__name__)


@dataclass
class FeeGenerationResult:
    students_processed: int
    fees_generated: int


# ----------------------------
# Month helpers
# ----------------------------
def _next_year_month(y: int, m: int) -> tuple[int, int]:
    if m == 12:
        return (y + 1, 1)
    return (y, m + 1)


def first_of_month(year: int, month_index: int) -> date:
    """month_index is 0-based (0 = January)."""
    if not 0 <= month_index <= 11:
        raise ValueError(f"Month index must be between 0 and 11, got {month_index}")
    return date(year, month_index + 1, 1)


def due_date_for(fee_month: date) -> date:
    due_day = int(getattr(settings, "FEES_DUE_DAY", 7))
    last_day = calendar.monthrange(fee_month.year, fee_month.month)[1]
    return fee_month.replace(day=min(max(due_day, 1), last_day))


def iter_month_range(start: date, end: date) -> Iterator[date]:
    """Yield the first day of every month from start to end, inclusive."""
    y, m = start.year, start.month
    while (y < end.year) or (y == end.year and m <= end.month):
        yield date(y, m, 1)
        y, m = _next_year_month(y, m)


def _batch_size(override: int | None) -> int:
    size = override or int(getattr(settings, "FEES_GENERATION_BATCH_SIZE", 100))
    if size <= 0:
        raise ValueError("Batch size must be positive")
    return size


def eligible_students(center):
    """Active students of the center with a positive monthly tuition, annotated as `monthly_fee`."""
    active_enrollment = Q(enrollments__is_active=True, enrollments__subject__is_active=True)
    return (
        Student.objects
        .filter(center=center, status=Student.Status.ACTIVE)
        .annotate(monthly_fee=Sum("enrollments__subject__monthly_fee", filter=active_enrollment))
        .filter(monthly_fee__gt=0)
        .order_by("id")
    )


# ----------------------------
# Bulk generation (whole center)
# ----------------------------
def generate_fees(center, year: int, months: Iterable[int], *, batch_size: int | None = None) -> FeeGenerationResult:
    """
    Create one tuition fee per eligible student per requested month.

    Existing (student, fee_month) tuition rows are skipped, so re-running with
    the same arguments creates nothing new. Rows go in with bulk_create, one
    transaction per batch; a failing batch stops the run and earlier batches
    stay committed.
    """
    month_indices = sorted(set(months))
    fee_months = [first_of_month(year, i) for i in month_indices]
    size = _batch_size(batch_size)

    if not fee_months:
        return FeeGenerationResult(students_processed=0, fees_generated=0)

    students = list(eligible_students(center))
    if not students:
        logger.info(f"No eligible students in {center} for {year}; nothing to generate")
        return FeeGenerationResult(students_processed=0, fees_generated=0)

    existing = set(
        StudentFee.objects
        .filter(center=center, fee_type=StudentFee.TUITION, fee_month__year=year)
        .values_list("student_id", "fee_month")
    )

    staged: list[StudentFee] = []
    for student in students:
        amount = to_money(student.monthly_fee)
        for fee_month in fee_months:
            if (student.id, fee_month) in existing:
                continue
            staged.append(StudentFee(
                center=center,
                student=student,
                fee_month=fee_month,
                fee_type=StudentFee.TUITION,
                amount_due=amount,
                amount_paid=ZERO,
                status=FeeStatus.UNPAID,
                due_date=due_date_for(fee_month),
            ))

    created = 0
    for start in range(0, len(staged), size):
        batch = staged[start:start + size]
        try:
            with transaction.atomic():
                StudentFee.objects.bulk_create(batch)
        except DatabaseError as exc:
            logger.exception(
                f"Fee generation for {center} {year} failed after {created} fee(s); batch of {len(batch)} rejected"
            )
            raise FeeGenerationError(
                f"Failed to insert fee batch: {exc}",
                fees_generated=created,
                students_processed=len(students),
            ) from exc
        created += len(batch)

    logger.info(
        f"Generated {created} tuition fee(s) for {len(students)} student(s) in {center} "
        f"({year}, months {month_indices})"
    )
    return FeeGenerationResult(students_processed=len(students), fees_generated=created)


# ----------------------------
# Single student
# ----------------------------
@transaction.atomic
def generate_fees_for_student(student, start_month: date, end_month: date) -> int:
    """
    Ensure a tuition fee exists for every month in [start_month, end_month].
    Returns count created. Students without active subjects get nothing.
    """
    amount = student.monthly_tuition()
    if amount <= 0:
        return 0

    months = list(iter_month_range(start_month, end_month))
    if not months:
        return 0

    existing = set(
        StudentFee.objects
        .filter(student=student, fee_type=StudentFee.TUITION, fee_month__in=months)
        .values_list("fee_month", flat=True)
    )
    rows = [
        StudentFee(
            center_id=student.center_id,
            student=student,
            fee_month=m,
            fee_type=StudentFee.TUITION,
            amount_due=amount,
            amount_paid=ZERO,
            status=FeeStatus.UNPAID,
            due_date=due_date_for(m),
        )
        for m in months
        if m not in existing
    ]
    StudentFee.objects.bulk_create(rows)
    if rows:
        logger.info(f"Generated {len(rows)} tuition fee(s) for {student}")
    return len(rows)


def create_registration_fee(student, amount=None, *, on: date | None = None) -> StudentFee | None:
    """
    Create the one-off registration fee for the month the student registered.
    Amount falls back to the student's registration fee, then the center default.
    Returns None when the amount is zero or the fee already exists.
    """
    if amount is None:
        amount = student.registration_fee_amount or student.center.default_registration_fee
    amount = to_money(amount)
    if amount <= Decimal("0"):
        return None

    day = on or student.registration_date or timezone.localdate()
    fee, created = StudentFee.objects.get_or_create(
        student=student,
        fee_month=day.replace(day=1),
        fee_type=StudentFee.REGISTRATION,
        defaults={
            "center_id": student.center_id,
            "amount_due": amount,
            "amount_paid": ZERO,
            "due_date": day,
        },
    )
    return fee if created else None

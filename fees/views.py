# fees/views.py
from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.contrib.admin.views.decorators import staff_member_required
from django.http import HttpRequest, JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from .billing import outstanding_fees, record_payment, refund_payment, reverse_payment, student_fee_summary
from .exceptions import BillingError, FeeGenerationError, PaymentAlreadyReversed, RefundError
from .forms import GenerateFeesForm, RecordPaymentForm, RefundForm, ReversePaymentForm
from .models import Payment, Refund, Student, TutorialCenter
from .services.generation import generate_fees


# --------------------------------------------------------------------------------------
# Small helpers
# --------------------------------------------------------------------------------------
def _json_bad(msg, code=400, **k) -> JsonResponse:
    return JsonResponse({"ok": False, "error": msg, **k}, status=code)


def _json_ok(**k) -> JsonResponse:
    return JsonResponse({"ok": True, **k})


def _form_errors(form) -> dict:
    return {name: [str(e) for e in errs] for name, errs in form.errors.items()}


def _money(value) -> str:
    symbol = getattr(settings, "FEES_CURRENCY_SYMBOL", "R")
    return f"{symbol} {value:.2f}"


def _fee_row(fee) -> dict:
    return {
        "id": fee.pk,
        "student_id": fee.student_id,
        "fee_month": fee.fee_month.isoformat(),
        "fee_type": fee.fee_type,
        "amount_due": str(fee.amount_due),
        "amount_paid": str(fee.amount_paid),
        "balance": str(fee.balance),
        "status": fee.status,
        "due_date": fee.due_date.isoformat() if fee.due_date else None,
    }


def allocation_message(result, *, oldest_first=True) -> str:
    """Short human summary of an allocation, e.g. for a toast."""
    if not result.success:
        return "Payment recorded but allocation failed; reconcile manually."
    parts = []
    count = len(result.allocations)
    if count:
        order = " (oldest first)" if oldest_first else ""
        parts.append(f"Payment allocated to {count} fee{'s' if count != 1 else ''}{order}.")
    if result.remaining_credit > 0:
        parts.append(f"{_money(result.remaining_credit)} credit remaining.")
    return " ".join(parts) or "Payment recorded."


# --------------------------------------------------------------------------------------
# Generation
# --------------------------------------------------------------------------------------
@staff_member_required
@require_POST
def generate_fees_view(request: HttpRequest, center_slug: str):
    center = get_object_or_404(TutorialCenter, slug=center_slug)
    form = GenerateFeesForm(request.POST, center=center)
    if not form.is_valid():
        return _json_bad("Invalid request.", errors=_form_errors(form))

    try:
        result = generate_fees(center, form.cleaned_data["year"], form.cleaned_data["months"])
    except FeeGenerationError as exc:
        return _json_bad(
            "Failed to generate fees.",
            code=500,
            fees_generated=exc.fees_generated,
            students_processed=exc.students_processed,
        )

    return _json_ok(
        students_processed=result.students_processed,
        fees_generated=result.fees_generated,
        message=(
            f"Generated {result.fees_generated} fee record(s) for {result.students_processed} student(s)."
            if result.fees_generated else "All fees already exist for the selected months."
        ),
    )


# --------------------------------------------------------------------------------------
# Payments
# --------------------------------------------------------------------------------------
@staff_member_required
@require_POST
def record_payment_view(request: HttpRequest, center_slug: str):
    center = get_object_or_404(TutorialCenter, slug=center_slug)
    form = RecordPaymentForm(request.POST, center=center)
    if not form.is_valid():
        return _json_bad("Invalid request.", errors=_form_errors(form))

    data = form.cleaned_data
    try:
        payment, result = record_payment(
            center,
            data["student"],
            data["amount"],
            auto_allocate=form.auto_allocate,
            student_fee=data.get("student_fee"),
            payment_method=data.get("payment_method", ""),
            reference_number=data.get("reference_number", ""),
            notes=data.get("notes", ""),
            recorded_by=request.user,
        )
    except BillingError as exc:
        return _json_bad(str(exc))

    if result is None:
        return _json_ok(payment_id=payment.pk, allocation=None, message="Payment recorded.")
    if not result.success:
        return _json_bad(allocation_message(result), code=500, payment_id=payment.pk)
    return JsonResponse(
        {
            "ok": True,
            "payment_id": payment.pk,
            "allocation": result.as_dict(),
            "message": allocation_message(result, oldest_first=form.auto_allocate),
        },
        status=201,
    )


@staff_member_required
@require_POST
def reverse_payment_view(request: HttpRequest, payment_id: int):
    payment = get_object_or_404(Payment, pk=payment_id)
    form = ReversePaymentForm(request.POST)
    if not form.is_valid():
        return _json_bad("Reversal reason is required.", errors=_form_errors(form))

    try:
        reversal = reverse_payment(payment, reason=form.cleaned_data["reason"], reversed_by=request.user)
    except PaymentAlreadyReversed as exc:
        return _json_bad(str(exc), code=409)

    return _json_ok(payment_id=payment.pk, reversal_id=reversal.pk, message="Payment reversed successfully.")


def _refund_row(refund) -> dict:
    return {
        "id": refund.pk,
        "payment_id": refund.original_payment_id,
        "student_id": refund.student_id,
        "amount": str(refund.amount),
        "reason": refund.reason,
        "reason_notes": refund.reason_notes,
        "student_status_updated": refund.student_status_updated,
        "refund_date": refund.refund_date.isoformat(),
    }


@staff_member_required
@require_POST
def refund_payment_view(request: HttpRequest, payment_id: int):
    payment = get_object_or_404(Payment, pk=payment_id)
    form = RefundForm(request.POST)
    if not form.is_valid():
        return _json_bad("Invalid request.", errors=_form_errors(form))

    data = form.cleaned_data
    try:
        refund = refund_payment(
            payment,
            data["amount"],
            reason=data["reason"],
            reason_notes=data.get("reason_notes", ""),
            processed_by=request.user,
            withdraw_student=data.get("withdraw_student", False),
        )
    except RefundError as exc:
        return _json_bad(str(exc))

    return JsonResponse(
        {"ok": True, "refund": _refund_row(refund), "message": "Refund processed successfully."},
        status=201,
    )


# --------------------------------------------------------------------------------------
# Read APIs
# --------------------------------------------------------------------------------------
@staff_member_required
@require_GET
def student_fees_view(request: HttpRequest, student_id: int):
    student = get_object_or_404(Student, pk=student_id)
    summary = student_fee_summary(student)
    return _json_ok(
        student_id=student.pk,
        total_due=str(summary.total_due),
        total_paid=str(summary.total_paid),
        outstanding_balance=str(summary.outstanding_balance),
        registration_fee_paid=student.registration_fee_paid,
        fees=[_fee_row(f) for f in summary.fees],
    )


@staff_member_required
@require_GET
def outstanding_fees_view(request: HttpRequest, center_slug: str):
    """?month=YYYY-MM&fee_type=tuition"""
    center = get_object_or_404(TutorialCenter, slug=center_slug)
    month = None
    raw_month = (request.GET.get("month") or "").strip()
    if raw_month:
        try:
            month = datetime.strptime(raw_month, "%Y-%m").date()
        except ValueError:
            return _json_bad("month must look like YYYY-MM.")

    fees = outstanding_fees(center, fee_month=month, fee_type=(request.GET.get("fee_type") or "").strip() or None)
    rows = [_fee_row(f) for f in fees]
    return _json_ok(count=len(rows), fees=rows)


@staff_member_required
@require_GET
def refunds_view(request: HttpRequest, center_slug: str):
    """?student=<id>"""
    center = get_object_or_404(TutorialCenter, slug=center_slug)
    refunds = Refund.objects.filter(center=center)
    student_id = (request.GET.get("student") or "").strip()
    if student_id:
        if not student_id.isdigit():
            return _json_bad("student must be an id.")
        refunds = refunds.filter(student_id=int(student_id))
    rows = [_refund_row(r) for r in refunds]
    return _json_ok(count=len(rows), refunds=rows)

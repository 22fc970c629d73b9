# fees/admin.py
from django.contrib import admin, messages
from django.db.models import F, Sum
from django.utils import timezone

from .billing import reverse_payment
from .exceptions import BillingError, FeeGenerationError
from .models import (
    Payment, PaymentAllocation, PaymentReversal, Refund, Student, StudentFee, StudentSubject, Subject,
    TutorialCenter,
)
from .services.generation import generate_fees


# -------------------------------------------------------------------
# Tenants & subjects
# -------------------------------------------------------------------
@admin.action(description="Generate tuition fees for the current month")
def generate_current_month_fees(modeladmin, request, queryset):
    today = timezone.localdate()
    index = today.month - 1
    for center in queryset:
        if not center.allows_month(index):
            modeladmin.message_user(
                request, f"{center}: {today:%B} is not a payment month; skipped.", level=messages.WARNING,
            )
            continue
        try:
            result = generate_fees(center, today.year, [index])
        except FeeGenerationError as exc:
            modeladmin.message_user(
                request,
                f"{center}: generation failed after {exc.fees_generated} fee(s): {exc}",
                level=messages.ERROR,
            )
            continue
        modeladmin.message_user(
            request,
            f"{center}: generated {result.fees_generated} fee(s) for {result.students_processed} student(s).",
        )


@admin.register(TutorialCenter)
class TutorialCenterAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "status", "payment_months", "default_registration_fee", "created_at")
    list_filter = ("status",)
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
    actions = [generate_current_month_fees]


@admin.register(Subject)
class SubjectAdmin(admin.ModelAdmin):
    list_display = ("name", "center", "code", "monthly_fee", "is_active")
    list_filter = ("center", "is_active")
    search_fields = ("name", "code")


# -------------------------------------------------------------------
# Students
# -------------------------------------------------------------------
class StudentSubjectInline(admin.TabularInline):
    model = StudentSubject
    extra = 0
    fields = ("subject", "enrolled_date", "is_active")
    autocomplete_fields = ("subject",)


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = (
        "full_name", "student_number", "center", "status",
        "monthly_tuition_display", "registration_fee_paid",
    )
    list_filter = ("center", "status", "registration_fee_paid")
    search_fields = ("full_name", "student_number", "email", "phone")
    readonly_fields = ("registration_fee_paid", "registration_fee_paid_date", "created_at", "updated_at")
    inlines = [StudentSubjectInline]

    @admin.display(description="Monthly tuition")
    def monthly_tuition_display(self, obj):
        return obj.monthly_tuition()


# -------------------------------------------------------------------
# Fee ledger
# -------------------------------------------------------------------
@admin.register(StudentFee)
class StudentFeeAdmin(admin.ModelAdmin):
    list_display = (
        "student", "fee_type", "fee_month", "amount_due",
        "amount_paid", "balance", "status", "due_date",
    )
    list_filter = ("center", "status", "fee_type", "fee_month")
    search_fields = ("student__full_name", "student__student_number")
    autocomplete_fields = ("student",)
    readonly_fields = ("amount_paid", "status", "created_at", "updated_at")
    date_hierarchy = "fee_month"
    ordering = ("-fee_month", "student__full_name")
    change_list_template = "admin/fees/studentfee/change_list.html"

    @admin.display(description="Balance")
    def balance(self, obj):
        return obj.balance

    def changelist_view(self, request, extra_context=None):
        extra_context = extra_context or {}
        start = timezone.localdate().replace(day=1)
        agg = StudentFee.objects.filter(fee_month=start).aggregate(
            billed=Sum("amount_due"),
            paid=Sum("amount_paid"),
            balance=Sum(F("amount_due") - F("amount_paid")),
        )
        extra_context["month_fee_summary"] = {
            "label": f"{start:%b %Y}",
            "billed": agg.get("billed") or 0,
            "paid": agg.get("paid") or 0,
            "balance": agg.get("balance") or 0,
        }
        return super().changelist_view(request, extra_context=extra_context)


# -------------------------------------------------------------------
# Payments
# -------------------------------------------------------------------
class PaymentAllocationInline(admin.TabularInline):
    model = PaymentAllocation
    extra = 0
    fields = ("fee", "amount", "created_at")
    readonly_fields = ("fee", "amount", "created_at")
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.action(description="Reverse selected payments")
def reverse_selected_payments(modeladmin, request, queryset):
    done = 0
    for payment in queryset.filter(status=Payment.Status.COMPLETED):
        try:
            reverse_payment(payment, reason=f"Reversed from admin by {request.user}", reversed_by=request.user)
        except BillingError as exc:
            modeladmin.message_user(request, f"Payment #{payment.pk}: {exc}", level=messages.ERROR)
            continue
        done += 1
    modeladmin.message_user(request, f"Reversed {done} payment(s).")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("student", "amount", "payment_method", "reference_number", "status", "payment_date", "recorded_by")
    list_filter = ("center", "status", "payment_method", "payment_date")
    search_fields = ("student__full_name", "reference_number")
    autocomplete_fields = ("student",)
    readonly_fields = ("status", "recorded_by", "created_at")
    inlines = [PaymentAllocationInline]
    actions = [reverse_selected_payments]
    ordering = ("-payment_date", "-id")


@admin.register(PaymentReversal)
class PaymentReversalAdmin(admin.ModelAdmin):
    list_display = ("original_payment", "student", "amount", "reversed_by", "reversed_at")
    list_filter = ("center", "reversed_at")
    search_fields = ("student__full_name", "reason")
    readonly_fields = ("original_payment", "center", "student", "amount", "reason", "reversed_by", "reversed_at")

    def has_add_permission(self, request):
        return False


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = ("original_payment", "student", "amount", "reason", "student_status_updated", "refund_date")
    list_filter = ("center", "reason", "student_status_updated")
    search_fields = ("student__full_name", "reason_notes")
    readonly_fields = (
        "original_payment", "center", "student", "amount", "reason", "reason_notes",
        "student_status_updated", "processed_by", "refund_date",
    )

    def has_add_permission(self, request):
        return False

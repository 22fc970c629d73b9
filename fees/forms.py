# fees/forms.py
import calendar
from decimal import Decimal

from django import forms
from django.utils import timezone

from .models import Refund, Student, StudentFee

MONTH_CHOICES = [(i, calendar.month_name[i + 1]) for i in range(12)]


class GenerateFeesForm(forms.Form):
    """
    Bulk tuition generation for one center.
    Only the center's configured payment months may be selected.
    """
    year = forms.IntegerField(min_value=2000, max_value=2100)
    months = forms.TypedMultipleChoiceField(choices=MONTH_CHOICES, coerce=int)

    def __init__(self, *args, center=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.center = center
        if not self.is_bound:
            self.fields["year"].initial = timezone.localdate().year

    def clean_months(self):
        months = sorted(set(self.cleaned_data.get("months") or []))
        allowed = set(self.center.payment_months or []) if self.center else set(range(12))
        blocked = [calendar.month_name[m + 1] for m in months if m not in allowed]
        if blocked:
            raise forms.ValidationError(f"Not a payment month for this center: {', '.join(blocked)}.")
        return months


class RecordPaymentForm(forms.Form):
    AUTO = "auto"
    MANUAL = "manual"

    student = forms.ModelChoiceField(queryset=Student.objects.none())
    amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    allocation = forms.ChoiceField(
        choices=[(AUTO, "Oldest fees first (recommended)"), (MANUAL, "Selected fee only")],
        required=False,
    )
    student_fee = forms.ModelChoiceField(queryset=StudentFee.objects.none(), required=False)
    payment_method = forms.CharField(max_length=40, required=False)
    reference_number = forms.CharField(max_length=120, required=False)
    notes = forms.CharField(widget=forms.Textarea(attrs={"rows": 2}), required=False)

    def __init__(self, *args, center=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.center = center
        if center is not None:
            self.fields["student"].queryset = Student.objects.filter(center=center)
            self.fields["student_fee"].queryset = StudentFee.objects.filter(center=center)

    def clean_allocation(self):
        return self.cleaned_data.get("allocation") or self.AUTO

    def clean(self):
        cleaned = super().clean()
        student = cleaned.get("student")
        fee = cleaned.get("student_fee")
        if cleaned.get("allocation") == self.MANUAL:
            if fee is None:
                self.add_error("student_fee", "Choose the fee this payment is for.")
            elif student is not None and fee.student_id != student.pk:
                self.add_error("student_fee", "That fee belongs to a different student.")
        return cleaned

    @property
    def auto_allocate(self) -> bool:
        return self.cleaned_data.get("allocation", self.AUTO) == self.AUTO


class ReversePaymentForm(forms.Form):
    reason = forms.CharField(widget=forms.Textarea(attrs={"rows": 3}))

    def clean_reason(self):
        reason = (self.cleaned_data.get("reason") or "").strip()
        if not reason:
            raise forms.ValidationError("Say why this payment is being reversed.")
        return reason


class RefundForm(forms.Form):
    amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    reason = forms.ChoiceField(choices=Refund.Reason.choices)
    reason_notes = forms.CharField(widget=forms.Textarea(attrs={"rows": 2}), required=False)
    withdraw_student = forms.BooleanField(required=False, label="Mark student as withdrawn")

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("reason") == Refund.Reason.OTHER and not cleaned.get("reason_notes"):
            self.add_error("reason_notes", 'Notes are required when the reason is "Other".')
        return cleaned

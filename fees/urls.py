# fees/urls.py
from django.urls import path

from . import views

app_name = "fees"

urlpatterns = [
    path("centers/<slug:center_slug>/fees/generate/", views.generate_fees_view, name="generate"),
    path("centers/<slug:center_slug>/fees/outstanding/", views.outstanding_fees_view, name="outstanding"),
    path("centers/<slug:center_slug>/payments/", views.record_payment_view, name="record-payment"),
    path("payments/<int:payment_id>/reverse/", views.reverse_payment_view, name="reverse-payment"),
    path("payments/<int:payment_id>/refunds/", views.refund_payment_view, name="refund-payment"),
    path("centers/<slug:center_slug>/refunds/", views.refunds_view, name="refunds"),
    path("students/<int:student_id>/fees/", views.student_fees_view, name="student-fees"),
]

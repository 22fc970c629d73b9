# fees/signals.py
from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

from .models import Student
from .services.generation import create_registration_fee

# Sent after a successful allocation commits.
# kwargs: payment (Payment | None), student, result (AllocationResult)
payment_allocated = Signal()


@receiver(post_save, sender=Student)
def _create_registration_fee_on_student_create(sender, instance: Student, created, raw=False, **kwargs):
    """A newly registered student owes the registration fee for their registration month."""
    if not created or raw:
        return
    create_registration_fee(instance)

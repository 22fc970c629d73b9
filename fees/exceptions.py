# fees/exceptions.py


class BillingError(Exception):
    """Base class for fee generation and payment allocation failures."""


class InvalidAmountError(BillingError, ValueError):
    pass


class AllocationError(BillingError):
    pass


class PaymentAlreadyReversed(BillingError):
    pass


class FeeGenerationError(BillingError):
    """
    A batch insert failed. Batches committed before the failure stay
    committed; `fees_generated` says how many rows made it in.
    """

    def __init__(self, message, *, fees_generated=0, students_processed=0):
        super().__init__(message)
        self.fees_generated = fees_generated
        self.students_processed = students_processed


class RefundError(BillingError):
    pass

# fees/apps.py
from django.apps import AppConfig


class FeesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "fees"
    verbose_name = "Fees & Payments"

    def ready(self):
        # registers the post_save receivers
        from . import signals  # noqa: F401

# fees/management/commands/generate_monthly_fees.py
import calendar

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from fees.exceptions import FeeGenerationError
from fees.models import TutorialCenter
from fees.services.generation import generate_fees


class Command(BaseCommand):
    help = (
        "Generate monthly tuition fees for every eligible student of a center.\n"
        "Usage: manage.py generate_monthly_fees --center my-center --year 2025 --months 0 1 2\n"
        "Months are 0-based (0 = January) and default to the current month."
    )

    def add_arguments(self, parser):
        parser.add_argument("--center", required=True, help="Center slug.")
        parser.add_argument("--year", type=int, help="Year, e.g. 2025")
        parser.add_argument("--months", type=int, nargs="+", help="Month indices 0-11")
        parser.add_argument("--batch-size", type=int, default=None)
        parser.add_argument("--force", action="store_true",
                            help="Allow months outside the center's payment months.")

    def handle(self, *args, **opts):
        try:
            center = TutorialCenter.objects.get(slug=opts["center"])
        except TutorialCenter.DoesNotExist:
            raise CommandError(f"No center with slug '{opts['center']}'.")

        today = timezone.localdate()
        year = opts.get("year") or today.year
        months = sorted(set(opts.get("months") or [today.month - 1]))

        bad = [m for m in months if not 0 <= m <= 11]
        if bad:
            raise CommandError(f"Month indices must be 0-11, got {bad}.")
        if not opts["force"]:
            blocked = [m for m in months if not center.allows_month(m)]
            if blocked:
                names = ", ".join(calendar.month_name[m + 1] for m in blocked)
                raise CommandError(f"Not payment months for {center}: {names}. Use --force to override.")

        try:
            result = generate_fees(center, year, months, batch_size=opts.get("batch_size"))
        except FeeGenerationError as exc:
            raise CommandError(f"{exc} ({exc.fees_generated} fee(s) were committed before the failure).")

        self.stdout.write(self.style.SUCCESS(
            f"Done. Created {result.fees_generated} fee(s) for {result.students_processed} student(s) "
            f"in {center} ({year})."
        ))

# fees/management/commands/seed_demo_center.py
from decimal import Decimal

from django.core.management.base import BaseCommand

from fees.models import StudentSubject, Student, Subject, TutorialCenter


class Command(BaseCommand):
    help = "Seed a demo center with a few subjects and enrolled students."

    def add_arguments(self, parser):
        parser.add_argument("--slug", default="demo-center")

    def handle(self, *args, **opts):
        center, _ = TutorialCenter.objects.get_or_create(
            slug=opts["slug"],
            defaults={"name": "Demo Tutorial Center", "default_registration_fee": Decimal("250.00")},
        )
        subjects = {}
        for name, fee in [("Mathematics", "300.00"), ("Physical Science", "200.00"), ("English", "150.00")]:
            subjects[name], _ = Subject.objects.get_or_create(
                center=center, name=name, defaults={"monthly_fee": Decimal(fee)},
            )

        roster = [
            ("DEMO-001", "Thandi Mokoena", ["Mathematics", "Physical Science"]),
            ("DEMO-002", "Pieter van Wyk", ["Mathematics"]),
            ("DEMO-003", "Aisha Patel", ["English", "Mathematics"]),
        ]
        for number, name, subject_names in roster:
            student, _ = Student.objects.get_or_create(
                center=center, student_number=number, defaults={"full_name": name},
            )
            for subject_name in subject_names:
                StudentSubject.objects.get_or_create(student=student, subject=subjects[subject_name])

        self.stdout.write(self.style.SUCCESS(f"Demo center '{center.slug}' seeded."))

import datetime
import json

from django.core.management.base import BaseCommand

from tasks.models import Task
from tasks.store import TaskStore


class Command(BaseCommand):
    help = "Create two demo dependency chains and print the resulting analysis."

    def add_arguments(self, parser):
        parser.add_argument("--clear", action="store_true", help="delete existing tasks first")

    def handle(self, *args, **options):
        if options["clear"]:
            deleted, _ = Task.objects.all().delete()
            self.stdout.write(f"Cleared {deleted} row(s)")

        store = TaskStore()
        today = datetime.date.today()

        research = store.create_task("Research topic", today + datetime.timedelta(days=1))
        report = store.create_task(
            "Write report", today + datetime.timedelta(days=5), dependencies=[research.pk]
        )
        store.create_task(
            "Make slides", today + datetime.timedelta(days=7), dependencies=[research.pk, report.pk]
        )
        collect = store.create_task("Collect data", today)
        store.create_task("Analyze data", today + datetime.timedelta(days=3), dependencies=[collect.pk])

        analysis = store.analyze()
        self.stdout.write(json.dumps(analysis.as_dict(), indent=2))
        self.stdout.write(self.style.SUCCESS("Seeded 5 tasks"))

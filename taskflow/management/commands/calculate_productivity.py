import signal
import threading

from django.core.management.base import BaseCommand, CommandError

from taskflow.exceptions import TaskflowError
from taskflow.services import ProductivityService


class Command(BaseCommand):
    help = "Recalculate productivity scores and weekly snapshots."

    def add_arguments(self, parser):
        parser.add_argument(
            "--user",
            type=int,
            default=None,
            help="Only recalculate this user id (default: every active user).",
        )

    def handle(self, *args, **options):
        user_id = options["user"]

        # 1. single user
        if user_id is not None:
            try:
                member = ProductivityService.get_member(user_id)
            except TaskflowError as exc:
                raise CommandError(str(exc)) from exc
            result = ProductivityService.calculate_and_save_for_user(member.id, member.department_id)
            self.stdout.write(self.style.SUCCESS(
                f"User {member.id}: composite {result.composite}"
            ))
            return

        # 2. everyone; Ctrl-C stops starting new users
        cancel = threading.Event()
        previous = signal.getsignal(signal.SIGINT)
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, lambda *_: cancel.set())
        try:
            batch = ProductivityService.calculate_and_save_for_all(cancel_event=cancel)
        finally:
            if threading.current_thread() is threading.main_thread():
                signal.signal(signal.SIGINT, previous)

        for error in batch.errors:
            self.stderr.write(error)
        if batch.cancelled:
            self.stdout.write(self.style.WARNING("Cancelled before all users were processed."))
        self.stdout.write(self.style.SUCCESS(
            f"Processed {batch.processed} users, {len(batch.errors)} errors."
        ))

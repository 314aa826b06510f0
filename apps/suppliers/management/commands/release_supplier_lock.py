from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError  # type: ignore

from apps.suppliers.exceptions import SupplierLockError
from apps.suppliers.services import find_stale_locks, release_lock


class Command(BaseCommand):
    help = "Release a stale or failed supplier action lock so the action can run again"

    def add_arguments(self, parser):  # type: ignore
        parser.add_argument("idempotency_key", nargs="?", help="Key of the lock to release")
        parser.add_argument("--by", default="cli", help="Operator name stored on the lock")
        parser.add_argument("--reason", default="", help="Why the lock is released")
        parser.add_argument("--force", action="store_true", help="Release a pending lock that is not stale yet")
        parser.add_argument("--list-stale", action="store_true", help="Only list stale pending locks")

    def handle(self, *args, **options):  # type: ignore
        if options["list_stale"]:
            for lock in find_stale_locks():
                self.stdout.write(f"{lock.idempotency_key}\t{lock.booking_id}\t{lock.updated_at.isoformat()}")
            return

        key = options["idempotency_key"]
        if not key:
            raise CommandError("idempotency_key is required unless --list-stale is given")

        try:
            lock = release_lock(key, released_by=options["by"], reason=options["reason"], force=options["force"])
        except SupplierLockError as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(self.style.SUCCESS(f"Released {lock.idempotency_key} (was {lock.meta.get('released_from')})"))

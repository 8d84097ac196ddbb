from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from registry.errors import RegistryError
from registry.services import initialize_registry


class Command(BaseCommand):
    help = "Fix the registry admin identity. Safe to re-run with the same admin."

    def add_arguments(self, parser):
        parser.add_argument(
            "--admin",
            default=None,
            help="Admin identity (default: the REGISTRY_ADMIN setting)",
        )

    def handle(self, *args, **options):
        admin = options["admin"] or settings.REGISTRY_ADMIN
        try:
            state, created = initialize_registry(admin)
        except RegistryError as exc:
            raise CommandError(exc.detail) from exc

        if created:
            self.stdout.write(self.style.SUCCESS(f"Registry initialized with admin {state.admin}"))
        else:
            self.stdout.write(f"Registry already initialized with admin {state.admin}")

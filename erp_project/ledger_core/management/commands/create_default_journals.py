from django.core.management.base import BaseCommand, CommandError

from ledger_core.models import Organization
from ledger_core.services import create_default_journals


class Command(BaseCommand):
    help = "Create the standard journals (GEN, VEN, ACH, BQ, CAI) for an organization."

    # Define command-line arguments
    def add_arguments(self, parser):
        parser.add_argument(
            "--organization",
            required=True,
            help="Slug of the organization to set up.",
        )

    def handle(self, *args, **options):
        slug = options["organization"]
        try:
            organization = Organization.objects.get(slug=slug)
        except Organization.DoesNotExist:
            raise CommandError(f"Organization '{slug}' does not exist")

        created = create_default_journals(organization)
        self.stdout.write(
            self.style.SUCCESS(f"Created {created} journal(s) for {organization.name}")
        )

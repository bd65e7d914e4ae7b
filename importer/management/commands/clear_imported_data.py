"""
Django management command to clear previously imported CMS data.

Deletes imported content records (with their page and product records),
templates whose filename starts with "imported/" and the generated template
files on disk. Import jobs and their staged items are kept.
USE WITH CAUTION - this permanently deletes data!
"""
from django.core.management.base import BaseCommand, CommandError

from importer.exceptions import UnknownTenantError
from importer.services.data_cleaner import clear_imported_data
from importer.services.tenancy import DEFAULT_TENANT, resolve_tenant


class Command(BaseCommand):
    help = "Clear imported pages, products, content records and templates for a tenant"

    def add_arguments(self, parser):
        parser.add_argument(
            "--confirm",
            action="store_true",
            help="Confirm deletion (required to proceed)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be deleted without actually deleting",
        )
        parser.add_argument(
            "--tenant",
            default=DEFAULT_TENANT,
            help=f"Tenant whose data is cleared (default: {DEFAULT_TENANT})",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        confirm = options["confirm"]

        if not confirm and not dry_run:
            raise CommandError(
                "This command will DELETE ALL IMPORTED DATA. "
                "Use --confirm to proceed or --dry-run to preview."
            )

        try:
            ctx = resolve_tenant(options["tenant"])
        except UnknownTenantError as e:
            raise CommandError(str(e))

        self.stdout.write("\n" + "=" * 60)
        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN - No data will be deleted"))
        else:
            self.stdout.write(self.style.ERROR(f"DELETING IMPORTED DATA FOR TENANT {ctx.tenant}"))
        self.stdout.write("=" * 60 + "\n")

        result = clear_imported_data(ctx, dry_run=dry_run)
        verb = "would delete" if dry_run else "deleted"
        for label, count in (
            ("PageRecord", result.pages),
            ("ProductRecord", result.products),
            ("ContentRecord", result.content),
            ("Template", result.templates),
        ):
            self.stdout.write(f"  {label}: {count} records ({verb})")

        self.stdout.write("\n" + "=" * 60)
        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN COMPLETE - No changes made"))
        else:
            if result.template_files_removed:
                self.stdout.write("  Generated template files removed")
            self.stdout.write(self.style.SUCCESS("DELETION COMPLETE"))
        self.stdout.write("=" * 60 + "\n")

"""
Management command to run an import job in-process.

Usage:
    python manage.py run_import https://shop.example
    python manage.py run_import https://app.example --kind spa --max-pages 20
    python manage.py run_import https://github.com/acme/site.git --kind repository
    python manage.py run_import https://shop.example --clear --no-transform --tenant acme
"""

import asyncio

from django.core.management.base import BaseCommand, CommandError

from importer.exceptions import UnknownTenantError
from importer.models import ImportJob, ImportJobStatus, SourceKind
from importer.services.job_control import start_import
from importer.services.job_registry import get_job_registry
from importer.services.orchestrator import ImportOrchestrator
from importer.services.tenancy import DEFAULT_TENANT, resolve_tenant


class Command(BaseCommand):
    help = "Import a website, single-page app or source repository without a Celery worker"

    def add_arguments(self, parser):
        parser.add_argument(
            "source_url",
            type=str,
            help="Root URL of the site, or repository location",
        )
        parser.add_argument(
            "--kind",
            choices=SourceKind.values,
            default=SourceKind.WEBSITE,
            help="How to acquire pages (default: website)",
        )
        parser.add_argument(
            "--max-pages",
            type=int,
            help="Page budget for the crawl",
        )
        parser.add_argument(
            "--clear",
            action="store_true",
            help="Delete previously imported data before importing",
        )
        parser.add_argument(
            "--no-transform",
            action="store_true",
            help="Stop after template generation",
        )
        parser.add_argument(
            "--sideload-assets",
            action="store_true",
            help="Store recommended theme assets locally",
        )
        parser.add_argument(
            "--tenant",
            default=DEFAULT_TENANT,
            help=f"Tenant to import into (default: {DEFAULT_TENANT})",
        )

    def handle(self, *args, **options):
        try:
            ctx = resolve_tenant(options["tenant"])
        except UnknownTenantError as e:
            raise CommandError(str(e))

        max_pages = options.get("max_pages")
        if max_pages is not None and max_pages < 1:
            raise CommandError("--max-pages must be at least 1")

        config = {
            "max_pages": max_pages,
            "clear_existing": options["clear"],
            "run_transform": not options["no_transform"],
            "sideload_assets": options["sideload_assets"],
        }
        job = start_import(ctx, options["source_url"], options["kind"], config, enqueue=False)
        self.stdout.write(f"Created import job {job.id} for {job.source_url}")

        orchestrator = ImportOrchestrator(ctx, registry=get_job_registry())
        final_status = asyncio.run(orchestrator.run(job.id))

        job = ImportJob.objects.using(ctx.db_alias).get(pk=job.id)
        self.stdout.write(
            f"Pages: {job.page_count}  Errors: {job.errors.count()}  Message: {job.progress_message}"
        )
        if final_status == ImportJobStatus.COMPLETED:
            self.stdout.write(self.style.SUCCESS(f"Import job {job.id} completed"))
        elif final_status == ImportJobStatus.CANCELLED:
            self.stdout.write(self.style.WARNING(f"Import job {job.id} cancelled"))
        else:
            raise CommandError(f"Import job {job.id} {final_status}: {job.error_message}")

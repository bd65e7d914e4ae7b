"""
Migration: Initial importer schema.

Creates the staging store (import jobs, staged items, job errors) and the
CMS records written by the pipeline (templates, content, pages, products).
"""

import uuid
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import importer.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ImportJob",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "tenant",
                    models.CharField(db_index=True, default="default", max_length=100),
                ),
                (
                    "source_url",
                    models.CharField(
                        help_text="Root URL of the site, or clone URL of the repository",
                        max_length=2000,
                    ),
                ),
                (
                    "source_kind",
                    models.CharField(
                        choices=[
                            ("website", "Website (HTTP fetch)"),
                            ("spa", "Single-page app (headless render)"),
                            ("repository", "Source repository"),
                        ],
                        default="website",
                        max_length=20,
                    ),
                ),
                (
                    "config",
                    models.JSONField(
                        blank=True, default=importer.models.default_import_config
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("clearing", "Clearing existing data"),
                            ("discovering", "Discovering"),
                            ("sideloading", "Sideloading assets"),
                            ("crawling", "Crawling"),
                            ("crawled", "Crawled"),
                            ("generating_rules", "Generating rules"),
                            ("rules_generated", "Rules generated"),
                            ("generating_templates", "Generating templates"),
                            ("templates_generated", "Templates generated"),
                            ("transforming", "Transforming"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=30,
                    ),
                ),
                ("progress_message", models.TextField(blank=True)),
                ("page_count", models.IntegerField(default=0)),
                ("cancel_requested", models.BooleanField(default=False)),
                ("error_message", models.TextField(blank=True)),
                ("ruleset", models.JSONField(blank=True, default=dict)),
                ("platform_info", models.JSONField(blank=True, default=dict)),
                (
                    "created_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "import_jobs",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="import_job_status_idx",
                    ),
                    models.Index(
                        fields=["tenant", "created_at"],
                        name="import_job_tenant_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Template",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("filename", models.CharField(max_length=500, unique=True)),
                ("name", models.CharField(max_length=255)),
                (
                    "content_type",
                    models.CharField(
                        choices=[
                            ("pages", "Pages"),
                            ("posts", "Posts"),
                            ("products", "Products"),
                        ],
                        default="pages",
                        max_length=20,
                    ),
                ),
                ("content", models.TextField(blank=True)),
                ("regions", models.JSONField(blank=True, default=list)),
                ("blueprint", models.JSONField(blank=True, default=dict)),
                ("description", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "cms_templates",
                "ordering": ["filename"],
            },
        ),
        migrations.CreateModel(
            name="ContentRecord",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("slug", models.SlugField(max_length=255, unique=True)),
                (
                    "module",
                    models.CharField(
                        choices=[
                            ("pages", "Pages"),
                            ("posts", "Posts"),
                            ("products", "Products"),
                        ],
                        default="pages",
                        max_length=20,
                    ),
                ),
                ("title", models.CharField(blank=True, max_length=500)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("source_url", models.CharField(blank=True, max_length=2000)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "cms_content",
                "ordering": ["slug"],
                "indexes": [
                    models.Index(
                        fields=["module", "slug"],
                        name="cms_content_module_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StagedItem",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "url",
                    models.CharField(
                        help_text="Canonical URL, or path relative to the repository",
                        max_length=2000,
                    ),
                ),
                ("title", models.CharField(blank=True, max_length=255)),
                ("raw_html", models.TextField(blank=True)),
                ("stripped_html", models.TextField(blank=True)),
                ("analysis_html", models.TextField(blank=True)),
                (
                    "fingerprint",
                    models.CharField(blank=True, db_index=True, max_length=64),
                ),
                ("item_type", models.CharField(blank=True, max_length=50)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("crawled", "Crawled"),
                            ("transformed", "Transformed"),
                        ],
                        default="crawled",
                        max_length=20,
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "job",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="staged_items",
                        to="importer.importjob",
                    ),
                ),
            ],
            options={
                "db_table": "import_staged_items",
                "ordering": ["id"],
                "indexes": [
                    models.Index(
                        fields=["job", "fingerprint"],
                        name="staged_item_job_fp_idx",
                    ),
                    models.Index(
                        fields=["job", "status"],
                        name="staged_item_job_status_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("job", "url"), name="unique_staged_item_per_job"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ImportJobError",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("tenant", models.CharField(default="default", max_length=100)),
                (
                    "phase",
                    models.CharField(
                        choices=[
                            ("clear", "Clear"),
                            ("discovery", "Discovery"),
                            ("sideload", "Asset sideloading"),
                            ("crawl", "Crawl"),
                            ("rules", "Rule generation"),
                            ("templates", "Template generation"),
                            ("transform", "Transformation"),
                            ("job", "Job"),
                        ],
                        max_length=20,
                    ),
                ),
                ("url", models.CharField(blank=True, max_length=2000)),
                ("error_type", models.CharField(max_length=100)),
                ("message", models.TextField()),
                ("stack_trace", models.TextField(blank=True)),
                (
                    "timestamp",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "job",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="errors",
                        to="importer.importjob",
                    ),
                ),
            ],
            options={
                "db_table": "import_job_errors",
                "ordering": ["-timestamp"],
                "indexes": [
                    models.Index(
                        fields=["job", "timestamp"],
                        name="import_error_job_idx",
                    ),
                    models.Index(
                        fields=["phase", "timestamp"],
                        name="import_error_phase_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PageRecord",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("title", models.CharField(blank=True, max_length=500)),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("published", "Published")],
                        default="published",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "content",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="page",
                        to="importer.contentrecord",
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="pages",
                        to="importer.template",
                    ),
                ),
            ],
            options={
                "db_table": "cms_pages",
            },
        ),
        migrations.CreateModel(
            name="ProductRecord",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("sku", models.CharField(max_length=255, unique=True)),
                ("title", models.CharField(blank=True, max_length=500)),
                (
                    "price",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=12, null=True
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("published", "Published")],
                        default="published",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "content",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="product",
                        to="importer.contentrecord",
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="products",
                        to="importer.template",
                    ),
                ),
            ],
            options={
                "db_table": "cms_products",
            },
        ),
    ]

"""
Django models for the Site Importer.

Models: ImportJob, StagedItem, ImportJobError, Template, ContentRecord,
        PageRecord, ProductRecord

ImportJob and StagedItem form the staging store that the pipeline phases
read and write. Template, ContentRecord, PageRecord and ProductRecord are the
CMS-side records produced by template generation and transformation.
"""

import uuid

from django.db import models
from django.utils import timezone


class SourceKind(models.TextChoices):
    """How the importer acquires source markup."""

    WEBSITE = "website", "Website (HTTP fetch)"
    SPA = "spa", "Single-page app (headless render)"
    REPOSITORY = "repository", "Source repository"


class ImportJobStatus(models.TextChoices):
    """Phase/status of an import job."""

    PENDING = "pending", "Pending"
    CLEARING = "clearing", "Clearing existing data"
    DISCOVERING = "discovering", "Discovering"
    SIDELOADING = "sideloading", "Sideloading assets"
    CRAWLING = "crawling", "Crawling"
    CRAWLED = "crawled", "Crawled"
    GENERATING_RULES = "generating_rules", "Generating rules"
    RULES_GENERATED = "rules_generated", "Rules generated"
    GENERATING_TEMPLATES = "generating_templates", "Generating templates"
    TEMPLATES_GENERATED = "templates_generated", "Templates generated"
    TRANSFORMING = "transforming", "Transforming"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


TERMINAL_STATUSES = (
    ImportJobStatus.COMPLETED,
    ImportJobStatus.FAILED,
    ImportJobStatus.CANCELLED,
)


class StagedItemStatus(models.TextChoices):
    """Status of a staged page or source file."""

    CRAWLED = "crawled", "Crawled"
    TRANSFORMED = "transformed", "Transformed"


class ContentModule(models.TextChoices):
    """CMS module a content record belongs to."""

    PAGES = "pages", "Pages"
    POSTS = "posts", "Posts"
    PRODUCTS = "products", "Products"


class PublishStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    PUBLISHED = "published", "Published"


class ImportPhase(models.TextChoices):
    """Pipeline phase an error was raised in."""

    CLEAR = "clear", "Clear"
    DISCOVERY = "discovery", "Discovery"
    SIDELOAD = "sideload", "Asset sideloading"
    CRAWL = "crawl", "Crawl"
    RULES = "rules", "Rule generation"
    TEMPLATES = "templates", "Template generation"
    TRANSFORM = "transform", "Transformation"
    JOB = "job", "Job"


def default_import_config():
    return {
        "max_pages": None,
        "clear_existing": False,
        "run_transform": True,
        "sideload_assets": False,
        "fingerprint_mode": "structure",
    }


class ImportJob(models.Model):
    """
    One run of the site-import pipeline.

    Status moves forward through the phases and ends in one of
    TERMINAL_STATUSES. Once terminal, status writes through set_status()
    are ignored.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.CharField(max_length=100, default="default", db_index=True)

    source_url = models.CharField(
        max_length=2000,
        help_text="Root URL of the site, or clone URL of the repository",
    )
    source_kind = models.CharField(
        max_length=20, choices=SourceKind.choices, default=SourceKind.WEBSITE
    )
    config = models.JSONField(default=default_import_config, blank=True)

    # Progress
    status = models.CharField(
        max_length=30,
        choices=ImportJobStatus.choices,
        default=ImportJobStatus.PENDING,
    )
    progress_message = models.TextField(blank=True)
    page_count = models.IntegerField(default=0)
    cancel_requested = models.BooleanField(default=False)
    error_message = models.TextField(blank=True)

    # Pipeline outputs
    ruleset = models.JSONField(default=dict, blank=True)
    platform_info = models.JSONField(default=dict, blank=True)

    # Timing
    created_at = models.DateTimeField(default=timezone.now)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "import_jobs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="import_job_status_idx"),
            models.Index(fields=["tenant", "created_at"], name="import_job_tenant_idx"),
        ]

    def __str__(self):
        return f"Import {self.id} - {self.source_url} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self):
        """Calculate job duration."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @classmethod
    def set_status(cls, using, job_id, status, message=None, **fields):
        """
        Write a status change unless the job already reached a terminal status.

        Returns True when a row was updated.
        """
        updates = {"status": status}
        if message is not None:
            updates["progress_message"] = message
        if status in TERMINAL_STATUSES:
            updates["completed_at"] = timezone.now()
        updates.update(fields)
        updated = (
            cls.objects.using(using)
            .filter(pk=job_id)
            .exclude(status__in=TERMINAL_STATUSES)
            .update(**updates)
        )
        return updated > 0


class StagedItem(models.Model):
    """
    A crawled page, rendered page or source file awaiting transformation.
    """

    job = models.ForeignKey(
        ImportJob, on_delete=models.CASCADE, related_name="staged_items"
    )
    url = models.CharField(
        max_length=2000, help_text="Canonical URL, or path relative to the repository"
    )
    title = models.CharField(max_length=255, blank=True)

    raw_html = models.TextField(blank=True)
    stripped_html = models.TextField(blank=True)
    analysis_html = models.TextField(blank=True)

    fingerprint = models.CharField(max_length=64, blank=True, db_index=True)
    item_type = models.CharField(max_length=50, blank=True)
    status = models.CharField(
        max_length=20,
        choices=StagedItemStatus.choices,
        default=StagedItemStatus.CRAWLED,
    )
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "import_staged_items"
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["job", "url"], name="unique_staged_item_per_job"
            ),
        ]
        indexes = [
            models.Index(fields=["job", "fingerprint"], name="staged_item_job_fp_idx"),
            models.Index(fields=["job", "status"], name="staged_item_job_status_idx"),
        ]

    def __str__(self):
        return f"{self.url} ({self.status})"


class ImportJobError(models.Model):
    """
    Detailed error record for operator diagnosis.

    Users only see the coarse job status; everything that went wrong for a
    single page, group or item lands here.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    job = models.ForeignKey(
        ImportJob, on_delete=models.CASCADE, related_name="errors"
    )
    tenant = models.CharField(max_length=100, default="default")
    phase = models.CharField(max_length=20, choices=ImportPhase.choices)
    url = models.CharField(max_length=2000, blank=True)
    error_type = models.CharField(max_length=100)
    message = models.TextField()
    stack_trace = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "import_job_errors"
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["job", "timestamp"], name="import_error_job_idx"),
            models.Index(fields=["phase", "timestamp"], name="import_error_phase_idx"),
        ]

    def __str__(self):
        return f"{self.phase}: {self.error_type} ({self.url or 'n/a'})"


class Template(models.Model):
    """A render template plus its declared editable regions."""

    filename = models.CharField(max_length=500, unique=True)
    name = models.CharField(max_length=255)
    content_type = models.CharField(
        max_length=20, choices=ContentModule.choices, default=ContentModule.PAGES
    )
    content = models.TextField(blank=True)
    regions = models.JSONField(default=list, blank=True)
    blueprint = models.JSONField(default=dict, blank=True)
    description = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "cms_templates"
        ordering = ["filename"]

    def __str__(self):
        return self.name or self.filename


class ContentRecord(models.Model):
    """Normalized page, post or product content keyed by slug."""

    slug = models.SlugField(max_length=255, unique=True)
    module = models.CharField(
        max_length=20, choices=ContentModule.choices, default=ContentModule.PAGES
    )
    title = models.CharField(max_length=500, blank=True)
    data = models.JSONField(default=dict, blank=True)
    source_url = models.CharField(max_length=2000, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "cms_content"
        ordering = ["slug"]
        indexes = [
            models.Index(fields=["module", "slug"], name="cms_content_module_idx"),
        ]

    def __str__(self):
        return f"{self.module}/{self.slug}"


class PageRecord(models.Model):
    content = models.OneToOneField(
        ContentRecord, on_delete=models.CASCADE, related_name="page"
    )
    template = models.ForeignKey(
        Template, on_delete=models.SET_NULL, null=True, blank=True, related_name="pages"
    )
    title = models.CharField(max_length=500, blank=True)
    status = models.CharField(
        max_length=20, choices=PublishStatus.choices, default=PublishStatus.PUBLISHED
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "cms_pages"

    def __str__(self):
        return self.title or self.content.slug


class ProductRecord(models.Model):
    sku = models.CharField(max_length=255, unique=True)
    content = models.OneToOneField(
        ContentRecord, on_delete=models.CASCADE, related_name="product"
    )
    template = models.ForeignKey(
        Template,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="products",
    )
    title = models.CharField(max_length=500, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    status = models.CharField(
        max_length=20, choices=PublishStatus.choices, default=PublishStatus.PUBLISHED
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "cms_products"

    def __str__(self):
        return f"{self.sku} - {self.title}"
